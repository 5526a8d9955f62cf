"""Schemas for the chat endpoint."""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field

from app.api.schemas.base import CamelModel
from app.api.schemas.plan import PlanOut


class ChatHistoryItem(CamelModel):
    sender: str = "user"
    text: str = ""


class ChatRequest(CamelModel):
    message: Optional[str] = None
    history: List[ChatHistoryItem] = Field(default_factory=list)
    push_token: Optional[str] = None


class ChatResponse(CamelModel):
    reply: str
    action: Optional[Literal["plan_created", "plan_deleted", "plan_edited"]] = None
    plan: Optional[PlanOut] = None
