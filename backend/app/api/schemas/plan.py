"""Schemas for plan CRUD endpoints."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.api.schemas.base import CamelModel


class TaskInput(CamelModel):
    description: str = Field(..., min_length=1, max_length=500)
    time: str = Field(..., min_length=1, max_length=32, description='Loose time such as "9:30", "5pm" or "17:00".')
    is_completed: bool = False


class PlanWriteRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    date: date
    tasks: List[TaskInput] = Field(default_factory=list)


class TaskOut(CamelModel):
    id: UUID
    description: str
    time: str
    is_completed: bool


class PlanOut(CamelModel):
    id: UUID
    user_id: UUID
    title: str
    date: date
    ai_generated_summary: Optional[str] = None
    tasks: List[TaskOut]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MessageResponse(CamelModel):
    message: str
