"""Conversational planning endpoint."""
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.routes.plans import serialize_plan
from app.api.schemas.chat import ChatRequest, ChatResponse
from app.core.security import get_current_user_id
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.services.chat_service import REPLY_LLM_UNAVAILABLE, handle_chat_turn

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True, tags=["chat"])
def chat(
    payload: ChatRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Answer a chat message, applying any schedule/delete/edit/review action it asks for."""
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required.")

    try:
        outcome = handle_chat_turn(
            db,
            user_id=user_id,
            message=message,
            history=payload.history,
            push_token=payload.push_token,
        )
    except Exception:
        db.rollback()
        logger.exception("Chat turn failed unexpectedly")
        log_metric("chat.turn.error", 1)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": REPLY_LLM_UNAVAILABLE},
        )

    return ChatResponse(
        reply=outcome.reply,
        action=outcome.action,
        plan=serialize_plan(outcome.plan) if outcome.plan is not None else None,
    )
