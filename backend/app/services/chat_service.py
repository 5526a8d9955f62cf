"""One chat turn: build the prompt, ask the model, apply its action."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from app.api.schemas.chat import ChatHistoryItem
from app.core.config import settings
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.action_interpreter import ChatOutcome, interpret
from app.services.ai_client import LLMError, generate_text
from app.services.user_service import UserNotFoundError, update_push_token

logger = logging.getLogger(__name__)

REPLY_LLM_UNAVAILABLE = "Sorry, I'm having trouble thinking right now."

ACTION_FORMATS = """\
- schedule: {"response_type": "schedule", "data": {"title": "short plan title", "date": "YYYY-MM-DD", "tasks": [{"description": "what to do", "time": "HH:mm"}]}, "confirmation_message": "..."}
- delete: {"response_type": "delete", "data": {"task_description": "words from the task", "date": "YYYY-MM-DD"}, "confirmation_message": "..."}
- edit: {"response_type": "edit", "data": {"original_task_description": "words from the task", "date": "YYYY-MM-DD", "new_description": "optional", "new_time": "optional HH:mm"}, "confirmation_message": "..."}
- review: {"response_type": "review", "data": {"duration": "upcoming"}}"""


def format_history(history: Sequence[ChatHistoryItem], turns: int) -> str:
    recent = list(history)[-turns:] if turns > 0 else []
    return "\n".join(f"{'User' if item.sender == 'user' else 'Aura'}: {item.text}" for item in recent)


def build_prompt(message: str, history: Sequence[ChatHistoryItem], now: datetime) -> str:
    today = now.date().isoformat()
    return (
        "Conversation so far:\n"
        f"{format_history(history, settings.chat_history_turns) or '(none)'}\n\n"
        "You help the user plan their day. Greetings, questions and small talk get a plain-text "
        "answer with no JSON. Only a direct request to schedule, delete, edit or review tasks gets "
        "a single JSON object, using exactly one of these shapes:\n"
        f"{ACTION_FORMATS}\n\n"
        "Act immediately: the confirmation_message must say the action is done, never ask first. "
        "Task times in JSON are 24-hour HH:mm. "
        f"Today is {today}; when the user gives no year, use {now.year}.\n\n"
        f"User request: {message}\n"
        "Aura:"
    )


def handle_chat_turn(
    db: Session,
    *,
    user_id: UUID,
    message: str,
    history: Sequence[ChatHistoryItem],
    push_token: Optional[str],
    now: Optional[datetime] = None,
    generate: Optional[Callable[..., str]] = None,
) -> ChatOutcome:
    """Run one chat exchange; model failures come back as an apologetic reply."""
    now = now or datetime.now()
    generate = generate or generate_text
    if push_token:
        try:
            update_push_token(db, user_id, push_token)
        except UserNotFoundError:
            logger.warning("Push token ignored for unknown user %s", user_id)

    with trace(
        "chat.turn",
        metadata={"message_length": len(message), "history_length": len(history)},
        user_id=str(user_id),
    ):
        try:
            ai_text = generate(build_prompt(message, history, now), purpose="chat")
        except LLMError as exc:
            logger.warning("Chat generation failed: %s", exc)
            log_metric("chat.llm_failure", 1)
            return ChatOutcome(reply=REPLY_LLM_UNAVAILABLE)

        outcome = interpret(db, user_id=user_id, ai_text=ai_text, now=now)

    log_metric("chat.turn.success", 1, metadata={"action": outcome.action or "reply"})
    return outcome
