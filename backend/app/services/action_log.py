"""Audit trail for agent-driven changes."""
from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.context import get_request_id
from app.db.models.agent_action_log import AgentActionLog


def record_action(
    db: Session,
    *,
    user_id: UUID,
    action_type: str,
    payload: Dict[str, Any],
    reason: str,
    plan_id: UUID | None = None,
    commit: bool = True,
) -> AgentActionLog:
    entry = AgentActionLog(
        user_id=user_id,
        plan_id=plan_id,
        action_type=action_type,
        action_payload={**payload, "request_id": get_request_id()},
        reason=reason,
    )
    db.add(entry)
    if commit:
        db.commit()
    return entry
