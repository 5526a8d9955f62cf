"""Same-user, same-day task time conflict detection."""
from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence, Set, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models.plan import Plan
from app.db.models.task import PlanTask


class _HasTime(Protocol):
    time: str


T = TypeVar("T", bound=_HasTime)


def find_conflict(existing_times: Set[str], candidates: Sequence[T]) -> Optional[T]:
    """Return the first candidate whose canonical time is already occupied, if any."""
    for candidate in candidates:
        if candidate.time in existing_times:
            return candidate
    return None


def occupied_times(
    db: Session,
    user_id: UUID,
    day: date,
    *,
    exclude_plan_id: UUID | None = None,
    exclude_task_id: UUID | None = None,
) -> Set[str]:
    """Collect every task time the user already holds on ``day`` across all their plans."""
    query = (
        db.query(PlanTask.time)
        .join(Plan, Plan.id == PlanTask.plan_id)
        .filter(Plan.user_id == user_id, Plan.date == day)
    )
    if exclude_plan_id is not None:
        query = query.filter(Plan.id != exclude_plan_id)
    if exclude_task_id is not None:
        query = query.filter(PlanTask.id != exclude_task_id)
    return {row[0] for row in query.all()}
