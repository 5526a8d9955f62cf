"""Plan repository operations shared by the CRUD routes and the chat interpreter."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.api.schemas.plan import TaskInput
from app.db.models.plan import Plan
from app.db.models.task import PlanTask
from app.services.ai_client import generate_plan_summary
from app.services.conflicts import find_conflict, occupied_times
from app.services.lockout import plan_is_locked
from app.services.time_utils import is_canonical, normalize_time, sort_key

logger = logging.getLogger(__name__)


class PlanServiceError(Exception):
    """Base class for plan repository failures."""


class PlanNotFoundError(PlanServiceError):
    pass


class TaskNotFoundError(PlanServiceError):
    pass


class PlanOwnershipError(PlanServiceError):
    pass


class PlanLockedError(PlanServiceError):
    pass


class TimeConflictError(PlanServiceError):
    def __init__(self, time: str, description: str | None = None):
        self.time = time
        self.description = description
        super().__init__(f"time {time} is already taken")


def normalize_tasks(tasks: Iterable[TaskInput]) -> List[TaskInput]:
    normalized = []
    for task in tasks:
        value = normalize_time(task.time)
        if not is_canonical(value):
            logger.warning("Storing unparsable task time %r verbatim", value)
        normalized.append(task.model_copy(update={"time": value}))
    return normalized


def first_collision(existing: Set[str], tasks: Sequence[TaskInput]) -> Optional[TaskInput]:
    """First task clashing with ``existing`` or with an earlier task of the same batch."""
    conflict = find_conflict(existing, tasks)
    if conflict is not None:
        return conflict
    seen: Set[str] = set()
    for task in tasks:
        if task.time in seen:
            return task
        seen.add(task.time)
    return None


def plans_on_date(db: Session, user_id: UUID, day: date) -> List[Plan]:
    """User's plans on ``day`` in creation order."""
    return (
        db.query(Plan)
        .options(selectinload(Plan.tasks))
        .filter(Plan.user_id == user_id, Plan.date == day)
        .order_by(Plan.created_at, Plan.id)
        .all()
    )


def _earliest_task_key(plan: Plan) -> Tuple[int, int, int]:
    if not plan.tasks:
        return (2, 0, 0)
    return min(sort_key(task.time) for task in plan.tasks)


def list_plans_for_date(db: Session, user_id: UUID, day: date) -> List[Plan]:
    """Plans ordered by their earliest task time; tasks keep insertion order."""
    return sorted(plans_on_date(db, user_id, day), key=_earliest_task_key)


def _build_tasks(plan: Plan, tasks: Sequence[TaskInput], *, start: int = 0) -> List[PlanTask]:
    return [
        PlanTask(
            user_id=plan.user_id,
            scheduled_day=plan.date,
            position=start + index,
            description=task.description.strip(),
            time=task.time,
            is_completed=task.is_completed,
        )
        for index, task in enumerate(tasks)
    ]


TASK_TIME_INDEX = "ux_plan_tasks_user_day_time"
# SQLite names the columns instead of the index.
_TASK_TIME_COLUMNS = "plan_tasks.user_id, plan_tasks.scheduled_day, plan_tasks.time"


def is_task_time_clash(exc: IntegrityError) -> bool:
    """True when ``exc`` came from the per-user, per-day task time unique index."""
    message = str(exc.orig)
    return TASK_TIME_INDEX in message or _TASK_TIME_COLUMNS in message


def _clashing_task(
    db: Session,
    user_id: UUID,
    day: date,
    tasks: Sequence[TaskInput],
    exclude_plan_id: UUID | None,
) -> Optional[TaskInput]:
    query = db.query(PlanTask.time).filter(PlanTask.user_id == user_id, PlanTask.scheduled_day == day)
    if exclude_plan_id is not None:
        query = query.filter(PlanTask.plan_id != exclude_plan_id)
    taken = {row[0] for row in query.all()}
    return next((task for task in tasks if task.time in taken), None)


def _commit_or_conflict(
    db: Session,
    tasks: Sequence[TaskInput],
    *,
    user_id: UUID,
    day: date,
    exclude_plan_id: UUID | None = None,
) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_task_time_clash(exc):
            raise
        # Lost a race with a concurrent writer holding the same slot.
        logger.warning("Unique task-time index rejected write: %s", exc.orig)
        clash = _clashing_task(db, user_id, day, tasks, exclude_plan_id)
        if clash is None:
            raise TimeConflictError(tasks[0].time if tasks else "that time") from exc
        raise TimeConflictError(clash.time, clash.description) from exc


def create_plan(
    db: Session,
    *,
    user_id: UUID,
    title: str,
    day: date,
    tasks: Sequence[TaskInput],
    summary: str | None = None,
) -> Plan:
    """Persist a new plan after normalizing times; all tasks are rejected on any clash."""
    normalized = normalize_tasks(tasks)
    conflict = first_collision(occupied_times(db, user_id, day), normalized)
    if conflict is not None:
        raise TimeConflictError(conflict.time, conflict.description)

    plan = Plan(
        user_id=user_id,
        title=title.strip(),
        date=day,
        ai_generated_summary=summary if summary is not None else generate_plan_summary(title),
    )
    plan.tasks = _build_tasks(plan, normalized)
    db.add(plan)
    _commit_or_conflict(db, normalized, user_id=user_id, day=day)
    db.refresh(plan)
    logger.info("Created plan %s on %s with %d task(s)", plan.id, day, len(normalized))
    return plan


def get_owned_plan(db: Session, plan_id: UUID, user_id: UUID) -> Plan:
    plan = db.get(Plan, plan_id)
    if plan is None:
        raise PlanNotFoundError("Plan not found.")
    if plan.user_id != user_id:
        raise PlanOwnershipError("Not authorized")
    return plan


def update_plan(
    db: Session,
    *,
    user_id: UUID,
    plan_id: UUID,
    title: str,
    day: date,
    tasks: Sequence[TaskInput],
    now: datetime,
) -> Plan:
    """Replace a plan wholesale, keeping its summary."""
    plan = get_owned_plan(db, plan_id, user_id)
    if plan_is_locked(plan, now):
        raise PlanLockedError("Time limit reached. Plans cannot be modified within 15 minutes of their start time.")

    normalized = normalize_tasks(tasks)
    existing = occupied_times(db, user_id, day, exclude_plan_id=plan.id)
    conflict = first_collision(existing, normalized)
    if conflict is not None:
        raise TimeConflictError(conflict.time, conflict.description)

    plan.title = title.strip()
    plan.date = day
    plan.tasks.clear()
    # Old rows must be gone before new ones claim the same unique slots.
    db.flush()
    plan.tasks.extend(_build_tasks(plan, normalized))
    _commit_or_conflict(db, normalized, user_id=user_id, day=day, exclude_plan_id=plan_id)
    db.refresh(plan)
    return plan


def delete_plan(db: Session, *, user_id: UUID, plan_id: UUID, now: datetime) -> None:
    plan = get_owned_plan(db, plan_id, user_id)
    if plan_is_locked(plan, now):
        raise PlanLockedError("Time limit reached. Plans starting within 15 minutes cannot be deleted.")
    db.delete(plan)
    db.commit()
    logger.info("Deleted plan %s", plan_id)


def toggle_task(db: Session, *, user_id: UUID, plan_id: UUID, task_id: UUID) -> Plan:
    plan = get_owned_plan(db, plan_id, user_id)
    task = next((candidate for candidate in plan.tasks if candidate.id == task_id), None)
    if task is None:
        raise TaskNotFoundError("Task not found.")
    task.is_completed = not task.is_completed
    db.commit()
    db.refresh(plan)
    return plan


def find_task_by_description(plans: Sequence[Plan], needle: str) -> Optional[Tuple[Plan, PlanTask]]:
    """First task (plans in given order) whose description contains ``needle``, case-insensitively."""
    lowered = needle.lower()
    for plan in plans:
        for task in plan.tasks:
            if lowered in (task.description or "").lower():
                return plan, task
    return None


def remove_task(db: Session, plan: Plan, task: PlanTask) -> bool:
    """Remove ``task``; drops the whole plan when it was the last one. Returns True if the plan went."""
    if len(plan.tasks) == 1:
        db.delete(plan)
        db.commit()
        return True
    plan.tasks.remove(task)
    db.commit()
    return False
