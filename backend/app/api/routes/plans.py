"""Plan CRUD API routes."""
from __future__ import annotations

from datetime import date, datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.schemas.plan import MessageResponse, PlanOut, PlanWriteRequest
from app.core.security import get_current_user_id
from app.db.deps import get_db
from app.db.models.plan import Plan
from app.observability.metrics import log_metric, timed_metric
from app.observability.tracing import trace
from app.services import plan_service
from app.services.plan_service import (
    PlanLockedError,
    PlanNotFoundError,
    PlanOwnershipError,
    PlanServiceError,
    TaskNotFoundError,
    TimeConflictError,
)

router = APIRouter()


def serialize_plan(plan: Plan) -> PlanOut:
    return PlanOut.model_validate(plan)


def _to_http_error(exc: PlanServiceError) -> HTTPException:
    if isinstance(exc, (PlanNotFoundError, TaskNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PlanOwnershipError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, PlanLockedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, TimeConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"You already have another task scheduled for {exc.time} on this day.",
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/api/plans/by-date/{day}", response_model=List[PlanOut], tags=["plans"])
def list_plans_by_date(
    day: date,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> List[PlanOut]:
    """List the caller's plans for one calendar day, earliest first task first."""
    with trace("plan.list", metadata={"route": "/api/plans/by-date", "date": day.isoformat()}):
        plans = plan_service.list_plans_for_date(db, user_id, day)
    log_metric("plan.list.count", len(plans), metadata={"date": day.isoformat()})
    return [serialize_plan(plan) for plan in plans]


@router.post("/api/plans", response_model=PlanOut, status_code=status.HTTP_201_CREATED, tags=["plans"])
def create_plan(
    payload: PlanWriteRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PlanOut:
    """Create a plan; task times are normalized and must not clash with the day's other tasks."""
    metadata = {"route": "/api/plans", "date": payload.date.isoformat(), "task_count": len(payload.tasks)}
    try:
        with trace("plan.create", metadata=metadata), timed_metric("plan.create"):
            plan = plan_service.create_plan(
                db,
                user_id=user_id,
                title=payload.title,
                day=payload.date,
                tasks=payload.tasks,
            )
    except PlanServiceError as exc:
        raise _to_http_error(exc) from exc
    log_metric("plan.create.success", 1)
    return serialize_plan(plan)


@router.put("/api/plans/{plan_id}", response_model=PlanOut, tags=["plans"])
def update_plan(
    plan_id: UUID,
    payload: PlanWriteRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PlanOut:
    """Replace a plan wholesale unless it starts within the lockout window."""
    try:
        with trace("plan.update", metadata={"route": "/api/plans/{id}", "plan_id": str(plan_id)}):
            plan = plan_service.update_plan(
                db,
                user_id=user_id,
                plan_id=plan_id,
                title=payload.title,
                day=payload.date,
                tasks=payload.tasks,
                now=datetime.now(),
            )
    except PlanServiceError as exc:
        log_metric("plan.update.rejected", 1, metadata={"reason": type(exc).__name__})
        raise _to_http_error(exc) from exc
    return serialize_plan(plan)


@router.delete("/api/plans/{plan_id}", response_model=MessageResponse, tags=["plans"])
def delete_plan(
    plan_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> MessageResponse:
    try:
        with trace("plan.delete", metadata={"plan_id": str(plan_id)}):
            plan_service.delete_plan(db, user_id=user_id, plan_id=plan_id, now=datetime.now())
    except PlanServiceError as exc:
        log_metric("plan.delete.rejected", 1, metadata={"reason": type(exc).__name__})
        raise _to_http_error(exc) from exc
    return MessageResponse(message="Plan deleted successfully.")


@router.patch("/api/plans/{plan_id}/tasks/{task_id}", response_model=PlanOut, tags=["plans"])
def toggle_task_completion(
    plan_id: UUID,
    task_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PlanOut:
    """Flip a task's completion flag and return the whole plan."""
    try:
        with trace("plan.task.toggle", metadata={"plan_id": str(plan_id), "task_id": str(task_id)}):
            plan = plan_service.toggle_task(db, user_id=user_id, plan_id=plan_id, task_id=task_id)
    except PlanServiceError as exc:
        raise _to_http_error(exc) from exc
    return serialize_plan(plan)
