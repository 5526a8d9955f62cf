"""Operational endpoints for the reminder job."""
from __future__ import annotations

from datetime import datetime
from time import perf_counter

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.api.schemas.jobs import ReminderRunResponse
from app.core.config import settings
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.notifications.factory import get_notification_service
from app.services.reminder_scanner import (
    WINDOW_END_MINUTES,
    WINDOW_START_MINUTES,
    ReminderScanner,
)

router = APIRouter()


@router.get("/jobs", tags=["jobs"])
def get_jobs_config(request: Request) -> dict:
    request_id = getattr(request.state, "request_id", None)
    with trace("jobs.config", request_id=request_id):
        data = {
            "scheduler_enabled": settings.scheduler_enabled,
            "schedule": {
                "timezone": settings.scheduler_timezone,
                "cadence": "every minute",
                "reminder_window_minutes": [WINDOW_START_MINUTES, WINDOW_END_MINUTES],
            },
            "ledger_enabled": settings.reminder_ledger_enabled,
        }
    return {**data, "request_id": request_id or ""}


@router.post("/jobs/reminders/run-now", response_model=ReminderRunResponse, tags=["jobs"])
def run_reminders_now(request: Request, db: Session = Depends(get_db)) -> ReminderRunResponse:
    if not settings.debug:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Run-now only allowed in debug mode")

    request_id = getattr(request.state, "request_id", None)
    scanner = ReminderScanner(
        lambda: db,
        get_notification_service(),
        ledger_enabled=settings.reminder_ledger_enabled,
    )
    start = perf_counter()
    with trace("jobs.reminders.run_now", request_id=request_id):
        result = scanner.scan(db, datetime.now())
    log_metric("jobs.run_now.latency_ms", (perf_counter() - start) * 1000, metadata={"job": "reminders"})

    return ReminderRunResponse(
        job="reminders",
        plans_scanned=result.plans_scanned,
        reminders_sent=result.reminders_sent,
        skipped_without_token=result.skipped_without_token,
        failures=result.failures,
        request_id=request_id or "",
    )
