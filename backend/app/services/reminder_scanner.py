"""Minute-by-minute scan that pushes a reminder shortly before each task starts.

A task is reminded when its start falls 4.5 to 5.5 minutes after the tick. The
window is one tick wide, so under a steady one-minute cadence each task lands
in it on exactly one tick; that is the only duplicate suppression unless the
delivery ledger is switched on. A skipped or late tick loses the reminder.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from time import perf_counter
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from app.db.models.plan import Plan
from app.db.models.reminder_delivery import ReminderDelivery
from app.db.models.task import PlanTask
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.action_log import record_action
from app.services.ai_client import generate_reminder_message
from app.services.notifications.base import NotificationResult, NotificationService, PushMessage
from app.services.time_utils import parse_time

logger = logging.getLogger(__name__)

WINDOW_START_MINUTES = 4.5
WINDOW_END_MINUTES = 5.5


@dataclass
class ScanResult:
    plans_scanned: int = 0
    reminders_sent: int = 0
    skipped_without_token: int = 0
    failures: int = 0


def minutes_until(task_time: str, now: datetime) -> Optional[float]:
    """Minutes from ``now`` to ``task_time`` on the same calendar day, or None if unparsable."""
    parsed = parse_time(task_time)
    if not parsed.valid:
        return None
    starts_at = datetime.combine(now.date(), time(parsed.hours, parsed.minutes))
    return (starts_at - now).total_seconds() / 60


def in_reminder_window(task_time: str, now: datetime) -> bool:
    diff = minutes_until(task_time, now)
    return diff is not None and WINDOW_START_MINUTES <= diff < WINDOW_END_MINUTES


class ReminderScanner:
    """Owns the collaborators one reminder tick needs; built once per process."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notification_service: NotificationService,
        *,
        reminder_writer: Callable[[str, str], str] = generate_reminder_message,
        ledger_enabled: bool = False,
    ):
        self.session_factory = session_factory
        self.notification_service = notification_service
        self.reminder_writer = reminder_writer
        self.ledger_enabled = ledger_enabled

    def run_tick(self, now: Optional[datetime] = None) -> ScanResult:
        session = self.session_factory()
        try:
            return self.scan(session, now or datetime.now())
        finally:
            session.close()

    def scan(self, db: Session, now: datetime) -> ScanResult:
        result = ScanResult()
        start = perf_counter()
        with trace("reminders.tick", metadata={"now": now.isoformat(timespec="seconds")}):
            for plan in self._plans_for(db, now.date()):
                result.plans_scanned += 1
                push_token = plan.user.push_token if plan.user is not None else None
                if not push_token:
                    result.skipped_without_token += 1
                    logger.debug("Skipping plan %s: no push token for owner", plan.id)
                    continue
                for task in plan.tasks:
                    if task.is_completed or not in_reminder_window(task.time, now):
                        continue
                    if self.ledger_enabled and self._already_delivered(db, task, now.date()):
                        continue
                    if self._remind(db, plan, task, push_token, now.date()):
                        result.reminders_sent += 1
                    else:
                        result.failures += 1

        log_metric("reminders.tick.latency_ms", (perf_counter() - start) * 1000)
        log_metric("reminders.sent", result.reminders_sent)
        if result.reminders_sent or result.failures:
            logger.info(
                "Reminder tick: plans=%s sent=%s failures=%s",
                result.plans_scanned,
                result.reminders_sent,
                result.failures,
            )
        return result

    def _plans_for(self, db: Session, day: date):
        return (
            db.query(Plan)
            .options(selectinload(Plan.tasks), joinedload(Plan.user))
            .filter(Plan.date == day)
            .order_by(Plan.created_at)
            .all()
        )

    def _already_delivered(self, db: Session, task: PlanTask, day: date) -> bool:
        return (
            db.query(ReminderDelivery.id)
            .filter(ReminderDelivery.task_id == task.id, ReminderDelivery.remind_on == day)
            .first()
            is not None
        )

    def _remind(self, db: Session, plan: Plan, task: PlanTask, push_token: str, day: date) -> bool:
        logger.info("Upcoming task %s (%r at %s)", task.id, task.description, task.time)
        try:
            body = self.reminder_writer(task.description, task.time)
            outcome = self.notification_service.send_push(
                PushMessage(
                    to=push_token,
                    title=f"Reminder: {task.description}",
                    body=body,
                    data={"planId": str(plan.id)},
                )
            )
        except Exception:
            logger.exception("Reminder for task %s failed", task.id)
            log_metric("reminders.failed", 1, metadata={"plan_id": str(plan.id)})
            return False

        self._record_delivery(db, plan, task, outcome, day)
        return True

    def _record_delivery(self, db: Session, plan: Plan, task: PlanTask, outcome: NotificationResult, day: date) -> None:
        try:
            if self.ledger_enabled:
                db.add(ReminderDelivery(task_id=task.id, remind_on=day))
            record_action(
                db,
                user_id=plan.user_id,
                plan_id=plan.id,
                action_type="reminder_sent",
                payload={
                    "task_id": str(task.id),
                    "time": task.time,
                    "provider": self.notification_service.name,
                    "result": outcome.__dict__,
                },
                reason="Upcoming task reminder",
            )
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not record reminder for task %s", task.id)
