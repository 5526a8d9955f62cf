"""Dedicated APScheduler worker process running the reminder scan."""
from __future__ import annotations

import logging
import signal
import threading

from apscheduler.schedulers.background import BackgroundScheduler

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.notifications.factory import get_notification_service
from app.services.reminder_scanner import ReminderScanner


logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "reminder_scan"


def build_scanner() -> ReminderScanner:
    return ReminderScanner(
        SessionLocal,
        get_notification_service(),
        ledger_enabled=settings.reminder_ledger_enabled,
    )


def build_scheduler(scanner: ReminderScanner) -> BackgroundScheduler:
    """One job, firing at the top of every minute; late or overlapping runs are dropped."""
    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)
    scheduler.add_job(
        run_reminder_tick,
        trigger="cron",
        minute="*",
        args=[scanner],
        id=REMINDER_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=30,
    )
    logger.info("Registered reminder job (every minute, %s)", settings.scheduler_timezone)
    return scheduler


def run_reminder_tick(scanner: ReminderScanner) -> None:
    try:
        result = scanner.run_tick()
        logger.debug(
            "Reminder tick complete: plans=%s sent=%s skipped=%s failures=%s",
            result.plans_scanned,
            result.reminders_sent,
            result.skipped_without_token,
            result.failures,
        )
    except Exception:
        logger.exception("Reminder tick failed")


def main() -> None:
    configure_logging(log_level=settings.log_level)
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scanner = build_scanner()
    scheduler = build_scheduler(scanner)

    if settings.scheduler_enabled:
        scheduler.start()
        if settings.jobs_run_on_startup:
            logger.info("Running reminder scan once on startup")
            run_reminder_tick(scanner)
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
