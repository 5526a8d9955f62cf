from __future__ import annotations

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models.agent_action_log import AgentActionLog
from app.db.models.plan import Plan
from app.db.models.reminder_delivery import ReminderDelivery
from app.db.models.task import PlanTask
from app.db.models.user import User
from app.services.notifications.base import NotificationResult, NotificationService
from app.services.reminder_scanner import ReminderScanner, in_reminder_window, minutes_until

TODAY = date(2025, 6, 1)


class _RecordingService(NotificationService):
    name = "recording"

    def __init__(self):
        self.messages = []

    def send_push(self, message):
        self.messages.append(message)
        return NotificationResult(status="sent", reason="test")


def _session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    User.__table__.create(bind=engine)
    Plan.__table__.create(bind=engine)
    PlanTask.__table__.create(bind=engine)
    AgentActionLog.__table__.create(bind=engine)
    ReminderDelivery.__table__.create(bind=engine)
    return TestingSession


def _seed_user(session_factory, push_token="ExponentPushToken[abc123]"):
    session = session_factory()
    try:
        user_id = uuid4()
        session.add(
            User(id=user_id, name="Sam", email=f"{user_id.hex}@example.com", password_hash="x", push_token=push_token)
        )
        session.commit()
        return user_id
    finally:
        session.close()


def _seed_plan(session_factory, user_id, *tasks, day=TODAY):
    session = session_factory()
    try:
        plan = Plan(user_id=user_id, title="Plan", date=day)
        plan.tasks = [
            PlanTask(
                user_id=user_id,
                scheduled_day=day,
                position=index,
                description=description,
                time=value,
                is_completed=completed,
            )
            for index, (description, value, completed) in enumerate(tasks)
        ]
        session.add(plan)
        session.commit()
        return plan.id
    finally:
        session.close()


@pytest.fixture()
def session_factory():
    return _session_factory()


@pytest.fixture()
def service():
    return _RecordingService()


def _scanner(session_factory, service, **kwargs):
    kwargs.setdefault("reminder_writer", lambda description, task_time: f"{description} at {task_time}")
    return ReminderScanner(session_factory, service, **kwargs)


def test_window_bounds() -> None:
    now = datetime(2025, 6, 1, 8, 55)
    assert minutes_until("09:00", now) == 5
    assert in_reminder_window("09:00", now)
    assert in_reminder_window("09:00", now + timedelta(seconds=30))
    assert not in_reminder_window("09:00", now - timedelta(seconds=30))
    assert not in_reminder_window("later", now)
    assert minutes_until("later", now) is None


def test_task_is_reminded_on_exactly_one_minute_tick(session_factory, service) -> None:
    user_id = _seed_user(session_factory)
    plan_id = _seed_plan(session_factory, user_id, ("Standup", "09:00", False))
    scanner = _scanner(session_factory, service)

    ticks = [datetime(2025, 6, 1, 8, minute, 30) for minute in range(50, 60)]
    results = [scanner.run_tick(now) for now in ticks]

    assert sum(result.reminders_sent for result in results) == 1
    assert len(service.messages) == 1
    message = service.messages[0]
    assert message.to == "ExponentPushToken[abc123]"
    assert message.title == "Reminder: Standup"
    assert message.body == "Standup at 09:00"
    assert message.data == {"planId": str(plan_id)}


def test_users_without_push_token_are_skipped(session_factory, service) -> None:
    user_id = _seed_user(session_factory, push_token=None)
    _seed_plan(session_factory, user_id, ("Standup", "09:00", False))

    result = _scanner(session_factory, service).run_tick(datetime(2025, 6, 1, 8, 55))

    assert result.skipped_without_token == 1
    assert result.reminders_sent == 0
    assert service.messages == []


def test_completed_tasks_and_other_days_are_ignored(session_factory, service) -> None:
    user_id = _seed_user(session_factory)
    _seed_plan(session_factory, user_id, ("Done already", "09:00", True))
    _seed_plan(session_factory, user_id, ("Tomorrow", "09:00", False), day=TODAY + timedelta(days=1))

    result = _scanner(session_factory, service).run_tick(datetime(2025, 6, 1, 8, 55))

    assert result.plans_scanned == 1
    assert service.messages == []


def test_one_failing_task_does_not_stop_the_tick(session_factory, service) -> None:
    first_user = _seed_user(session_factory)
    second_user = _seed_user(session_factory, push_token="ExponentPushToken[def456]")
    _seed_plan(session_factory, first_user, ("Broken", "09:00", False))
    _seed_plan(session_factory, second_user, ("Fine", "09:00", False))

    def writer(description, task_time):
        if description == "Broken":
            raise RuntimeError("model down")
        return "go"

    result = _scanner(session_factory, service, reminder_writer=writer).run_tick(datetime(2025, 6, 1, 8, 55))

    assert result.failures == 1
    assert result.reminders_sent == 1
    assert [message.title for message in service.messages] == ["Reminder: Fine"]


def test_dispatch_is_recorded_in_action_log(session_factory, service) -> None:
    user_id = _seed_user(session_factory)
    plan_id = _seed_plan(session_factory, user_id, ("Standup", "09:00", False))

    _scanner(session_factory, service).run_tick(datetime(2025, 6, 1, 8, 55))

    session = session_factory()
    log = session.query(AgentActionLog).one()
    session.close()
    assert log.action_type == "reminder_sent"
    assert log.plan_id == plan_id
    assert log.action_payload["provider"] == "recording"
    assert log.action_payload["result"]["status"] == "sent"


def test_ledger_suppresses_second_send_inside_same_window(session_factory, service) -> None:
    user_id = _seed_user(session_factory)
    _seed_plan(session_factory, user_id, ("Standup", "09:00", False))
    scanner = _scanner(session_factory, service, ledger_enabled=True)

    scanner.run_tick(datetime(2025, 6, 1, 8, 55, 0))
    scanner.run_tick(datetime(2025, 6, 1, 8, 55, 20))

    assert len(service.messages) == 1
    session = session_factory()
    assert session.query(ReminderDelivery).count() == 1
    session.close()


def test_without_ledger_overlapping_ticks_may_repeat(session_factory, service) -> None:
    user_id = _seed_user(session_factory)
    _seed_plan(session_factory, user_id, ("Standup", "09:00", False))
    scanner = _scanner(session_factory, service)

    scanner.run_tick(datetime(2025, 6, 1, 8, 55, 0))
    scanner.run_tick(datetime(2025, 6, 1, 8, 55, 20))

    assert len(service.messages) == 2
