"""Turn a model reply into plan changes and a conversational answer.

The model either answers in prose, which is passed through verbatim, or with a
JSON object tagged by ``response_type``. Tagged payloads are decoded into one of
the action models below and validated field by field before anything touches
the database. Formatting problems never escape as errors; they become a
friendly reply instead.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.schemas.plan import TaskInput
from app.db.models.plan import Plan
from app.observability.metrics import log_metric
from app.services.action_log import record_action
from app.services.conflicts import occupied_times
from app.services.lockout import plan_is_locked
from app.services.plan_service import (
    TimeConflictError,
    create_plan,
    find_task_by_description,
    is_task_time_clash,
    plans_on_date,
    remove_task,
)
from app.services.time_utils import normalize_time, parse_time

logger = logging.getLogger(__name__)

SCHEDULE_SUMMARY_PLACEHOLDER = "A new day..."
REPLY_UNKNOWN_ACTION = "I'm not sure how to handle that request, but I'm learning!"
REPLY_FORMAT_TROUBLE = "I had a little trouble formatting my thoughts."
REPLY_SCHEDULE_CLEAR = "Your schedule is clear for now!"
REPLY_LOCKED = "That plan starts in less than 15 minutes, so I can't change it anymore."

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_FULL_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_MONTH_DAY = re.compile(r"^-{0,2}(\d{1,2})-(\d{1,2})$")


def coerce_date(raw: str, today: date) -> date:
    """Read ``YYYY-MM-DD`` (time suffix ignored); a year-less ``MM-DD`` gets the current year."""
    text = raw.strip()
    full = _FULL_DATE.match(text)
    if full:
        return date(int(full.group(1)), int(full.group(2)), int(full.group(3)))
    month_day = _MONTH_DAY.match(text)
    if month_day:
        return date(today.year, int(month_day.group(1)), int(month_day.group(2)))
    raise ValueError(f"unrecognised date {raw!r}")


class _Payload(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _strip_strings(cls, value):
        return value.strip() if isinstance(value, str) else value


class ScheduleTask(_Payload):
    description: str = Field(..., min_length=1)
    time: str = Field(..., min_length=1)


class ScheduleData(_Payload):
    title: str = Field(..., min_length=1)
    date: str = Field(..., min_length=1)
    tasks: List[ScheduleTask] = Field(..., min_length=1)


class DeleteData(_Payload):
    task_description: str = Field(..., min_length=1)
    date: str = Field(..., min_length=1)


class EditData(_Payload):
    original_task_description: str = Field(..., min_length=1)
    date: str = Field(..., min_length=1)
    new_description: Optional[str] = None
    new_time: Optional[str] = None

    @model_validator(mode="after")
    def _requires_change(self) -> "EditData":
        if not self.new_description and not self.new_time:
            raise ValueError("edit needs new_description or new_time")
        return self


class ReviewData(_Payload):
    duration: Optional[str] = "upcoming"


class ScheduleAction(BaseModel):
    response_type: Literal["schedule"]
    data: ScheduleData
    confirmation_message: Optional[str] = None


class DeleteAction(BaseModel):
    response_type: Literal["delete"]
    data: DeleteData
    confirmation_message: Optional[str] = None


class EditAction(BaseModel):
    response_type: Literal["edit"]
    data: EditData
    confirmation_message: Optional[str] = None


class ReviewAction(BaseModel):
    response_type: Literal["review"]
    data: ReviewData = Field(default_factory=ReviewData)
    confirmation_message: Optional[str] = None


@dataclass
class PlainText:
    text: str


@dataclass
class UnknownAction:
    tag: object


@dataclass
class MalformedAction:
    reason: str


AIAction = Union[ScheduleAction, DeleteAction, EditAction, ReviewAction, PlainText, UnknownAction, MalformedAction]

_ACTION_MODELS = {
    "schedule": ScheduleAction,
    "delete": DeleteAction,
    "edit": EditAction,
    "review": ReviewAction,
}


@dataclass
class ChatOutcome:
    reply: str
    action: Optional[str] = None
    plan: Optional[Plan] = None


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text).strip()


def decode_ai_reply(raw_text: str) -> AIAction:
    """Classify a model reply as prose or as one of the tagged action payloads."""
    text = strip_code_fences(raw_text or "")
    if not (text.startswith("{") and text.endswith("}")):
        return PlainText(text)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        return MalformedAction(f"invalid JSON: {exc.msg}")
    if not isinstance(payload, dict):
        return MalformedAction("payload is not an object")

    tag = payload.get("response_type")
    model = _ACTION_MODELS.get(tag) if isinstance(tag, str) else None
    if model is None:
        return UnknownAction(tag)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        return MalformedAction(f"{tag} payload failed validation: {exc.error_count()} error(s)")


def interpret(db: Session, *, user_id: UUID, ai_text: str, now: datetime) -> ChatOutcome:
    """Apply the action carried by ``ai_text`` for ``user_id`` and build the reply."""
    action = decode_ai_reply(ai_text)
    label = type(action).__name__
    log_metric("chat.action", 1, metadata={"kind": label})

    if isinstance(action, PlainText):
        return ChatOutcome(reply=action.text)
    if isinstance(action, UnknownAction):
        logger.info("Model returned unsupported response_type %r", action.tag)
        return ChatOutcome(reply=REPLY_UNKNOWN_ACTION)
    if isinstance(action, MalformedAction):
        logger.warning("Could not use model action payload: %s", action.reason)
        return ChatOutcome(reply=REPLY_FORMAT_TROUBLE)

    try:
        if isinstance(action, ScheduleAction):
            return _handle_schedule(db, user_id, action, now)
        if isinstance(action, DeleteAction):
            return _handle_delete(db, user_id, action, now)
        if isinstance(action, EditAction):
            return _handle_edit(db, user_id, action, now)
        return _handle_review(db, user_id, now)
    except ValueError as exc:
        # Bad calendar date inside an otherwise well-formed payload.
        logger.warning("Rejected %s action: %s", label, exc)
        return ChatOutcome(reply=REPLY_FORMAT_TROUBLE)


def _handle_schedule(db: Session, user_id: UUID, action: ScheduleAction, now: datetime) -> ChatOutcome:
    data = action.data
    day = coerce_date(data.date, now.date())
    tasks = [TaskInput(description=task.description, time=task.time) for task in data.tasks]
    try:
        plan = create_plan(
            db,
            user_id=user_id,
            title=data.title,
            day=day,
            tasks=tasks,
            summary=SCHEDULE_SUMMARY_PLACEHOLDER,
        )
    except TimeConflictError as exc:
        description = exc.description or "that task"
        return ChatOutcome(
            reply=(
                f'Sorry, I can\'t schedule "{description}" because you already have another task '
                f"scheduled for {exc.time} on that day."
            )
        )

    record_action(
        db,
        user_id=user_id,
        plan_id=plan.id,
        action_type="plan_created",
        payload={"date": day.isoformat(), "times": [task.time for task in plan.tasks]},
        reason="Scheduled from chat",
    )
    reply = action.confirmation_message or f'Done! I\'ve scheduled "{plan.title}" for {day.isoformat()}.'
    return ChatOutcome(reply=reply, action="plan_created", plan=plan)


def _handle_delete(db: Session, user_id: UUID, action: DeleteAction, now: datetime) -> ChatOutcome:
    data = action.data
    day = coerce_date(data.date, now.date())
    match = find_task_by_description(plans_on_date(db, user_id, day), data.task_description)
    if match is None:
        return ChatOutcome(reply=f'I couldn\'t find a task like "{data.task_description}".')

    plan, task = match
    if plan_is_locked(plan, now):
        return ChatOutcome(reply=REPLY_LOCKED)

    description = task.description
    plan_id = plan.id
    task_payload = {"task_id": str(task.id), "description": description, "time": task.time}
    plan_removed = remove_task(db, plan, task)
    record_action(
        db,
        user_id=user_id,
        plan_id=plan_id,
        action_type="plan_deleted" if plan_removed else "task_deleted",
        payload=task_payload,
        reason="Deleted from chat",
    )
    reply = action.confirmation_message or f'Okay, I\'ve deleted "{description}".'
    return ChatOutcome(reply=reply, action="plan_deleted", plan=None if plan_removed else plan)


def _handle_edit(db: Session, user_id: UUID, action: EditAction, now: datetime) -> ChatOutcome:
    data = action.data
    day = coerce_date(data.date, now.date())
    match = find_task_by_description(plans_on_date(db, user_id, day), data.original_task_description)
    if match is None:
        return ChatOutcome(reply=f'I couldn\'t find a task like "{data.original_task_description}" to edit.')

    plan, task = match
    if plan_is_locked(plan, now):
        return ChatOutcome(reply=REPLY_LOCKED)

    before = {"description": task.description, "time": task.time}
    new_time = normalize_time(data.new_time) if data.new_time else None
    conflict_reply = f"Sorry, you already have another task scheduled for {data.new_time}."
    if new_time is not None:
        if new_time in occupied_times(db, user_id, day, exclude_task_id=task.id):
            return ChatOutcome(reply=conflict_reply)
        task.time = new_time
    if data.new_description:
        task.description = data.new_description

    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if not is_task_time_clash(exc):
            raise
        return ChatOutcome(reply=conflict_reply)
    record_action(
        db,
        user_id=user_id,
        plan_id=plan.id,
        action_type="plan_edited",
        payload={"task_id": str(task.id), "before": before, "after": {"description": task.description, "time": task.time}},
        reason="Edited from chat",
    )
    db.refresh(plan)
    reply = action.confirmation_message or "Done! I've updated your plan."
    return ChatOutcome(reply=reply, action="plan_edited", plan=plan)


def upcoming_tasks(db: Session, user_id: UUID, now: datetime) -> List[tuple[int, int, str, str]]:
    """Incomplete tasks later today as ``(hours, minutes, time, description)``, soonest first."""
    upcoming = []
    for plan in plans_on_date(db, user_id, now.date()):
        for task in plan.tasks:
            if task.is_completed:
                continue
            parsed = parse_time(task.time)
            if not parsed.valid:
                continue
            if datetime.combine(plan.date, time(parsed.hours, parsed.minutes)) > now:
                upcoming.append((parsed.hours, parsed.minutes, task.time, task.description))
    upcoming.sort(key=lambda item: (item[0], item[1]))
    return upcoming


def _handle_review(db: Session, user_id: UUID, now: datetime) -> ChatOutcome:
    upcoming = upcoming_tasks(db, user_id, now)
    if not upcoming:
        return ChatOutcome(reply=REPLY_SCHEDULE_CLEAR)
    parts = [f'at {task_time} you have "{description}"' for _, _, task_time, description in upcoming]
    return ChatOutcome(reply=f"Okay, coming up: {', and later '.join(parts)}.")
