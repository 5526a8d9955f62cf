"""Edit/delete lockout close to a plan's start time."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from app.db.models.plan import Plan
from app.services.time_utils import parse_time

logger = logging.getLogger(__name__)

LOCKOUT_WINDOW = timedelta(minutes=15)


def is_locked(representative_time: Optional[str], plan_date: date, now: datetime) -> bool:
    """True when the plan starts less than fifteen minutes after ``now``.

    An unparsable representative time never locks the plan.
    """
    parsed = parse_time(representative_time)
    if not parsed.valid:
        logger.debug("Lockout check skipped for unparsable time %r", representative_time)
        return False
    starts_at = datetime.combine(plan_date, time(parsed.hours, parsed.minutes))
    return starts_at - now < LOCKOUT_WINDOW


def plan_is_locked(plan: Plan, now: datetime) -> bool:
    # The first task by insertion order stands in for the plan's start.
    if not plan.tasks:
        return False
    return is_locked(plan.tasks[0].time, plan.date, now)
