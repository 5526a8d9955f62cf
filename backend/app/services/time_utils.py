"""Parsing and canonicalisation of human-entered task times.

Every time comparison in the planner goes through :func:`parse_time`, and every
stored task time goes through :func:`normalize_time`. Canonical times are
zero-padded 24-hour ``HH:MM`` strings.
"""
from __future__ import annotations

import re
from typing import NamedTuple, Optional

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_MERIDIEM = re.compile(r"am|pm")
CANONICAL_TIME = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")


class ParsedTime(NamedTuple):
    hours: Optional[int]
    minutes: Optional[int]

    @property
    def valid(self) -> bool:
        return self.hours is not None and self.minutes is not None


INVALID_TIME = ParsedTime(None, None)


def _leading_int(segment: str) -> Optional[int]:
    match = _LEADING_INT.match(segment)
    return int(match.group(1)) if match else None


def parse_time(raw: Optional[str]) -> ParsedTime:
    """Parse "9:30", "5pm", "12am" or "17:00" into an (hours, minutes) pair.

    Never raises. A component is None when its segment is missing, malformed or
    outside the clock range; an absent or unreadable minute segment counts as 0.
    """
    if not raw or not isinstance(raw, str):
        return INVALID_TIME
    text = raw.lower().strip()
    if not text:
        return INVALID_TIME

    offset = 0
    if "pm" in text and not text.startswith("12"):
        offset = 12
    if text.startswith("12") and "am" in text:
        offset = -12

    parts = _MERIDIEM.sub("", text).strip().split(":")
    hour_value = _leading_int(parts[0]) if parts[0] else None
    hours = None if hour_value is None else hour_value + offset

    minutes: Optional[int] = 0
    if len(parts) > 1 and parts[1]:
        minute_value = _leading_int(parts[1])
        if minute_value is not None:
            minutes = minute_value

    # "12pm" style double counting
    if hours == 24:
        hours = 12

    if hours is not None and not 0 <= hours <= 23:
        hours = None
    if minutes is not None and not 0 <= minutes <= 59:
        minutes = None
    return ParsedTime(hours, minutes)


def normalize_time(raw: Optional[str]) -> Optional[str]:
    """Return the canonical ``HH:MM`` form of ``raw``, or ``raw`` itself if it cannot be parsed."""
    parsed = parse_time(raw)
    if not parsed.valid:
        return raw

    hours = parsed.hours
    lowered = raw.lower().strip()
    if (lowered == "12am" or lowered.startswith("12:")) and "am" in lowered:
        hours = 0
    return f"{hours:02d}:{parsed.minutes:02d}"


def is_canonical(value: Optional[str]) -> bool:
    return bool(value) and CANONICAL_TIME.match(value) is not None


def sort_key(value: Optional[str]) -> tuple[int, int, int]:
    """Order by hour then minute; unparsable times sort last."""
    parsed = parse_time(value)
    if not parsed.valid:
        return (1, 0, 0)
    return (0, parsed.hours, parsed.minutes)
