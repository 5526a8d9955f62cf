"""Schemas for job operations endpoints."""
from __future__ import annotations

from pydantic import BaseModel


class ReminderRunResponse(BaseModel):
    job: str
    plans_scanned: int
    reminders_sent: int
    skipped_without_token: int
    failures: int
    request_id: str
