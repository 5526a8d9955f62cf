"""Notification service interface."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class PushMessage:
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: str = "default"


@dataclass
class NotificationResult:
    status: str
    reason: str


class NotificationError(RuntimeError):
    """Raised when a provider fails to hand a message to the push service."""


class NotificationService:
    """Base interface for push providers."""

    name = "base"

    def send_push(self, message: PushMessage) -> NotificationResult:
        raise NotImplementedError
