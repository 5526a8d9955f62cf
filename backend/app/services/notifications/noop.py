"""No-op notification provider (logs only)."""
from __future__ import annotations

import logging

from app.services.notifications.base import NotificationResult, NotificationService, PushMessage


logger = logging.getLogger(__name__)


class NoopNotificationService(NotificationService):
    name = "noop"

    def send_push(self, message: PushMessage) -> NotificationResult:
        logger.info(
            "Push queued (noop) to=...%s title=%r data=%s",
            message.to[-6:],
            message.title,
            message.data,
        )
        return NotificationResult(status="noop", reason="notification provider is noop")
