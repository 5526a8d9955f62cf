"""Expo push API provider."""
from __future__ import annotations

import logging
from dataclasses import asdict

import httpx

from app.services.notifications.base import (
    NotificationError,
    NotificationResult,
    NotificationService,
    PushMessage,
)


logger = logging.getLogger(__name__)

_HEADERS = {
    "Accept": "application/json",
    "Accept-Encoding": "gzip, deflate",
    "Content-Type": "application/json",
}


class ExpoPushNotificationService(NotificationService):
    name = "expo"

    def __init__(self, url: str, *, timeout: float = 10.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def send_push(self, message: PushMessage) -> NotificationResult:
        payload = asdict(message)
        try:
            if self._client is not None:
                response = self._client.post(self.url, json=payload, headers=_HEADERS, timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=payload, headers=_HEADERS, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Expo push request failed: {exc}") from exc

        # Expo answers 200 even for rejected tickets; the verdict lives in the body.
        try:
            ticket = response.json().get("data") or {}
        except ValueError:
            ticket = {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}
        if ticket.get("status") == "error":
            raise NotificationError(f"Expo rejected push: {ticket.get('message') or ticket.get('details')}")

        logger.info("Push sent to ...%s (ticket=%s)", message.to[-6:], ticket.get("id"))
        return NotificationResult(status="sent", reason=str(ticket.get("id") or "accepted"))
