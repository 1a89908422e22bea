"""Best-effort notification sinks for completed modifications."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, message: str, category: str) -> None: ...


class LoggingNotifier:
    def notify(self, message: str, category: str) -> None:
        logger.info("[%s] %s", category, message)


class WebhookNotifier:
    """POSTs ``{"message", "category"}`` to a webhook. Failures are logged only."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._transport = transport

    def notify(self, message: str, category: str) -> None:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(self._url, json={"message": message, "category": category})
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Notification webhook failed: %s", exc)
