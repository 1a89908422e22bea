from __future__ import annotations

import json
import logging

import httpx
import pytest

from evolve_mcp.notify import LoggingNotifier, WebhookNotifier


def test_logging_notifier_logs(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="evolve_mcp.notify"):
        LoggingNotifier().notify("Added mood tracking", "modification")
    assert "[modification] Added mood tracking" in caplog.text


def test_webhook_notifier_posts_payload() -> None:
    received: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(204)

    WebhookNotifier("https://hooks.example/evolve", transport=httpx.MockTransport(handler)).notify(
        "Removed water tracker", "modification"
    )

    assert received == [{"message": "Removed water tracker", "category": "modification"}]


def test_webhook_failure_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    notifier = WebhookNotifier(
        "https://hooks.example/evolve",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with caplog.at_level(logging.WARNING, logger="evolve_mcp.notify"):
        notifier.notify("Added chart", "modification")
    assert "Notification webhook failed" in caplog.text
