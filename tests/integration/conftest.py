"""
Integration test fixtures and configuration.

One mocked HTTP client serves both the Telegram Bot API and the mailbox
services; requests are routed by host and recorded for assertions.
"""

import json
from typing import Any

import httpx
import pytest


class FakeServices:
    """Routes mocked HTTP traffic and keeps a log of what was sent."""

    def __init__(self) -> None:
        self.inboxes: dict[str, Any] = {}
        self.telegram_calls: list[dict[str, Any]] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "telegram.test":
            return self._telegram(request)
        if request.url.host == "tempmail.test":
            return self._tempmail(request)
        return httpx.Response(404, json={"error": "unknown host"})

    def _telegram(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        call: dict[str, Any] = {"method": method}
        if method == "sendMessage":
            call.update(json.loads(request.content))
        else:
            call["raw"] = request.read().decode("utf-8", errors="replace")
        self.telegram_calls.append(call)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(self.telegram_calls)}})

    def _tempmail(self, request: httpx.Request) -> httpx.Response:
        address = request.url.path.rsplit("/", 1)[-1]
        inbox = self.inboxes.get(address, [])
        if isinstance(inbox, int):
            return httpx.Response(inbox, text="upstream failure")
        return httpx.Response(200, json=inbox)


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def http_client(services: FakeServices):
    client = httpx.Client(transport=httpx.MockTransport(services.handle))
    yield client
    client.close()
