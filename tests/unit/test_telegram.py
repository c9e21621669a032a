"""
Unit tests for the Telegram delivery channel.
"""

import json

import httpx
import pytest

from stockroom.shared.exceptions import TelegramError
from stockroom.shared.tools.telegram import TelegramChannel


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    """Skip tenacity backoff waits."""
    monkeypatch.setattr(TelegramChannel._post.retry, "sleep", lambda seconds: None)


def _channel(settings, handler) -> TelegramChannel:
    return TelegramChannel(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestSendMessage:
    """Tests for send_message."""

    def test_posts_html_message(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        payload = _channel(settings, handler).send_message("555", "<b>hi</b>")

        assert seen["url"] == "https://telegram.test/bottest-token/sendMessage"
        assert seen["body"] == {"chat_id": "555", "text": "<b>hi</b>", "parse_mode": "HTML"}
        assert payload["ok"] is True

    def test_text_truncated_to_limit(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        _channel(settings, handler).send_message("555", "x" * 5000)
        assert len(seen["body"]["text"]) == 4096

    def test_ok_false_raises(self, settings):
        handler = lambda r: httpx.Response(200, json={"ok": False, "description": "chat not found"})
        with pytest.raises(TelegramError, match="chat not found"):
            _channel(settings, handler).send_message("555", "hi")

    def test_http_error_status_raises(self, settings):
        handler = lambda r: httpx.Response(502, text="bad gateway")
        with pytest.raises(TelegramError, match="HTTP 502"):
            _channel(settings, handler).send_message("555", "hi")

    def test_missing_token_raises_without_request(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"ok": True})

        channel = _channel(settings.model_copy(update={"telegram_bot_token": ""}), handler)
        with pytest.raises(TelegramError, match="bot token is not configured"):
            channel.send_message("555", "hi")
        assert calls == []

    def test_connect_error_retried(self, settings):
        """Connection failures are retried; a later success wins."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"ok": True})

        _channel(settings, handler).send_message("555", "hi")
        assert len(attempts) == 3

    def test_connect_error_exhausted(self, settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TelegramError, match="refused"):
            _channel(settings, handler).send_message("555", "hi")

    def test_read_timeout_not_retried(self, settings):
        """A timeout after the request went out is not retried."""
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TelegramError):
            _channel(settings, handler).send_message("555", "hi")
        assert len(attempts) == 1


class TestSendDocument:
    """Tests for send_document."""

    def test_posts_multipart_file(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.read().decode("utf-8")
            return httpx.Response(200, json={"ok": True})

        _channel(settings, handler).send_document("555", "Gmail_6.txt", "line one", caption="Paid")

        assert seen["url"].endswith("/sendDocument")
        assert seen["content_type"].startswith("multipart/form-data")
        assert 'filename="Gmail_6.txt"' in seen["body"]
        assert "line one" in seen["body"]
        assert "Paid" in seen["body"]
