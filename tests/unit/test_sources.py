"""
Unit tests for mailbox source adapters.

HTTP is served by httpx.MockTransport, so requests and responses are checked
without any network access.
"""

import json

import httpx
import pytest

from stockroom.shared.exceptions import AdapterError
from stockroom.shared.models.check import CheckSource, GraphAccount, MailTarget
from stockroom.verification.sources import (
    HotmailSource,
    TempMailSource,
    TinyHostSource,
    build_sources,
)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestTempMailSource:
    """Tests for the generic inbox source."""

    def test_fetch_messages(self, settings):
        """Messages keep subject and fromAddress."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["method"] = request.method
            return httpx.Response(
                200,
                json=[
                    {"subject": "Verify your account", "fromAddress": "noreply@service.com"},
                    {"subject": None, "fromAddress": "other@x.io"},
                ],
            )

        source = TempMailSource(_client(handler), settings)
        messages = source.fetch_messages(MailTarget(identifier="box+1@example.com"))

        assert seen["method"] == "GET"
        assert seen["path"] == "/api/email/box+1@example.com"
        assert messages[0].subject == "Verify your account"
        assert messages[0].from_address == "noreply@service.com"
        assert messages[1].subject == ""

    def test_non_list_body_is_empty(self, settings):
        source = TempMailSource(_client(lambda r: httpx.Response(200, json={"detail": "none"})), settings)
        assert source.fetch_messages(MailTarget(identifier="a@b.co")) == []

    def test_http_error_status(self, settings):
        source = TempMailSource(_client(lambda r: httpx.Response(503)), settings)
        with pytest.raises(AdapterError) as exc_info:
            source.fetch_messages(MailTarget(identifier="a@b.co"))
        assert exc_info.value.message == "TempMail API error: HTTP 503"
        assert exc_info.value.status_code == 503

    def test_transport_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        source = TempMailSource(_client(handler), settings)
        with pytest.raises(AdapterError, match="TempMail API error"):
            source.fetch_messages(MailTarget(identifier="a@b.co"))


class TestTinyHostSource:
    """Tests for the alternate inbox source."""

    def test_fetch_messages_normalizes_fields(self, settings):
        """Subject and sender are taken from the first populated alias."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "emails": [
                        {"title": "Welcome", "sender": "hello@shop.io"},
                        {"subject": "Code", "from_address": "codes@shop.io"},
                        "not-a-dict",
                    ],
                },
            )

        source = TinyHostSource(_client(handler), settings)
        messages = source.fetch_messages(MailTarget(identifier="a@b.co"))

        assert seen["body"] == {"email": "a@b.co"}
        assert [(m.subject, m.from_address) for m in messages] == [
            ("Welcome", "hello@shop.io"),
            ("Code", "codes@shop.io"),
        ]

    def test_api_error_message_used(self, settings):
        source = TinyHostSource(
            _client(lambda r: httpx.Response(200, json={"success": False, "error": "Mailbox not found"})),
            settings,
        )
        with pytest.raises(AdapterError, match="Mailbox not found"):
            source.fetch_messages(MailTarget(identifier="a@b.co"))

    def test_blank_api_error_falls_back_to_status(self, settings):
        source = TinyHostSource(
            _client(lambda r: httpx.Response(500, json={"success": False, "error": "  "})),
            settings,
        )
        with pytest.raises(AdapterError) as exc_info:
            source.fetch_messages(MailTarget(identifier="a@b.co"))
        assert exc_info.value.message == "TinyHost API error: HTTP 500"

    def test_undecodable_body(self, settings):
        source = TinyHostSource(_client(lambda r: httpx.Response(200, text="<html>")), settings)
        with pytest.raises(AdapterError, match="HTTP 200"):
            source.fetch_messages(MailTarget(identifier="a@b.co"))


class TestHotmailSource:
    """Tests for the Graph mailbox source."""

    def _target(self, client_id: str = "") -> MailTarget:
        account = GraphAccount(
            email="u@hotmail.com",
            password="pw",
            refresh_token="M.token-value-long-enough",
            client_id=client_id,
        )
        return MailTarget(identifier=account.email, account=account)

    def test_request_body_and_nested_sender(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "emails": [
                        {"subject": "Sign-in", "from": {"emailAddress": {"address": "security@ms.com"}}},
                        {"Subject": "Hi", "From": {"EmailAddress": {"Address": "friend@x.io"}}},
                    ],
                },
            )

        source = HotmailSource(_client(handler), settings)
        messages = source.fetch_messages(self._target())

        assert seen["body"] == {
            "hotmail_email": "u@hotmail.com",
            "refresh_token": "M.token-value-long-enough",
            "client_id": settings.hotmail_default_client_id,
            "auth_mode": "graph",
            "max_messages": 20,
            "return_all_emails": True,
        }
        assert messages[0].from_address == "security@ms.com"
        assert messages[1].subject == "Hi"
        assert messages[1].from_address == "friend@x.io"

    def test_record_client_id_preferred(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "emails": []})

        source = HotmailSource(_client(handler), settings)
        assert source.fetch_messages(self._target(client_id="abc")) == []
        assert seen["body"]["client_id"] == "abc"

    def test_missing_account(self, settings):
        source = HotmailSource(_client(lambda r: httpx.Response(200)), settings)
        with pytest.raises(AdapterError, match="credential record"):
            source.fetch_messages(MailTarget(identifier="u@hotmail.com"))


class TestBuildSources:
    """Tests for build_sources."""

    def test_registry_shares_client(self, settings):
        client = _client(lambda r: httpx.Response(200))
        sources = build_sources(settings, client=client)

        assert set(sources) == {CheckSource.TEMPMAIL, CheckSource.TINYHOST, CheckSource.HOTMAIL}
        assert all(source._client is client for source in sources.values())
