"""
Mailbox Sources

Adapters that read recent messages of a mailbox from an external service and
normalize them into MailMessage(subject, from_address). Adapters apply no
filtering; any failure is raised as AdapterError.
"""

from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from stockroom.shared.config import Settings, get_settings
from stockroom.shared.exceptions import AdapterError
from stockroom.shared.models.check import CheckSource, MailMessage, MailTarget

log = structlog.get_logger()


def _text(*candidates: Any) -> str:
    """First truthy candidate as a string."""
    for candidate in candidates:
        if candidate:
            return str(candidate)
    return ""


class MailSource(ABC):
    """Fetch recent messages for one mailbox."""

    source: CheckSource
    label: str

    def __init__(self, client: httpx.Client, settings: Settings):
        self._client = client
        self._settings = settings

    @abstractmethod
    def fetch_messages(self, target: MailTarget) -> list[MailMessage]:
        """
        Raises:
            AdapterError: On non-success status, transport failure or malformed body
        """

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise AdapterError(self.source.value, f"{self.label} API error: {e}") from e

    def _success_payload(self, response: httpx.Response) -> dict[str, Any]:
        """Decode a `{"success": true, ...}` envelope or raise the API's error."""
        http_error = f"{self.label} API error: HTTP {response.status_code}"
        try:
            data = response.json()
        except ValueError:
            raise AdapterError(self.source.value, http_error, response.status_code) from None

        if not isinstance(data, dict):
            raise AdapterError(self.source.value, http_error, response.status_code)

        if not response.is_success or data.get("success") is not True:
            api_error = data.get("error")
            message = api_error if isinstance(api_error, str) and api_error.strip() else http_error
            raise AdapterError(self.source.value, message, response.status_code)

        return data


class TempMailSource(MailSource):
    """Generic inbox: GET <base>/email/<address>."""

    source = CheckSource.TEMPMAIL
    label = "TempMail"

    def fetch_messages(self, target: MailTarget) -> list[MailMessage]:
        base = self._settings.tempmail_api_base.rstrip("/")
        url = f"{base}/email/{quote(target.identifier, safe='')}"
        response = self._request("GET", url)
        if not response.is_success:
            raise AdapterError(
                self.source.value,
                f"{self.label} API error: HTTP {response.status_code}",
                response.status_code,
            )

        try:
            messages = response.json()
        except ValueError:
            raise AdapterError(
                self.source.value,
                f"{self.label} API error: malformed response",
                response.status_code,
            ) from None

        if not isinstance(messages, list):
            return []
        return [
            MailMessage(
                subject=_text(message.get("subject")),
                from_address=_text(message.get("fromAddress")),
            )
            for message in messages
            if isinstance(message, dict)
        ]


class TinyHostSource(MailSource):
    """Alternate inbox: POST {"email": ...}."""

    source = CheckSource.TINYHOST
    label = "TinyHost"

    def fetch_messages(self, target: MailTarget) -> list[MailMessage]:
        response = self._request(
            "POST",
            self._settings.tinyhost_api_url,
            json={"email": target.identifier},
        )
        data = self._success_payload(response)
        emails = data.get("emails")
        if not isinstance(emails, list):
            return []
        return [
            MailMessage(
                subject=_text(message.get("subject"), message.get("title")),
                from_address=_text(
                    message.get("from"),
                    message.get("sender"),
                    message.get("fromAddress"),
                    message.get("from_address"),
                ),
            )
            for message in emails
            if isinstance(message, dict)
        ]


class HotmailSource(MailSource):
    """Graph mailbox through the read-inbox proxy; needs a refresh-token record."""

    source = CheckSource.HOTMAIL
    label = "Hotmail"

    def fetch_messages(self, target: MailTarget) -> list[MailMessage]:
        account = target.account
        if account is None:
            raise AdapterError(self.source.value, "Hotmail source requires a credential record")

        response = self._request(
            "POST",
            self._settings.hotmail_proxy_url,
            json={
                "hotmail_email": account.email,
                "refresh_token": account.refresh_token,
                "client_id": account.client_id or self._settings.hotmail_default_client_id,
                "auth_mode": self._settings.hotmail_auth_mode,
                "max_messages": self._settings.hotmail_max_messages,
                "return_all_emails": True,
            },
        )
        data = self._success_payload(response)
        emails = data.get("emails")
        if not isinstance(emails, list):
            return []
        return [
            MailMessage(
                subject=_text(message.get("subject"), message.get("Subject")),
                from_address=_sender_address(message),
            )
            for message in emails
            if isinstance(message, dict)
        ]


def _sender_address(message: dict[str, Any]) -> str:
    """Graph messages nest the sender as from.emailAddress.address (or PascalCase)."""
    lower = message.get("from")
    upper = message.get("From")
    address = None
    if isinstance(lower, dict) and isinstance(lower.get("emailAddress"), dict):
        address = lower["emailAddress"].get("address")
    if not address and isinstance(upper, dict) and isinstance(upper.get("EmailAddress"), dict):
        address = upper["EmailAddress"].get("Address")
    return _text(address)


SOURCE_CLASSES: dict[CheckSource, type[MailSource]] = {
    CheckSource.TEMPMAIL: TempMailSource,
    CheckSource.TINYHOST: TinyHostSource,
    CheckSource.HOTMAIL: HotmailSource,
}


def build_sources(
    settings: Settings | None = None,
    client: httpx.Client | None = None,
) -> dict[CheckSource, MailSource]:
    """
    Build every source over one shared HTTP client.

    Args:
        settings: Settings instance. If None, uses the cached singleton.
        client: httpx client to share (built with the source timeout when omitted)
    """
    settings = settings or get_settings()
    client = client or httpx.Client(timeout=settings.source_timeout_seconds)
    log.debug("mail_sources_built", sources=[s.value for s in SOURCE_CLASSES])
    return {source: cls(client, settings) for source, cls in SOURCE_CLASSES.items()}
