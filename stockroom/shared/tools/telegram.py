"""
Telegram Tools

Delivery channel to buyers: inline text messages and plain-text file attachments
through the Telegram Bot API.
"""

from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stockroom.shared.config import Settings, get_settings
from stockroom.shared.exceptions import TelegramError

log = structlog.get_logger()


class TelegramChannel:
    """
    Send-message / send-file capability backed by the Bot API.

    A call succeeds only on HTTP 2xx with `"ok": true` in the body. Connection
    failures are retried since nothing reached Telegram; any other failure is
    raised as TelegramError straight away.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None):
        self._settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=self._settings.telegram_timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.telegram_bot_token)

    def _url(self, method: str) -> str:
        base = self._settings.telegram_api_base.rstrip("/")
        return f"{base}/bot{self._settings.telegram_bot_token}/{method}"

    @retry(
        retry=retry_if_exception_type(httpx.ConnectError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _post(self, method: str, **kwargs: Any) -> httpx.Response:
        return self._client.post(self._url(method), **kwargs)

    def _call(self, method: str, chat_id: str, **kwargs: Any) -> dict[str, Any]:
        if not self._settings.telegram_bot_token:
            raise TelegramError(method, chat_id, "bot token is not configured")

        try:
            response = self._post(method, **kwargs)
        except httpx.HTTPError as e:
            log.error("telegram_request_failed", method=method, chat_id=chat_id, error=str(e))
            raise TelegramError(method, chat_id, str(e)) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success or not isinstance(payload, dict) or payload.get("ok") is not True:
            description = (
                payload.get("description") if isinstance(payload, dict) else None
            ) or f"HTTP {response.status_code}"
            log.error(
                "telegram_send_failed",
                method=method,
                chat_id=chat_id,
                status_code=response.status_code,
                description=description,
            )
            raise TelegramError(method, chat_id, description)

        log.info("telegram_sent", method=method, chat_id=chat_id)
        return payload

    def send_message(self, chat_id: str, text: str, *, parse_mode: str | None = "HTML") -> dict[str, Any]:
        """
        Send a text message, truncated to the transport's size limit.

        Raises:
            TelegramError: On any delivery failure
        """
        body: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text[: self._settings.telegram_max_message_length],
        }
        if parse_mode:
            body["parse_mode"] = parse_mode
        return self._call("sendMessage", chat_id, json=body)

    def send_document(
        self,
        chat_id: str,
        filename: str,
        content: str,
        caption: str = "",
    ) -> dict[str, Any]:
        """
        Send `content` as a plain-text file attachment.

        Raises:
            TelegramError: On any delivery failure
        """
        return self._call(
            "sendDocument",
            chat_id,
            data={"chat_id": chat_id, "caption": caption},
            files={"document": (filename, content.encode("utf-8"), "text/plain")},
        )
