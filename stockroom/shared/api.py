"""
API Gateway Helpers

Request parsing and response building shared by the Lambda entry points.
"""

import hmac
import json
import logging
from typing import Any

import structlog

CRON_SECRET_HEADERS = ("x-cron-secret", "x-cron-token")


class BadRequestError(ValueError):
    """Request body could not be parsed."""


def json_response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, ensure_ascii=False),
    }


def error_response(status_code: int, message: str, **extra: Any) -> dict[str, Any]:
    return json_response(status_code, {"error": message, **extra})


def parse_body(event: dict[str, Any]) -> dict[str, Any]:
    """
    Decode the JSON object body of a proxy event.

    Direct invocations may pass the body as a dict already.

    Raises:
        BadRequestError: If the body is not a JSON object
    """
    body = event.get("body")
    if isinstance(body, dict):
        return body
    if not body:
        raise BadRequestError("Invalid JSON.")
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as e:
        raise BadRequestError("Invalid JSON.") from e
    if not isinstance(parsed, dict):
        raise BadRequestError("Invalid JSON.")
    return parsed


def header(event: dict[str, Any], name: str) -> str:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name and value:
            return str(value)
    return ""


def operator_id_from_event(event: dict[str, Any]) -> str | None:
    """Authenticated caller id set by the API Gateway authorizer."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = authorizer.get("claims") or {}
    return claims.get("sub") or authorizer.get("principalId") or None


def provided_cron_secret(event: dict[str, Any]) -> str:
    """Secret from x-cron-secret / x-cron-token, else from a Bearer token."""
    for name in CRON_SECRET_HEADERS:
        value = header(event, name).strip()
        if value:
            return value
    authorization = header(event, "authorization")
    if authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip()
    return ""


def cron_secret_matches(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def configure_logging(level: str = "INFO") -> None:
    """JSON log pipeline used by every Lambda entry point."""
    logging.basicConfig(format="%(message)s", level=level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
