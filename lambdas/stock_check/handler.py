"""
StockCheck Lambda Handler

Runs a verification pass over stock items against a mailbox source.

Trigger:
- API Gateway POST /stock/check (operator session)
- Scheduled call with a shared secret in x-cron-secret / x-cron-token
  or `Authorization: Bearer <secret>`
Output: {total, true_count, false_count, error_count, results}
"""

import time
from typing import Any

import structlog

from stockroom.shared.api import (
    BadRequestError,
    configure_logging,
    cron_secret_matches,
    error_response,
    json_response,
    operator_id_from_event,
    parse_body,
    provided_cron_secret,
)
from stockroom.shared.config import Settings, get_settings
from stockroom.shared.exceptions import (
    CheckValidationError,
    DynamoDBError,
    OperatorNotAuthorizedError,
)
from stockroom.shared.tools.dynamodb import InventoryStore
from stockroom.verification.engine import VerificationEngine

configure_logging(get_settings().log_level)

log = structlog.get_logger()


def _get_engine(store: InventoryStore, settings: Settings) -> VerificationEngine:
    return VerificationEngine(store=store, settings=settings)


def _authorize(
    event: dict[str, Any],
    store: InventoryStore,
    settings: Settings,
) -> dict[str, Any] | None:
    """Return an error response, or None when the caller may run a check."""
    operator_id = operator_id_from_event(event)
    if operator_id:
        try:
            store.require_operator(operator_id)
        except OperatorNotAuthorizedError:
            return error_response(403, "Forbidden.")
        return None

    if not settings.cron_secret:
        log.error("cron_secret_not_configured")
        return error_response(500, "Cron secret is not configured.")

    provided = provided_cron_secret(event)
    if not provided:
        return error_response(401, "Unauthorized.")
    if not cron_secret_matches(provided, settings.cron_secret):
        log.warning("cron_secret_mismatch")
        return error_response(403, "Forbidden.")
    return None


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda entry point for stock verification.

    Args:
        event: API Gateway proxy event
        context: Lambda execution context

    Returns:
        API Gateway proxy response
    """
    start_time = time.time()
    settings = get_settings()
    store = InventoryStore(settings=settings)

    denied = _authorize(event, store, settings)
    if denied is not None:
        return denied

    try:
        payload = parse_body(event)
    except BadRequestError as e:
        return error_response(400, str(e))

    try:
        summary = _get_engine(store, settings).run_check(payload)
    except CheckValidationError as e:
        return error_response(400, e.message, field=e.field)
    except DynamoDBError:
        log.exception("stock_check_storage_error")
        return error_response(500, "Failed to load stock.")

    log.info(
        "lambda_completed",
        total=summary.total,
        duration_ms=int((time.time() - start_time) * 1000),
    )
    return json_response(200, summary.to_response())
