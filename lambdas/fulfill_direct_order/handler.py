"""
FulfillDirectOrder Lambda Handler

Operator-triggered fulfillment of one pending direct order.

Trigger: API Gateway POST /direct-orders/fulfill with body {"orderId": ...}
Output: JSON response with the finalized order id and delivery mode

Status codes:
- 200 fulfilled
- 400 bad body, order already processed
- 401 no authenticated caller
- 403 caller is not an operator
- 404 order not found
- 409 order expired, not enough stock
- 500 missing configuration, stock claim inconsistency, finalization failure
- 502 goods committed but delivery failed
"""

import time
from typing import Any

import structlog

from stockroom.fulfillment.engine import FulfillmentEngine
from stockroom.shared.api import (
    BadRequestError,
    configure_logging,
    error_response,
    json_response,
    operator_id_from_event,
    parse_body,
)
from stockroom.shared.config import get_settings
from stockroom.shared.exceptions import (
    ConfigurationError,
    DeliveryError,
    DynamoDBError,
    FinalizationError,
    InconsistencyError,
    OperatorNotAuthorizedError,
    OrderAlreadyProcessedError,
    OrderExpiredError,
    OrderNotFoundError,
)
from stockroom.shared.state_machine import OrderStatus

configure_logging(get_settings().log_level)

log = structlog.get_logger()


def _get_engine() -> FulfillmentEngine:
    return FulfillmentEngine()


def _order_id_from_body(body: dict[str, Any]) -> str:
    raw = body.get("orderId")
    if raw is None or isinstance(raw, bool) or not str(raw).strip():
        raise BadRequestError("orderId is required.")
    return str(raw).strip()


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda entry point for direct order fulfillment.

    Args:
        event: API Gateway proxy event
        context: Lambda execution context

    Returns:
        API Gateway proxy response
    """
    start_time = time.time()

    operator_id = operator_id_from_event(event)
    if not operator_id:
        return error_response(401, "Unauthorized.")

    try:
        order_id = _order_id_from_body(parse_body(event))
    except BadRequestError as e:
        return error_response(400, str(e))

    log.info("lambda_invoked", order_id=order_id, operator_id=operator_id)

    try:
        result = _get_engine().fulfill(order_id, operator_id=operator_id)
    except OperatorNotAuthorizedError:
        return error_response(403, "Forbidden.")
    except OrderNotFoundError:
        return error_response(404, "Order not found.")
    except OrderAlreadyProcessedError as e:
        return error_response(400, "Order already processed.", status=e.status)
    except OrderExpiredError as e:
        return error_response(409, f"Order expired after {e.expire_minutes} minutes.")
    except ConfigurationError as e:
        log.error("fulfillment_not_configured", order_id=order_id, setting=e.setting)
        return error_response(500, f"{e.setting} is not configured.")
    except InconsistencyError as e:
        return error_response(
            500,
            "Stock claim incomplete, reconcile manually.",
            order_id=e.order_id,
            stock_ids=e.stock_ids,
            committed_stock_ids=e.committed_stock_ids,
        )
    except FinalizationError as e:
        return error_response(
            500,
            "Failed to finalize order.",
            stage=e.stage,
            stock_ids=e.stock_ids,
        )
    except DeliveryError as e:
        return error_response(
            502,
            "Failed to send message.",
            fulfilled_order_id=e.fulfilled_order_id,
            stock_ids=e.stock_ids,
        )
    except DynamoDBError:
        log.exception("fulfillment_storage_error", order_id=order_id)
        return error_response(500, "Storage error.")

    duration_ms = int((time.time() - start_time) * 1000)
    log.info(
        "lambda_completed",
        order_id=order_id,
        status=result.status.value,
        duration_ms=duration_ms,
    )

    if result.status is OrderStatus.FAILED:
        return error_response(409, "Not enough stock.")
    return json_response(200, result.to_response())
