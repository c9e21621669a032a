"""
StockBulkDelete Lambda Handler

Deletes stock items picked from a verification run.

Trigger: API Gateway POST /stock/bulk-delete
Body, either:
- {"stockIds": [1, 2, 3]}
- {"results": [...check results...], "status": "false"}
Output: {"deleted": <count>}
"""

from typing import Any

import structlog

from stockroom.shared.api import (
    BadRequestError,
    configure_logging,
    error_response,
    json_response,
    operator_id_from_event,
    parse_body,
)
from stockroom.shared.config import get_settings
from stockroom.shared.exceptions import DynamoDBError, OperatorNotAuthorizedError
from stockroom.shared.models.check import CheckResult, CheckStatus, to_positive_int
from stockroom.shared.tools.dynamodb import InventoryStore
from stockroom.verification.engine import stock_ids_with_status

configure_logging(get_settings().log_level)

log = structlog.get_logger()


def _stock_ids_from_body(body: dict[str, Any]) -> list[int]:
    """
    Resolve the ids to delete from either body shape.

    Raises:
        BadRequestError: On an unknown status or malformed results
    """
    if "results" in body:
        try:
            status = CheckStatus(body.get("status"))
        except ValueError as e:
            raise BadRequestError("Invalid status.") from e
        raw_results = body.get("results")
        if not isinstance(raw_results, list):
            raise BadRequestError("results must be a list.")
        try:
            results = [CheckResult.model_validate(r) for r in raw_results]
        except ValueError as e:
            raise BadRequestError("Invalid results.") from e
        return stock_ids_with_status(results, status)

    raw_ids = body.get("stockIds")
    if not isinstance(raw_ids, list):
        raise BadRequestError("stockIds is required.")
    ids = (to_positive_int(value) for value in raw_ids)
    return list(dict.fromkeys(stock_id for stock_id in ids if stock_id is not None))


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda entry point for bulk stock deletion.

    Args:
        event: API Gateway proxy event
        context: Lambda execution context

    Returns:
        API Gateway proxy response
    """
    operator_id = operator_id_from_event(event)
    if not operator_id:
        return error_response(401, "Unauthorized.")

    store = InventoryStore()
    try:
        store.require_operator(operator_id)
    except OperatorNotAuthorizedError:
        return error_response(403, "Forbidden.")

    try:
        stock_ids = _stock_ids_from_body(parse_body(event))
    except BadRequestError as e:
        return error_response(400, str(e))

    if not stock_ids:
        return json_response(200, {"deleted": 0})

    try:
        deleted = store.delete_stock_items(stock_ids)
    except DynamoDBError:
        log.exception("bulk_delete_storage_error", count=len(stock_ids))
        return error_response(500, "Failed to delete stock.")

    log.info("bulk_delete_completed", operator_id=operator_id, deleted=deleted)
    return json_response(200, {"deleted": deleted})
