"""
Custom Exceptions for the Stockroom Console

All exceptions follow the pattern of specific, actionable errors
with context needed for debugging, logging and manual recovery.
"""

from dataclasses import dataclass
from typing import Any


class StockroomError(Exception):
    """Base exception for the stockroom console."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class CheckValidationError(StockroomError):
    """Verification request is malformed. Raised before any work is done."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


@dataclass
class OrderNotFoundError(StockroomError):
    """Pending order record not found."""

    order_id: str

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order '{order_id}' not found", order_id=order_id)


@dataclass
class ProductNotFoundError(StockroomError):
    """Product record not found."""

    product_id: int

    def __init__(self, product_id: int) -> None:
        self.product_id = product_id
        super().__init__(f"Product #{product_id} not found", product_id=product_id)


@dataclass
class OperatorNotAuthorizedError(StockroomError):
    """Caller does not hold the operator capability."""

    operator_id: str | None

    def __init__(self, operator_id: str | None) -> None:
        self.operator_id = operator_id
        super().__init__(
            f"Caller '{operator_id or ''}' is not an operator",
            operator_id=operator_id,
        )


@dataclass
class OrderAlreadyProcessedError(StockroomError):
    """Order already left the pending state. No mutation performed."""

    order_id: str
    status: str

    def __init__(self, order_id: str, status: str) -> None:
        self.order_id = order_id
        self.status = status
        super().__init__(
            f"Order '{order_id}' already processed",
            order_id=order_id,
            status=status,
        )


@dataclass
class OrderExpiredError(StockroomError):
    """Order was pending for longer than the expiry threshold and was cancelled."""

    order_id: str
    expire_minutes: int

    def __init__(self, order_id: str, expire_minutes: int) -> None:
        self.order_id = order_id
        self.expire_minutes = expire_minutes
        super().__init__(
            f"Order expired after {expire_minutes} minutes",
            order_id=order_id,
        )


@dataclass
class ConfigurationError(StockroomError):
    """Required setting is missing. Raised before any mutation."""

    setting: str

    def __init__(self, setting: str) -> None:
        self.setting = setting
        super().__init__(f"{setting} is not configured", setting=setting)


@dataclass
class InvalidStateTransitionError(StockroomError):
    """Attempted invalid order state transition."""

    current_status: str
    new_status: str
    allowed_transitions: list[str]

    def __init__(
        self,
        current_status: str,
        new_status: str,
        allowed_transitions: list[str],
    ) -> None:
        self.current_status = current_status
        self.new_status = new_status
        self.allowed_transitions = allowed_transitions
        super().__init__(
            f"Cannot transition from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {allowed_transitions}",
            current_status=current_status,
            new_status=new_status,
            allowed_transitions=allowed_transitions,
        )


@dataclass
class IdentifierExtractionError(StockroomError):
    """Mailbox identifier could not be resolved from stock content."""

    identifier: str

    def __init__(self, message: str, identifier: str = "") -> None:
        self.identifier = identifier
        super().__init__(message)


@dataclass
class AdapterError(StockroomError):
    """Mailbox source call failed (HTTP status, transport or malformed body)."""

    source: str
    status_code: int | None = None

    def __init__(
        self,
        source: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(message)


@dataclass
class TelegramError(StockroomError):
    """Telegram Bot API call failed."""

    method: str
    chat_id: str | None = None

    def __init__(
        self,
        method: str,
        chat_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.method = method
        self.chat_id = chat_id
        super().__init__(
            f"Telegram {method} failed: {error_message or 'Unknown error'}",
            method=method,
            chat_id=chat_id,
        )


@dataclass
class DeliveryError(StockroomError):
    """Stock was committed but delivery to the buyer failed. Resend manually."""

    order_id: str
    stock_ids: list[int]
    fulfilled_order_id: str | None = None

    def __init__(
        self,
        order_id: str,
        stock_ids: list[int],
        fulfilled_order_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.order_id = order_id
        self.stock_ids = stock_ids
        self.fulfilled_order_id = fulfilled_order_id
        super().__init__(
            f"Stock consumed but delivery failed, resend manually: "
            f"{error_message or 'Unknown error'}",
            order_id=order_id,
            stock_ids=stock_ids,
            fulfilled_order_id=fulfilled_order_id,
        )


@dataclass
class FinalizationError(StockroomError):
    """Finalized order insert or order confirmation failed after stock commit."""

    order_id: str
    stock_ids: list[int]
    stage: str  # "insert_fulfilled_order", "confirm_order"

    def __init__(
        self,
        order_id: str,
        stock_ids: list[int],
        stage: str,
        error_message: str | None = None,
    ) -> None:
        self.order_id = order_id
        self.stock_ids = stock_ids
        self.stage = stage
        super().__init__(
            f"Order finalization failed at {stage}: {error_message or 'Unknown error'}",
            order_id=order_id,
            stock_ids=stock_ids,
            stage=stage,
        )


@dataclass
class StockClaimError(StockroomError):
    """Conditional sold-flag flip did not apply to every requested item."""

    stock_ids: list[int]
    committed_stock_ids: list[int]

    def __init__(
        self,
        stock_ids: list[int],
        committed_stock_ids: list[int],
        error_message: str | None = None,
    ) -> None:
        self.stock_ids = stock_ids
        self.committed_stock_ids = committed_stock_ids
        super().__init__(
            f"Stock claim incomplete: {error_message or 'Unknown error'}",
            requested=len(stock_ids),
            committed=len(committed_stock_ids),
        )


@dataclass
class InconsistencyError(StockroomError):
    """Bulk stock claim affected an unexpected row count. Needs manual reconciliation."""

    order_id: str
    stock_ids: list[int]
    committed_stock_ids: list[int]

    def __init__(
        self,
        order_id: str,
        stock_ids: list[int],
        committed_stock_ids: list[int],
    ) -> None:
        self.order_id = order_id
        self.stock_ids = stock_ids
        self.committed_stock_ids = committed_stock_ids
        super().__init__(
            f"Stock claim for order '{order_id}' affected "
            f"{len(committed_stock_ids)} of {len(stock_ids)} items",
            order_id=order_id,
            stock_ids=stock_ids,
            committed_stock_ids=committed_stock_ids,
        )


@dataclass
class DynamoDBError(StockroomError):
    """DynamoDB operation failed."""

    operation: str  # "get", "put", "update", "query", "batch_get", "transact", "delete"
    table_name: str

    def __init__(
        self,
        operation: str,
        table_name: str,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.table_name = table_name
        super().__init__(
            f"DynamoDB {operation} failed on table '{table_name}': {error_message or 'Unknown error'}",
            operation=operation,
            table_name=table_name,
            error_message=error_message,
        )


@dataclass
class ConditionalWriteError(DynamoDBError):
    """DynamoDB conditional write failed (record changed underneath us)."""

    expected_status: str | None = None

    def __init__(
        self,
        table_name: str,
        expected_status: str | None = None,
    ) -> None:
        self.expected_status = expected_status
        super().__init__(
            operation="conditional_write",
            table_name=table_name,
            error_message=f"Condition failed: expected status {expected_status}",
        )
