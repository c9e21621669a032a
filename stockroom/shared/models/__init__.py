# Shared Models
"""
Pydantic models for DynamoDB items and verification runs.
"""

from stockroom.shared.models.dynamo import (
    StockItem,
    Product,
    Operator,
    OrderChannel,
    PendingOrder,
    FinalizedOrder,
)
from stockroom.shared.models.check import (
    CheckScope,
    CheckSource,
    CheckStatus,
    MailMessage,
    GraphAccount,
    MailTarget,
    CheckRequest,
    CheckResult,
    CheckSummary,
)

__all__ = [
    # DynamoDB
    "StockItem",
    "Product",
    "Operator",
    "OrderChannel",
    "PendingOrder",
    "FinalizedOrder",
    # Verification
    "CheckScope",
    "CheckSource",
    "CheckStatus",
    "MailMessage",
    "GraphAccount",
    "MailTarget",
    "CheckRequest",
    "CheckResult",
    "CheckSummary",
]
