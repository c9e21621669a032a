# Shared Infrastructure for the Stockroom Console
"""
Shared infrastructure for the fulfillment and verification engines.

This package provides:
- Order state machine (OrderStatus, valid transitions)
- Pydantic models for DynamoDB items and verification requests/results
- Tool implementations for DynamoDB and Telegram
- Configuration management
- Custom exceptions
"""

from stockroom.shared.state_machine import OrderStatus, VALID_TRANSITIONS, validate_transition
from stockroom.shared.exceptions import (
    StockroomError,
    CheckValidationError,
    OrderNotFoundError,
    OrderAlreadyProcessedError,
    OrderExpiredError,
    InvalidStateTransitionError,
    OperatorNotAuthorizedError,
)
from stockroom.shared.config import Settings, get_settings

__all__ = [
    # State machine
    "OrderStatus",
    "VALID_TRANSITIONS",
    "validate_transition",
    # Exceptions
    "StockroomError",
    "CheckValidationError",
    "OrderNotFoundError",
    "OrderAlreadyProcessedError",
    "OrderExpiredError",
    "InvalidStateTransitionError",
    "OperatorNotAuthorizedError",
    # Config
    "Settings",
    "get_settings",
]
