# Shared Tools
"""
Clients for the external systems: the DynamoDB inventory store and the
Telegram delivery channel.
"""

from stockroom.shared.tools.dynamodb import InventoryStore
from stockroom.shared.tools.telegram import TelegramChannel

__all__ = [
    "InventoryStore",
    "TelegramChannel",
]
