"""
FulfillDirectOrder Lambda

Operator-triggered fulfillment of pending direct orders from both the chat
bot and the website. Allocates unsold stock, writes the finalized order and
delivers chat-bot orders through Telegram.
"""

from lambdas.fulfill_direct_order.handler import lambda_handler

__all__ = ["lambda_handler"]
