"""
Order Fulfillment

Allocates unsold stock to pending orders, finalizes them and delivers the
goods to the buyer.
"""

from stockroom.fulfillment.engine import FulfillmentEngine, FulfillmentResult
from stockroom.fulfillment.templates import DeliveryMode, DeliveryPayload, build_delivery, render_item

__all__ = [
    "FulfillmentEngine",
    "FulfillmentResult",
    "DeliveryMode",
    "DeliveryPayload",
    "build_delivery",
    "render_item",
]
