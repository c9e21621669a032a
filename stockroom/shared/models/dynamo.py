"""
DynamoDB Models

Pydantic models for items in the Stockroom table.

Key layout:
    Stock item      PK=STOCK#<id:012d>      SK=METADATA  GSI1PK=PRODUCT#<product_id>  GSI1SK=STOCK#<id:012d>
    Product         PK=PRODUCT#<id>         SK=METADATA
    Operator        PK=OPERATOR#<user_id>   SK=METADATA
    Pending order   PK=ORDER#<order_id>     SK=PENDING
    Finalized order PK=FULFILLED#<id>       SK=METADATA
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stockroom.shared.state_machine import OrderStatus

STOCK_ID_WIDTH = 12


def stock_sort_key(stock_id: int) -> str:
    """Zero-padded stock key so lexicographic index order equals id order."""
    return f"STOCK#{stock_id:0{STOCK_ID_WIDTH}d}"


def stock_key(stock_id: int) -> dict[str, str]:
    """Primary key of a stock item."""
    return {"PK": stock_sort_key(stock_id), "SK": "METADATA"}


def product_partition(product_id: int) -> str:
    return f"PRODUCT#{product_id}"


# =====================================================
# Stock
# =====================================================


class StockItem(BaseModel):
    """
    One unit of sellable inventory.

    `content` is an opaque comma-delimited tuple of fields whose order
    and count vary by product.
    """

    model_config = ConfigDict(frozen=True)

    stock_id: int = Field(..., gt=0, description="Integer identity")
    product_id: int = Field(..., description="Owning product")
    content: str = Field(default="", description="Comma-delimited credential payload")
    sold: bool = Field(default=False, description="Claimed by a fulfilled order")

    def to_dynamodb(self) -> dict[str, Any]:
        """Convert to DynamoDB item."""
        return {
            **stock_key(self.stock_id),
            "GSI1PK": product_partition(self.product_id),
            "GSI1SK": stock_sort_key(self.stock_id),
            "stock_id": self.stock_id,
            "product_id": self.product_id,
            "content": self.content,
            "sold": self.sold,
        }

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "StockItem":
        """Parse from DynamoDB item."""
        return cls(
            stock_id=int(item["stock_id"]),
            product_id=int(item.get("product_id", 0)),
            content=str(item.get("content") or ""),
            sold=bool(item.get("sold", False)),
        )


# =====================================================
# Product / Operator
# =====================================================


class Product(BaseModel):
    """Catalog entry, read here only for delivery rendering."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    name: str = ""
    description: str = ""
    format_data: str = Field(
        default="",
        description="Comma-separated field labels zipped against stock fields",
    )

    @property
    def display_name(self) -> str:
        return self.name or f"#{self.product_id}"

    def to_dynamodb(self) -> dict[str, Any]:
        return {
            "PK": product_partition(self.product_id),
            "SK": "METADATA",
            "product_id": self.product_id,
            "name": self.name,
            "description": self.description,
            "format_data": self.format_data,
        }

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "Product":
        return cls(
            product_id=int(item["product_id"]),
            name=item.get("name") or "",
            description=item.get("description") or "",
            format_data=item.get("format_data") or "",
        )


class Operator(BaseModel):
    """Console staff member. The record's presence grants the elevated capability."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: str = "admin"

    def to_dynamodb(self) -> dict[str, Any]:
        return {
            "PK": f"OPERATOR#{self.user_id}",
            "SK": "METADATA",
            "user_id": self.user_id,
            "role": self.role,
        }

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "Operator":
        return cls(user_id=item["user_id"], role=item.get("role") or "admin")


# =====================================================
# Orders
# =====================================================


class OrderChannel(str, Enum):
    """Where the buyer placed the order and how goods reach them."""

    TELEGRAM = "telegram"
    """Chat-bot order, delivered through the chat channel."""

    WEBSITE = "website"
    """Website order, buyer reads the finalized order on the website."""


class PendingOrder(BaseModel):
    """
    Direct order awaiting fulfillment.

    PK: ORDER#<order_id>
    SK: PENDING
    """

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., description="Order identifier")
    buyer_ref: str = Field(..., description="Chat id or website account of the buyer")
    product_id: int
    quantity: int = Field(..., ge=0)
    bonus_quantity: int = Field(default=0, description="Extra units granted on top of quantity")
    unit_price: int = 0
    amount: int = 0
    code: str = Field(default="", description="Payment reference code")
    status: OrderStatus = OrderStatus.PENDING
    channel: OrderChannel = OrderChannel.TELEGRAM
    buyer_email: str | None = None
    created_at: int | None = Field(default=None, description="Unix epoch timestamp")
    confirmed_at: int | None = None
    fulfilled_order_id: str | None = None
    claim_token: str | None = Field(default=None, description="Set by the stock claim that owns this order")

    @property
    def deliver_quantity(self) -> int:
        """Units to hand over: quantity plus non-negative bonus, at least one."""
        return max(1, self.quantity + max(0, self.bonus_quantity))

    @property
    def total_price(self) -> int:
        return self.amount or self.unit_price * self.quantity

    def to_key(self) -> dict[str, str]:
        return {"PK": f"ORDER#{self.order_id}", "SK": "PENDING"}

    def to_dynamodb(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            **self.to_key(),
            "order_id": self.order_id,
            "buyer_ref": self.buyer_ref,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "bonus_quantity": self.bonus_quantity,
            "unit_price": self.unit_price,
            "amount": self.amount,
            "code": self.code,
            "status": self.status.value,
            "channel": self.channel.value,
        }
        optional = {
            "created_at": self.created_at,
            "buyer_email": self.buyer_email,
            "confirmed_at": self.confirmed_at,
            "fulfilled_order_id": self.fulfilled_order_id,
            "claim_token": self.claim_token,
        }
        item.update({k: v for k, v in optional.items() if v is not None})
        return item

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "PendingOrder":
        created_at = item.get("created_at")
        confirmed_at = item.get("confirmed_at")
        return cls(
            order_id=str(item["order_id"]),
            buyer_ref=str(item.get("buyer_ref", "")),
            product_id=int(item.get("product_id", 0)),
            quantity=int(item.get("quantity", 0)),
            bonus_quantity=int(item.get("bonus_quantity") or 0),
            unit_price=int(item.get("unit_price") or 0),
            amount=int(item.get("amount") or 0),
            code=item.get("code") or "",
            status=OrderStatus.from_string(item.get("status", "pending")),
            channel=OrderChannel(item.get("channel", OrderChannel.TELEGRAM.value)),
            buyer_email=item.get("buyer_email"),
            created_at=int(created_at) if created_at is not None else None,
            confirmed_at=int(confirmed_at) if confirmed_at is not None else None,
            fulfilled_order_id=item.get("fulfilled_order_id"),
            claim_token=item.get("claim_token"),
        )


class FinalizedOrder(BaseModel):
    """
    Immutable record of a successful fulfillment.

    PK: FULFILLED#<fulfilled_order_id>
    SK: METADATA
    """

    model_config = ConfigDict(frozen=True)

    fulfilled_order_id: str
    source_order_id: str
    buyer_ref: str
    product_id: int
    content_snapshot: str = Field(..., description="JSON array of delivered item contents")
    total_price: int
    quantity: int
    group_code: str = Field(..., description="Audit correlation token")
    source_code: str = ""
    created_at: int

    def to_dynamodb(self) -> dict[str, Any]:
        return {
            "PK": f"FULFILLED#{self.fulfilled_order_id}",
            "SK": "METADATA",
            "fulfilled_order_id": self.fulfilled_order_id,
            "source_order_id": self.source_order_id,
            "buyer_ref": self.buyer_ref,
            "product_id": self.product_id,
            "content_snapshot": self.content_snapshot,
            "total_price": self.total_price,
            "quantity": self.quantity,
            "group_code": self.group_code,
            "source_code": self.source_code,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dynamodb(cls, item: dict[str, Any]) -> "FinalizedOrder":
        return cls(
            fulfilled_order_id=item["fulfilled_order_id"],
            source_order_id=str(item.get("source_order_id", "")),
            buyer_ref=str(item.get("buyer_ref", "")),
            product_id=int(item.get("product_id", 0)),
            content_snapshot=item.get("content_snapshot") or "[]",
            total_price=int(item.get("total_price") or 0),
            quantity=int(item.get("quantity") or 0),
            group_code=item.get("group_code") or "",
            source_code=item.get("source_code") or "",
            created_at=int(item.get("created_at", 0)),
        )
