"""
Fulfillment Engine

Turns a pending order for N units of a product into an exclusive claim on N
unsold stock items, writes the finalized order and delivers the goods.

Flow:
1. Operator check (before any read of mutable state)
2. Load order, reject anything not pending or already claimed; a telegram
   order also needs the bot token before anything is touched
3. Cancel stale orders (no stock touched)
4. Load the product for rendering
5. Read the oldest unsold items; too few -> order failed, nothing allocated
6. Claim the items with conditional sold-flag flips, stamping the order
   with a claim token in the same transactions
7. Insert the finalized order, then confirm the pending order
8. Deliver to the buyer (inline message or file)

Failures after step 6 carry the order id and the claimed stock ids so the
operator can reconcile by hand. Nothing is rolled back automatically.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from stockroom.fulfillment.templates import DeliveryMode, build_delivery, format_total
from stockroom.shared.config import Settings, get_settings
from stockroom.shared.exceptions import (
    ConditionalWriteError,
    ConfigurationError,
    DeliveryError,
    FinalizationError,
    InconsistencyError,
    OrderAlreadyProcessedError,
    OrderExpiredError,
    OrderNotFoundError,
    StockClaimError,
    StockroomError,
    TelegramError,
)
from stockroom.shared.models.dynamo import (
    FinalizedOrder,
    OrderChannel,
    PendingOrder,
    Product,
    StockItem,
)
from stockroom.shared.state_machine import OrderStatus
from stockroom.shared.tools.dynamodb import InventoryStore
from stockroom.shared.tools.telegram import TelegramChannel

log = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def group_code(order: PendingOrder, now: datetime) -> str:
    """Audit token shared by everything delivered for one fulfillment."""
    stamp = now.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S") + f"{now.microsecond // 1000:03d}"
    if order.channel is OrderChannel.WEBSITE:
        return f"WEB{stamp}"
    return f"MANUAL{order.buyer_ref}{stamp}"


def _processing_state(order: PendingOrder | None) -> str:
    """Status reported when another fulfillment got to the order first."""
    if order is None:
        return "unknown"
    if order.status is OrderStatus.PENDING and order.claim_token:
        return "claimed"
    return order.status.value


class FulfillmentResult(BaseModel):
    """Outcome of one fulfillment attempt that did not raise."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    status: OrderStatus
    fulfilled_order_id: str | None = None
    delivered_count: int = 0
    stock_ids: list[int] = Field(default_factory=list)
    delivery_mode: DeliveryMode = DeliveryMode.NONE

    @property
    def success(self) -> bool:
        return self.status is OrderStatus.CONFIRMED

    def to_response(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "fulfilled_order_id": self.fulfilled_order_id,
            "status": self.status.value,
            "delivered_count": self.delivered_count,
            "delivery_mode": self.delivery_mode.value,
        }


class FulfillmentEngine:
    """
    Allocates stock to pending orders.

    Usage:
        engine = FulfillmentEngine()
        result = engine.fulfill("1042", operator_id="user-sub")
    """

    def __init__(
        self,
        store: InventoryStore | None = None,
        channel: TelegramChannel | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._settings = settings or get_settings()
        self._store = store or InventoryStore(settings=self._settings)
        self._channel = channel or TelegramChannel(settings=self._settings)
        self._clock = clock or _utc_now

    def fulfill(self, order_id: str, *, operator_id: str | None) -> FulfillmentResult:
        """
        Fulfill one pending order.

        Returns:
            FulfillmentResult with status CONFIRMED, or FAILED when stock was short

        Raises:
            OperatorNotAuthorizedError: Caller is not an operator
            OrderNotFoundError: No such order
            OrderAlreadyProcessedError: Order is not pending, or another fulfillment claimed it
            ConfigurationError: Telegram order but no bot token configured
            OrderExpiredError: Order was stale and has been cancelled
            InconsistencyError: Claim did not apply to every selected item
            FinalizationError: Finalized order insert or confirmation failed
            DeliveryError: Goods committed but not delivered
        """
        self._store.require_operator(operator_id)

        order = self._store.load_pending_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status is not OrderStatus.PENDING or order.claim_token:
            raise OrderAlreadyProcessedError(order_id, _processing_state(order))
        if order.channel is OrderChannel.TELEGRAM and not self._channel.is_configured:
            raise ConfigurationError("telegram_bot_token")

        log.info(
            "fulfillment_started",
            order_id=order_id,
            operator_id=operator_id,
            product_id=order.product_id,
            quantity=order.quantity,
            bonus_quantity=order.bonus_quantity,
        )

        now = self._clock()
        if self._is_expired(order, now):
            self._transition(order, OrderStatus.CANCELLED)
            log.info("order_expired", order_id=order_id, created_at=order.created_at)
            raise OrderExpiredError(order_id, self._settings.order_expire_minutes)

        product = self._store.load_product(order.product_id) or Product(product_id=order.product_id)

        deliver_quantity = order.deliver_quantity
        rows = self._store.list_unsold_stock(order.product_id, deliver_quantity)
        if len(rows) < deliver_quantity:
            self._transition(order, OrderStatus.FAILED)
            log.warning(
                "insufficient_stock",
                order_id=order_id,
                product_id=order.product_id,
                requested=deliver_quantity,
                available=len(rows),
            )
            return FulfillmentResult(order_id=order_id, status=OrderStatus.FAILED)

        stock_ids = [row.stock_id for row in rows]
        fulfilled_order_id = str(uuid.uuid4())
        self._claim(order, stock_ids, fulfilled_order_id)

        items = [row.content for row in rows]
        finalized = self._finalize(order, rows, fulfilled_order_id, now)

        delivery_mode = DeliveryMode.NONE
        if order.channel is OrderChannel.TELEGRAM:
            delivery_mode = self._deliver(order, product, items, stock_ids, finalized)

        log.info(
            "fulfillment_completed",
            order_id=order_id,
            fulfilled_order_id=finalized.fulfilled_order_id,
            delivered_count=len(items),
            delivery_mode=delivery_mode.value,
        )
        return FulfillmentResult(
            order_id=order_id,
            status=OrderStatus.CONFIRMED,
            fulfilled_order_id=finalized.fulfilled_order_id,
            delivered_count=len(items),
            stock_ids=stock_ids,
            delivery_mode=delivery_mode,
        )

    def _is_expired(self, order: PendingOrder, now: datetime) -> bool:
        if order.created_at is None:
            return False
        age_seconds = now.timestamp() - order.created_at
        return age_seconds >= self._settings.order_expire_minutes * 60

    def _transition(self, order: PendingOrder, new_status: OrderStatus) -> None:
        """Pre-claim transition; losing the race means someone else processed the order."""
        try:
            self._store.update_order_status(order.order_id, new_status)
        except ConditionalWriteError as e:
            raise self._lost_race(order.order_id) from e

    def _lost_race(self, order_id: str) -> OrderAlreadyProcessedError:
        current = self._store.load_pending_order(order_id)
        return OrderAlreadyProcessedError(order_id, _processing_state(current))

    def _claim(self, order: PendingOrder, stock_ids: list[int], claim_token: str) -> None:
        try:
            self._store.claim_stock_items(
                stock_ids,
                order_id=order.order_id,
                claim_token=claim_token,
            )
        except ConditionalWriteError as e:
            log.warning("stock_claim_order_taken", order_id=order.order_id)
            raise self._lost_race(order.order_id) from e
        except StockClaimError as e:
            if not e.committed_stock_ids:
                current = self._store.load_pending_order(order.order_id)
                if current is None or current.status is not OrderStatus.PENDING or current.claim_token:
                    raise OrderAlreadyProcessedError(
                        order.order_id, _processing_state(current)
                    ) from e
            log.error(
                "stock_claim_inconsistent",
                order_id=order.order_id,
                stock_ids=stock_ids,
                committed_stock_ids=e.committed_stock_ids,
            )
            raise InconsistencyError(order.order_id, stock_ids, e.committed_stock_ids) from e

    def _finalize(
        self,
        order: PendingOrder,
        rows: list[StockItem],
        fulfilled_order_id: str,
        now: datetime,
    ) -> FinalizedOrder:
        stock_ids = [row.stock_id for row in rows]
        finalized = FinalizedOrder(
            fulfilled_order_id=fulfilled_order_id,
            source_order_id=order.order_id,
            buyer_ref=order.buyer_ref,
            product_id=order.product_id,
            content_snapshot=json.dumps([row.content for row in rows], ensure_ascii=False),
            total_price=order.total_price,
            quantity=len(rows),
            group_code=group_code(order, now),
            source_code=order.code,
            created_at=int(now.timestamp()),
        )

        try:
            self._store.put_finalized_order(finalized)
        except StockroomError as e:
            log.error(
                "finalization_failed",
                order_id=order.order_id,
                stage="insert_fulfilled_order",
                stock_ids=stock_ids,
                error=str(e),
            )
            raise FinalizationError(
                order.order_id, stock_ids, "insert_fulfilled_order", str(e)
            ) from e

        try:
            self._store.update_order_status(
                order.order_id,
                OrderStatus.CONFIRMED,
                fulfilled_order_id=finalized.fulfilled_order_id,
                confirmed_at=int(now.timestamp()),
                claim_token=fulfilled_order_id,
            )
        except StockroomError as e:
            log.error(
                "finalization_failed",
                order_id=order.order_id,
                stage="confirm_order",
                stock_ids=stock_ids,
                fulfilled_order_id=finalized.fulfilled_order_id,
                error=str(e),
            )
            raise FinalizationError(order.order_id, stock_ids, "confirm_order", str(e)) from e

        return finalized

    def _deliver(
        self,
        order: PendingOrder,
        product: Product,
        items: list[str],
        stock_ids: list[int],
        finalized: FinalizedOrder,
    ) -> DeliveryMode:
        payload = build_delivery(
            product,
            items,
            format_total(order.total_price),
            self._settings,
        )
        try:
            if payload.mode is DeliveryMode.DOCUMENT:
                self._channel.send_document(
                    order.buyer_ref,
                    payload.filename,
                    payload.content,
                    caption=payload.text,
                )
            else:
                self._channel.send_message(order.buyer_ref, payload.text)
        except TelegramError as e:
            log.error(
                "delivery_failed",
                order_id=order.order_id,
                fulfilled_order_id=finalized.fulfilled_order_id,
                stock_ids=stock_ids,
                error=str(e),
            )
            raise DeliveryError(
                order.order_id,
                stock_ids,
                finalized.fulfilled_order_id,
                str(e),
            ) from e
        return payload.mode
