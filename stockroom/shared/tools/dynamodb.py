"""
DynamoDB Tools

Inventory store and order ledger backed by the Stockroom table.
Every mutation that guards shared state (sold flag, order status) is a
conditional write, so concurrent callers cannot both win.
"""

from datetime import datetime, timezone
from typing import Any, Iterable

import boto3
from botocore.exceptions import ClientError
import structlog

from stockroom.shared.config import Settings, get_settings
from stockroom.shared.exceptions import (
    ConditionalWriteError,
    DynamoDBError,
    OperatorNotAuthorizedError,
    OrderNotFoundError,
    StockClaimError,
)
from stockroom.shared.models.dynamo import (
    FinalizedOrder,
    Operator,
    PendingOrder,
    Product,
    StockItem,
    product_partition,
    stock_key,
)
from stockroom.shared.state_machine import OrderStatus, validate_transition

log = structlog.get_logger()

BATCH_GET_LIMIT = 100  # DynamoDB BatchGetItem limit
TRANSACT_WRITE_LIMIT = 100  # DynamoDB TransactWriteItems limit
STOCK_COUNTER_KEY = {"PK": "COUNTER#stock", "SK": "METADATA"}


def _get_table(settings: Settings | None = None):
    """Get DynamoDB table resource."""
    settings = settings or get_settings()
    dynamodb = boto3.resource("dynamodb", **settings.dynamodb_config)
    return dynamodb.Table(settings.dynamodb_table_name)


def _chunks(values: list, size: int) -> Iterable[list]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _now() -> int:
    return int(datetime.now(timezone.utc).timestamp())


class InventoryStore:
    """
    Stock inventory and order ledger operations.

    Usage:
        store = InventoryStore()
        items = store.list_unsold_stock(product_id=7, limit=3)
        store.claim_stock_items([item.stock_id for item in items])
    """

    def __init__(self, table=None, settings: Settings | None = None):
        """
        Args:
            table: boto3 Table resource. Built from settings when omitted.
            settings: Settings instance. If None, uses the cached singleton.
        """
        self._settings = settings or get_settings()
        self._table = table if table is not None else _get_table(self._settings)

    @property
    def table_name(self) -> str:
        return self._table.name

    def _error(self, operation: str, e: ClientError, **context: Any) -> DynamoDBError:
        log.error(f"dynamodb_{operation}_failed", error=str(e), **context)
        return DynamoDBError(
            operation=operation,
            table_name=self.table_name,
            error_message=str(e),
        )

    # =====================================================
    # Stock reads
    # =====================================================

    def iter_product_stock_pages(
        self,
        product_id: int,
        *,
        page_size: int | None = None,
        unsold_only: bool = False,
    ) -> Iterable[list[StockItem]]:
        """
        Yield a product's stock in id order, one page at a time.

        Args:
            product_id: Product identifier
            page_size: Items read per query call (default from settings)
            unsold_only: Skip items already sold

        Raises:
            DynamoDBError: On DynamoDB operation failure
        """
        query_params: dict[str, Any] = {
            "IndexName": self._settings.dynamodb_gsi1_name,
            "KeyConditionExpression": "GSI1PK = :pk AND begins_with(GSI1SK, :sk_prefix)",
            "ExpressionAttributeValues": {
                ":pk": product_partition(product_id),
                ":sk_prefix": "STOCK#",
            },
            "ScanIndexForward": True,
            "Limit": page_size or self._settings.stock_page_size,
        }
        if unsold_only:
            query_params["FilterExpression"] = "sold = :false"
            query_params["ExpressionAttributeValues"][":false"] = False

        while True:
            try:
                response = self._table.query(**query_params)
            except ClientError as e:
                raise self._error("query", e, product_id=product_id) from e

            items = response.get("Items", [])
            if items:
                yield [StockItem.from_dynamodb(item) for item in items]

            if "LastEvaluatedKey" not in response:
                break
            query_params["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    def list_unsold_stock(self, product_id: int, limit: int) -> list[StockItem]:
        """
        Oldest-first unsold items of a product, at most `limit` of them.

        A short list means the product does not have enough stock.
        """
        selected: list[StockItem] = []
        for page in self.iter_product_stock_pages(product_id, unsold_only=True):
            selected.extend(page)
            if len(selected) >= limit:
                break
        return selected[:limit]

    def get_stock_items(self, stock_ids: list[int]) -> list[StockItem]:
        """
        Batch-read stock items by id, sorted by id.

        Unknown ids are skipped.
        """
        unique_ids = list(dict.fromkeys(stock_ids))
        if not unique_ids:
            return []

        rows: list[StockItem] = []
        for chunk in _chunks(unique_ids, BATCH_GET_LIMIT):
            request = {
                self.table_name: {
                    "Keys": [stock_key(stock_id) for stock_id in chunk],
                    "ConsistentRead": True,
                }
            }
            while request:
                try:
                    response = self._table.meta.client.batch_get_item(RequestItems=request)
                except ClientError as e:
                    raise self._error("batch_get", e, count=len(chunk)) from e
                rows.extend(
                    StockItem.from_dynamodb(item)
                    for item in response.get("Responses", {}).get(self.table_name, [])
                )
                request = response.get("UnprocessedKeys") or None

        rows.sort(key=lambda item: item.stock_id)
        return rows

    # =====================================================
    # Stock writes
    # =====================================================

    def add_stock_items(self, product_id: int, contents: list[str]) -> list[StockItem]:
        """
        Append new unsold items to a product, allocating ids from a counter.

        Blank lines are skipped.
        """
        cleaned = [line.strip() for line in contents if line and line.strip()]
        if not cleaned:
            return []

        try:
            response = self._table.update_item(
                Key=STOCK_COUNTER_KEY,
                UpdateExpression="ADD next_id :count",
                ExpressionAttributeValues={":count": len(cleaned)},
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as e:
            raise self._error("update", e, product_id=product_id) from e

        last_id = int(response["Attributes"]["next_id"])
        first_id = last_id - len(cleaned) + 1
        items = [
            StockItem(stock_id=first_id + offset, product_id=product_id, content=content)
            for offset, content in enumerate(cleaned)
        ]

        with self._table.batch_writer() as batch:
            for item in items:
                batch.put_item(Item=item.to_dynamodb())

        log.info(
            "stock_items_added",
            product_id=product_id,
            count=len(items),
            first_id=first_id,
            last_id=last_id,
        )
        return items

    def claim_stock_items(
        self,
        stock_ids: list[int],
        *,
        order_id: str | None = None,
        claim_token: str | None = None,
    ) -> list[int]:
        """
        Flip `sold` to true on every id, each flip conditioned on `sold = false`.

        Ids are written in transactions of up to 100 items; a transaction either
        claims all of its items or none of them.

        With `order_id`, every transaction also stamps `claim_token` on the
        order, conditioned on the order being pending and unclaimed (or already
        claimed with the same token). A second fulfillment of the same order
        then cancels before it sells anything.

        Returns:
            The claimed ids (all of them)

        Raises:
            ConditionalWriteError: The order guard failed before any item was claimed
            StockClaimError: If a transaction was cancelled. `committed_stock_ids`
                lists the ids claimed by earlier transactions.
            DynamoDBError: On other DynamoDB failures
        """
        client = self._table.meta.client
        committed: list[int] = []

        order_guard: list[dict[str, Any]] = []
        if order_id is not None:
            order_guard.append(
                {
                    "Update": {
                        "TableName": self.table_name,
                        "Key": {"PK": f"ORDER#{order_id}", "SK": "PENDING"},
                        "UpdateExpression": "SET claim_token = :token",
                        "ConditionExpression": (
                            "attribute_exists(PK) AND #status = :pending AND "
                            "(attribute_not_exists(claim_token) OR claim_token = :token)"
                        ),
                        "ExpressionAttributeNames": {"#status": "status"},
                        "ExpressionAttributeValues": {
                            ":token": claim_token,
                            ":pending": OrderStatus.PENDING.value,
                        },
                    }
                }
            )
        chunk_size = TRANSACT_WRITE_LIMIT - len(order_guard)

        for chunk in _chunks(list(stock_ids), chunk_size):
            transact_items = order_guard + [
                {
                    "Update": {
                        "TableName": self.table_name,
                        "Key": stock_key(stock_id),
                        "UpdateExpression": "SET sold = :true",
                        "ConditionExpression": "attribute_exists(PK) AND sold = :false",
                        "ExpressionAttributeValues": {":true": True, ":false": False},
                    }
                }
                for stock_id in chunk
            ]
            try:
                client.transact_write_items(TransactItems=transact_items)
            except ClientError as e:
                code = e.response["Error"]["Code"]
                if code == "TransactionCanceledException":
                    reasons = e.response.get("CancellationReasons") or []
                    if (
                        order_guard
                        and not committed
                        and reasons
                        and reasons[0].get("Code") == "ConditionalCheckFailed"
                    ):
                        log.warning("stock_claim_order_guard_failed", order_id=order_id)
                        raise ConditionalWriteError(
                            table_name=self.table_name,
                            expected_status=OrderStatus.PENDING.value,
                        ) from e
                    log.error(
                        "stock_claim_cancelled",
                        order_id=order_id,
                        requested=len(stock_ids),
                        committed=len(committed),
                        chunk_first_id=chunk[0],
                        error=str(e),
                    )
                    raise StockClaimError(
                        stock_ids=list(stock_ids),
                        committed_stock_ids=committed,
                        error_message=str(e),
                    ) from e
                raise self._error("transact", e, count=len(chunk)) from e
            committed.extend(chunk)

        log.info("stock_items_claimed", order_id=order_id, count=len(committed))
        return committed

    def delete_stock_items(
        self,
        stock_ids: list[int],
        *,
        chunk_size: int | None = None,
    ) -> int:
        """
        Delete stock items by id in chunks. Unknown ids are no-ops.

        Returns:
            Number of distinct ids submitted for deletion
        """
        unique_ids = list(dict.fromkeys(stock_ids))
        size = chunk_size or self._settings.delete_chunk_size

        for chunk in _chunks(unique_ids, size):
            try:
                with self._table.batch_writer() as batch:
                    for stock_id in chunk:
                        batch.delete_item(Key=stock_key(stock_id))
            except ClientError as e:
                raise self._error("delete", e, count=len(chunk)) from e
            log.info("stock_chunk_deleted", count=len(chunk), first_id=chunk[0])

        return len(unique_ids)

    # =====================================================
    # Catalog / operators
    # =====================================================

    def load_product(self, product_id: int) -> Product | None:
        try:
            response = self._table.get_item(
                Key={"PK": product_partition(product_id), "SK": "METADATA"},
            )
        except ClientError as e:
            raise self._error("get", e, product_id=product_id) from e
        item = response.get("Item")
        return Product.from_dynamodb(item) if item else None

    def put_product(self, product: Product) -> Product:
        self._table.put_item(Item=product.to_dynamodb())
        return product

    def load_operator(self, user_id: str) -> Operator | None:
        try:
            response = self._table.get_item(
                Key={"PK": f"OPERATOR#{user_id}", "SK": "METADATA"},
                ConsistentRead=True,
            )
        except ClientError as e:
            raise self._error("get", e, user_id=user_id) from e
        item = response.get("Item")
        return Operator.from_dynamodb(item) if item else None

    def put_operator(self, operator: Operator) -> Operator:
        self._table.put_item(Item=operator.to_dynamodb())
        return operator

    def require_operator(self, user_id: str | None) -> Operator:
        """
        Check the caller holds the operator capability.

        Raises:
            OperatorNotAuthorizedError: If no operator record exists
        """
        operator = self.load_operator(user_id) if user_id else None
        if operator is None:
            log.warning("operator_not_authorized", user_id=user_id)
            raise OperatorNotAuthorizedError(user_id)
        return operator

    # =====================================================
    # Order ledger
    # =====================================================

    def load_pending_order(self, order_id: str) -> PendingOrder | None:
        try:
            response = self._table.get_item(
                Key={"PK": f"ORDER#{order_id}", "SK": "PENDING"},
                ConsistentRead=True,
            )
        except ClientError as e:
            raise self._error("get", e, order_id=order_id) from e
        item = response.get("Item")
        return PendingOrder.from_dynamodb(item) if item else None

    def put_pending_order(self, order: PendingOrder) -> PendingOrder:
        """Insert a pending order. Idempotent on order id."""
        try:
            self._table.put_item(
                Item=order.to_dynamodb(),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                log.info("pending_order_already_exists", order_id=order.order_id)
                existing = self.load_pending_order(order.order_id)
                if existing:
                    return existing
                raise OrderNotFoundError(order.order_id) from e
            raise self._error("put", e, order_id=order.order_id) from e
        return order

    def update_order_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        *,
        expected_status: OrderStatus = OrderStatus.PENDING,
        fulfilled_order_id: str | None = None,
        confirmed_at: int | None = None,
        claim_token: str | None = None,
    ) -> None:
        """
        Move an order out of `expected_status`.

        The write is conditioned on the stored status, so two callers racing on
        the same order produce exactly one transition. With `claim_token` the
        order must carry that token; without it the order must be unclaimed,
        so a failed or cancelled transition cannot overtake a claim in flight.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
            ConditionalWriteError: If the stored status is no longer `expected_status`
            DynamoDBError: On other DynamoDB failures
        """
        validate_transition(expected_status, new_status)

        update_parts = ["#status = :new_status", "#updated_at = :updated_at"]
        expr_names = {"#status": "status", "#updated_at": "updated_at"}
        expr_values: dict[str, Any] = {
            ":new_status": new_status.value,
            ":expected_status": expected_status.value,
            ":updated_at": _now(),
        }
        optional_updates = [
            ("fulfilled_order_id", fulfilled_order_id),
            ("confirmed_at", confirmed_at),
        ]
        for field_name, value in optional_updates:
            if value is not None:
                update_parts.append(f"#{field_name} = :{field_name}")
                expr_names[f"#{field_name}"] = field_name
                expr_values[f":{field_name}"] = value

        log.info(
            "updating_order_status",
            order_id=order_id,
            old_status=expected_status.value,
            new_status=new_status.value,
        )

        condition = "attribute_exists(PK) AND #status = :expected_status"
        if claim_token is None:
            condition += " AND attribute_not_exists(claim_token)"
        else:
            condition += " AND claim_token = :claim_token"
            expr_values[":claim_token"] = claim_token

        try:
            self._table.update_item(
                Key={"PK": f"ORDER#{order_id}", "SK": "PENDING"},
                UpdateExpression="SET " + ", ".join(update_parts),
                ExpressionAttributeNames=expr_names,
                ExpressionAttributeValues=expr_values,
                ConditionExpression=condition,
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                log.warning(
                    "order_status_condition_failed",
                    order_id=order_id,
                    expected_status=expected_status.value,
                )
                raise ConditionalWriteError(
                    table_name=self.table_name,
                    expected_status=expected_status.value,
                ) from e
            raise self._error("update", e, order_id=order_id) from e

    def put_finalized_order(self, order: FinalizedOrder) -> FinalizedOrder:
        """Insert a finalized order. Never overwrites an existing record."""
        try:
            self._table.put_item(
                Item=order.to_dynamodb(),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as e:
            raise self._error(
                "put", e, fulfilled_order_id=order.fulfilled_order_id
            ) from e
        log.info(
            "finalized_order_created",
            fulfilled_order_id=order.fulfilled_order_id,
            source_order_id=order.source_order_id,
            quantity=order.quantity,
        )
        return order

    def load_finalized_order(self, fulfilled_order_id: str) -> FinalizedOrder | None:
        try:
            response = self._table.get_item(
                Key={"PK": f"FULFILLED#{fulfilled_order_id}", "SK": "METADATA"},
            )
        except ClientError as e:
            raise self._error("get", e, fulfilled_order_id=fulfilled_order_id) from e
        item = response.get("Item")
        return FinalizedOrder.from_dynamodb(item) if item else None


def create_table(dynamodb, settings: Settings | None = None):
    """
    Create the Stockroom table with its GSI1 index (local development and tests).

    Args:
        dynamodb: boto3 DynamoDB service resource
        settings: Settings instance. If None, uses the cached singleton.

    Returns:
        The boto3 Table resource, existing or new
    """
    settings = settings or get_settings()
    try:
        table = dynamodb.create_table(
            TableName=settings.dynamodb_table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
                {"AttributeName": "GSI1PK", "AttributeType": "S"},
                {"AttributeName": "GSI1SK", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": settings.dynamodb_gsi1_name,
                    "KeySchema": [
                        {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                        {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceInUseException":
            raise
        return dynamodb.Table(settings.dynamodb_table_name)

    table.meta.client.get_waiter("table_exists").wait(TableName=settings.dynamodb_table_name)
    log.info("dynamodb_table_created", table_name=settings.dynamodb_table_name)
    return table
