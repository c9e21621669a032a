"""
Pytest Configuration and Shared Fixtures

Provides moto AWS mocking, settings, seeded records and test utilities.
"""

import os
from datetime import datetime, timezone
from typing import Any

import boto3
import pytest
from moto import mock_aws

# Set test environment before importing application modules
os.environ["STOCKROOM_DYNAMODB_TABLE_NAME"] = "TestStockroom"
os.environ["STOCKROOM_AWS_REGION"] = "us-west-2"
os.environ["STOCKROOM_TELEGRAM_BOT_TOKEN"] = "test-token"
os.environ["STOCKROOM_CRON_SECRET"] = "test-cron-secret"
os.environ["AWS_DEFAULT_REGION"] = "us-west-2"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"


# --- Time Fixtures ---


@pytest.fixture
def frozen_time() -> int:
    """Fixed Unix timestamp for deterministic tests."""
    return 1738800000  # 2025-02-06 00:00:00 UTC


@pytest.fixture
def frozen_datetime(frozen_time: int) -> datetime:
    """Fixed aware datetime for deterministic tests."""
    return datetime.fromtimestamp(frozen_time, tz=timezone.utc)


# --- Settings Fixtures ---


@pytest.fixture
def settings():
    """Explicit settings so tests do not depend on the cached singleton."""
    from stockroom.shared.config import Settings

    return Settings(
        dynamodb_table_name="TestStockroom",
        aws_region="us-west-2",
        telegram_bot_token="test-token",
        telegram_api_base="https://telegram.test",
        tempmail_api_base="https://tempmail.test/api",
        tinyhost_api_url="https://tinyhost.test/api/tempmail-tinyhost",
        hotmail_proxy_url="https://hotmail.test/api/read-inbox",
        cron_secret="test-cron-secret",
    )


# --- AWS Mocking Fixtures ---


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    return {
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "region_name": "us-west-2",
    }


@pytest.fixture
def mock_dynamodb(aws_credentials, settings):
    """
    Create a mocked Stockroom table.

    Creates the table with GSI1 (GSI1PK/GSI1SK) and yields the Table resource.
    """
    from stockroom.shared.tools.dynamodb import create_table

    with mock_aws():
        dynamodb = boto3.resource("dynamodb", **aws_credentials)
        yield create_table(dynamodb, settings)


@pytest.fixture
def store(mock_dynamodb, settings):
    """InventoryStore bound to the mocked table."""
    from stockroom.shared.tools.dynamodb import InventoryStore

    return InventoryStore(table=mock_dynamodb, settings=settings)


# --- Record Fixtures ---


@pytest.fixture
def operator_id() -> str:
    """Authenticated caller id of an operator."""
    return "operator-sub-001"


@pytest.fixture
def seeded_operator(store, operator_id: str):
    """Operator record granting the elevated capability."""
    from stockroom.shared.models.dynamo import Operator

    return store.put_operator(Operator(user_id=operator_id, role="admin"))


@pytest.fixture
def product_id() -> int:
    return 7


@pytest.fixture
def seeded_product(store, product_id: int):
    """Product with two field labels."""
    from stockroom.shared.models.dynamo import Product

    return store.put_product(
        Product(
            product_id=product_id,
            name="Gmail Aged",
            description="Login via web only.",
            format_data="Email, Password",
        )
    )


@pytest.fixture
def pending_order_data(product_id: int, frozen_time: int) -> dict[str, Any]:
    """Pending chat-bot order for two units."""
    return {
        "order_id": "1042",
        "buyer_ref": "555000111",
        "product_id": product_id,
        "quantity": 2,
        "bonus_quantity": 0,
        "unit_price": 15000,
        "amount": 30000,
        "code": "PAY1042",
        "created_at": frozen_time,
    }


@pytest.fixture
def api_event(operator_id: str):
    """Build an API Gateway proxy event for an authenticated operator."""
    import json

    def _build(body: Any, *, sub: str | None = operator_id, headers: dict | None = None) -> dict:
        event: dict[str, Any] = {
            "body": body if isinstance(body, str) else json.dumps(body),
            "headers": headers or {},
            "requestContext": {},
        }
        if sub:
            event["requestContext"]["authorizer"] = {"claims": {"sub": sub}}
        return event

    return _build
