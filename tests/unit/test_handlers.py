"""
Unit tests for the Lambda entry points.

Tests cover:
- fulfill_direct_order: status code mapping
- stock_check: operator and cron-secret authentication, validation errors
- stock_bulk_delete: both body shapes
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from stockroom.shared.exceptions import (
    ConfigurationError,
    DeliveryError,
    FinalizationError,
    InconsistencyError,
)
from stockroom.shared.models.check import CheckSource, MailMessage
from stockroom.shared.models.dynamo import PendingOrder


def _body(response) -> dict:
    return json.loads(response["body"])


# ============================================================================
# fulfill_direct_order
# ============================================================================

class TestFulfillDirectOrderHandler:
    """Tests for the fulfillment Lambda."""

    @pytest.fixture
    def channel(self):
        return MagicMock()

    @pytest.fixture
    def real_engine(self, store, channel, settings, frozen_datetime, seeded_operator, seeded_product):
        from stockroom.fulfillment.engine import FulfillmentEngine

        engine = FulfillmentEngine(store=store, channel=channel, settings=settings, clock=lambda: frozen_datetime)
        with patch("lambdas.fulfill_direct_order.handler._get_engine", return_value=engine):
            yield engine

    def test_unauthenticated(self, api_event):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        response = lambda_handler(api_event({"orderId": 1}, sub=None), None)
        assert response["statusCode"] == 401

    @pytest.mark.parametrize("body", ["not json", "[]", {}, {"orderId": ""}, {"orderId": True}])
    def test_bad_body(self, api_event, body):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        response = lambda_handler(api_event(body), None)
        assert response["statusCode"] == 400

    def test_success(self, real_engine, store, pending_order_data, product_id, api_event):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        store.put_pending_order(PendingOrder(**pending_order_data))
        store.add_stock_items(product_id, ["a@x.io,1", "b@x.io,2"])

        response = lambda_handler(api_event({"orderId": 1042}), None)

        assert response["statusCode"] == 200
        body = _body(response)
        assert body["success"] is True
        assert body["status"] == "confirmed"
        assert body["delivered_count"] == 2
        assert body["fulfilled_order_id"]

    def test_forbidden(self, real_engine, store, pending_order_data, api_event):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        store.put_pending_order(PendingOrder(**pending_order_data))

        response = lambda_handler(api_event({"orderId": "1042"}, sub="stranger"), None)
        assert response["statusCode"] == 403

    def test_not_found(self, real_engine, api_event):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        response = lambda_handler(api_event({"orderId": "nope"}), None)
        assert response["statusCode"] == 404

    def test_not_enough_stock(self, real_engine, store, pending_order_data, api_event):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        store.put_pending_order(PendingOrder(**pending_order_data))

        response = lambda_handler(api_event({"orderId": "1042"}), None)

        assert response["statusCode"] == 409
        assert _body(response)["error"] == "Not enough stock."

    def test_already_processed(self, real_engine, store, pending_order_data, api_event):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        store.put_pending_order(PendingOrder(**{**pending_order_data, "status": "failed"}))

        response = lambda_handler(api_event({"orderId": "1042"}), None)
        assert response["statusCode"] == 400

    @pytest.mark.parametrize(
        "error,status_code",
        [
            (InconsistencyError("1042", [1, 2], [1]), 500),
            (FinalizationError("1042", [1, 2], "confirm_order", "throttled"), 500),
            (DeliveryError("1042", [1, 2], "f-1", "blocked"), 502),
        ],
    )
    def test_post_allocation_errors(self, api_event, error, status_code):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        engine = MagicMock()
        engine.fulfill.side_effect = error
        with patch("lambdas.fulfill_direct_order.handler._get_engine", return_value=engine):
            response = lambda_handler(api_event({"orderId": "1042"}), None)

        assert response["statusCode"] == status_code
        assert _body(response)["stock_ids"] == [1, 2]

    def test_missing_configuration(self, api_event):
        from lambdas.fulfill_direct_order.handler import lambda_handler

        engine = MagicMock()
        engine.fulfill.side_effect = ConfigurationError("telegram_bot_token")
        with patch("lambdas.fulfill_direct_order.handler._get_engine", return_value=engine):
            response = lambda_handler(api_event({"orderId": "1042"}), None)

        assert response["statusCode"] == 500
        assert _body(response)["error"] == "telegram_bot_token is not configured."


# ============================================================================
# stock_check
# ============================================================================

class FakeSource:
    def __init__(self, mailboxes):
        self.mailboxes = mailboxes

    def fetch_messages(self, target):
        return self.mailboxes.get(target.identifier, [])


class TestStockCheckHandler:
    """Tests for the verification Lambda."""

    @pytest.fixture
    def engine_patch(self, mock_dynamodb, settings):
        from stockroom.verification.engine import VerificationEngine

        source = FakeSource({"a@x.io": [MailMessage(subject="Welcome", from_address="hi@shop.io")]})

        def build(store, handler_settings):
            return VerificationEngine(store=store, sources={s: source for s in CheckSource}, settings=settings)

        with patch("lambdas.stock_check.handler._get_engine", side_effect=build):
            yield

    @pytest.fixture
    def stocked(self, store, product_id):
        store.add_stock_items(product_id, ["a@x.io,pw", "b@x.io,pw"])

    def _payload(self, product_id):
        return {"scope": "product", "source": "tempmail", "productId": product_id}

    def test_operator_run(self, engine_patch, seeded_operator, stocked, product_id, api_event):
        from lambdas.stock_check.handler import lambda_handler

        response = lambda_handler(api_event(self._payload(product_id)), None)

        assert response["statusCode"] == 200
        body = _body(response)
        assert body["total"] == 2
        assert body["true_count"] == 1
        assert [r["status"] for r in body["results"]] == ["true", "false"]

    def test_non_operator_forbidden(self, engine_patch, stocked, product_id, api_event):
        from lambdas.stock_check.handler import lambda_handler

        response = lambda_handler(api_event(self._payload(product_id), sub="stranger"), None)
        assert response["statusCode"] == 403

    def test_validation_error(self, engine_patch, seeded_operator, api_event):
        from lambdas.stock_check.handler import lambda_handler

        response = lambda_handler(api_event({"scope": "product", "source": "tempmail"}), None)

        assert response["statusCode"] == 400
        assert _body(response)["field"] == "productId"

    @pytest.mark.parametrize(
        "headers",
        [
            {"x-cron-secret": "test-cron-secret"},
            {"X-Cron-Token": " test-cron-secret "},
            {"Authorization": "Bearer test-cron-secret"},
        ],
    )
    def test_cron_secret_accepted(self, engine_patch, stocked, product_id, api_event, headers):
        from lambdas.stock_check.handler import lambda_handler

        response = lambda_handler(api_event(self._payload(product_id), sub=None, headers=headers), None)
        assert response["statusCode"] == 200

    def test_cron_secret_missing(self, engine_patch, product_id, api_event):
        from lambdas.stock_check.handler import lambda_handler

        response = lambda_handler(api_event(self._payload(product_id), sub=None), None)
        assert response["statusCode"] == 401

    def test_cron_secret_wrong(self, engine_patch, product_id, api_event):
        from lambdas.stock_check.handler import lambda_handler

        event = api_event(self._payload(product_id), sub=None, headers={"x-cron-secret": "guess"})
        assert lambda_handler(event, None)["statusCode"] == 403

    def test_cron_secret_not_configured(self, engine_patch, settings, product_id, api_event):
        from lambdas.stock_check.handler import lambda_handler

        unconfigured = settings.model_copy(update={"cron_secret": ""})
        event = api_event(self._payload(product_id), sub=None, headers={"x-cron-secret": "anything"})
        with patch("lambdas.stock_check.handler.get_settings", return_value=unconfigured):
            response = lambda_handler(event, None)

        assert response["statusCode"] == 500


# ============================================================================
# stock_bulk_delete
# ============================================================================

class TestStockBulkDeleteHandler:
    """Tests for the bulk delete Lambda."""

    @pytest.fixture
    def stocked(self, store, product_id):
        return store.add_stock_items(product_id, [f"u{i}@x.io" for i in range(1, 5)])

    def test_delete_by_ids(self, seeded_operator, stocked, store, api_event):
        from lambdas.stock_bulk_delete.handler import lambda_handler

        response = lambda_handler(api_event({"stockIds": [1, "2", 2, -4, "x"]}), None)

        assert response["statusCode"] == 200
        assert _body(response) == {"deleted": 2}
        assert [row.stock_id for row in store.get_stock_items([1, 2, 3, 4])] == [3, 4]

    def test_delete_by_result_status(self, seeded_operator, stocked, store, api_event):
        from lambdas.stock_bulk_delete.handler import lambda_handler

        body = {
            "status": "error",
            "results": [
                {"stock_id": 1, "identifier": "u1@x.io", "content": "u1@x.io", "status": "true"},
                {"stock_id": 3, "identifier": "", "content": "", "status": "error", "error": "boom"},
                {"stock_id": 4, "identifier": "", "content": "", "status": "error", "error": "boom"},
            ],
        }

        response = lambda_handler(api_event(body), None)

        assert _body(response) == {"deleted": 2}
        assert [row.stock_id for row in store.get_stock_items([1, 2, 3, 4])] == [1, 2]

    def test_nothing_to_delete(self, seeded_operator, api_event):
        from lambdas.stock_bulk_delete.handler import lambda_handler

        response = lambda_handler(api_event({"stockIds": []}), None)
        assert _body(response) == {"deleted": 0}

    @pytest.mark.parametrize(
        "body",
        [
            {"status": "maybe", "results": []},
            {"status": "true", "results": "x"},
            {"status": "true", "results": [{"stock_id": "abc"}]},
            {},
        ],
    )
    def test_bad_body(self, seeded_operator, api_event, body):
        from lambdas.stock_bulk_delete.handler import lambda_handler

        assert lambda_handler(api_event(body), None)["statusCode"] == 400

    def test_auth(self, mock_dynamodb, api_event):
        from lambdas.stock_bulk_delete.handler import lambda_handler

        assert lambda_handler(api_event({"stockIds": [1]}, sub=None), None)["statusCode"] == 401
        assert lambda_handler(api_event({"stockIds": [1]}, sub="stranger"), None)["statusCode"] == 403
