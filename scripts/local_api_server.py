"""
FastAPI Backend Server for Local Development

Serves the console routes against an in-memory (moto) DynamoDB table by
wrapping requests into API Gateway proxy events for the Lambda handlers.
The caller id is taken from the `x-operator-id` header.
"""

import json
import os
import time
from contextlib import asynccontextmanager
from typing import Any

# Set environment for local mode BEFORE any other imports
os.environ["STOCKROOM_DYNAMODB_ENDPOINT_URL"] = "mock"
os.environ["STOCKROOM_ENVIRONMENT"] = "development"
os.environ["STOCKROOM_DYNAMODB_TABLE_NAME"] = "Stockroom-local"
os.environ.setdefault("STOCKROOM_CRON_SECRET", "local-cron-secret")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-west-2")

from moto import mock_aws

mock = mock_aws()
mock.start()

import boto3
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from stockroom.shared.config import get_settings

get_settings.cache_clear()

from lambdas.fulfill_direct_order.handler import lambda_handler as fulfill_handler
from lambdas.stock_bulk_delete.handler import lambda_handler as bulk_delete_handler
from lambdas.stock_check.handler import lambda_handler as stock_check_handler
from stockroom.shared.exceptions import ProductNotFoundError
from stockroom.shared.models.dynamo import Operator, OrderChannel, PendingOrder, Product
from stockroom.shared.tools.dynamodb import InventoryStore, create_table

# Console renderer for local runs (the handlers configure JSON on import)
structlog.configure(
    processors=[
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()

LOCAL_OPERATOR_ID = "local-operator"


def setup_local_dynamodb() -> None:
    """Create the table and seed an operator for local development."""
    settings = get_settings()
    dynamodb = boto3.resource("dynamodb", region_name=settings.aws_region)
    create_table(dynamodb, settings)
    InventoryStore(settings=settings).put_operator(Operator(user_id=LOCAL_OPERATOR_ID))
    log.info("local_operator_seeded", user_id=LOCAL_OPERATOR_ID)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    setup_local_dynamodb()
    log.info("local_aws_resources_initialized")
    yield
    log.info("shutting_down")
    mock.stop()


app = FastAPI(
    title="Stockroom Console API",
    description="Local development server for the stockroom console",
    lifespan=lifespan,
)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if os.environ.get("CORS_ORIGINS"):
    origins.extend(
        o.strip() for o in os.environ["CORS_ORIGINS"].split(",") if o.strip()
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class SeedProductRequest(BaseModel):
    product_id: int
    name: str = ""
    description: str = ""
    format_data: str = ""
    stock: list[str] = Field(default_factory=list)


class SeedOrderRequest(BaseModel):
    order_id: str
    buyer_ref: str
    product_id: int
    quantity: int = 1
    bonus_quantity: int = 0
    unit_price: int = 0
    amount: int = 0
    code: str = ""
    channel: OrderChannel = OrderChannel.TELEGRAM


async def _invoke(handler, request: Request) -> JSONResponse:
    """Run a Lambda handler on a proxy event built from the request."""
    body = (await request.body()).decode("utf-8")
    event: dict[str, Any] = {
        "body": body,
        "headers": dict(request.headers),
        "requestContext": {},
    }
    operator_id = request.headers.get("x-operator-id")
    if operator_id:
        event["requestContext"]["authorizer"] = {"claims": {"sub": operator_id}}

    response = handler(event, None)
    return JSONResponse(
        status_code=response["statusCode"],
        content=json.loads(response["body"]),
    )


# =====================================================
# API Endpoints
# =====================================================


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "environment": "local", "version": "0.1.0"}


@app.post("/api/direct-orders/fulfill")
async def fulfill_direct_order(request: Request):
    return await _invoke(fulfill_handler, request)


@app.post("/api/stock/custom-check")
async def stock_check(request: Request):
    return await _invoke(stock_check_handler, request)


@app.post("/api/stock/custom-check/cron")
async def stock_check_cron(request: Request):
    return await _invoke(stock_check_handler, request)


@app.post("/api/stock/bulk-delete")
async def stock_bulk_delete(request: Request):
    return await _invoke(bulk_delete_handler, request)


@app.post("/api/dev/products")
async def seed_product(seed: SeedProductRequest):
    """Create a product and append stock lines to it."""
    store = InventoryStore()
    store.put_product(
        Product(
            product_id=seed.product_id,
            name=seed.name,
            description=seed.description,
            format_data=seed.format_data,
        )
    )
    items = store.add_stock_items(seed.product_id, seed.stock)
    return {"product_id": seed.product_id, "stock_ids": [item.stock_id for item in items]}


@app.post("/api/dev/direct-orders")
async def seed_order(seed: SeedOrderRequest):
    """Create a pending direct order stamped with the current time."""
    store = InventoryStore()
    if store.load_product(seed.product_id) is None:
        raise HTTPException(status_code=404, detail=str(ProductNotFoundError(seed.product_id)))
    order = store.put_pending_order(
        PendingOrder(**seed.model_dump(), created_at=int(time.time()))
    )
    return order.model_dump(mode="json")


if __name__ == "__main__":
    import uvicorn

    log.info("starting_local_api_server", host="0.0.0.0", port=8000)
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
