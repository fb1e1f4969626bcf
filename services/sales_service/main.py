"""
Sales Service — FastAPI entry point

Accepts orders, serves order lookups and, in the background, applies
delivery status events to stored orders.

┌──────────┐ POST /api/orders ┌───────────────┐ check  ┌───────────────────┐
│  Client  │ ───────────────▶ │ Sales Service │ ─────▶ │ Inventory Service │
└──────────┘                  └──────┬────────┘        └───────────────────┘
                          order.created │  ▲ delivery.updates
                                        ▼  │
                                  ┌─────────────┐
                                  │ Redis       │
                                  │ Streams     │
                                  └─────────────┘
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import create_async_engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from messaging import BrokerClient

from . import config
from .consumers import delivery_status_handler
from .coordinator import OrderCoordinator
from .errors import (
    AvailabilityError,
    InvalidStatusError,
    InventoryError,
    NotFoundError,
    SalesError,
    ValidationError,
)
from .inventory_gateway import InventoryGateway
from .store import OrderStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

engine = create_async_engine(config.DATABASE_URL, echo=False)
broker = BrokerClient(
    config.REDIS_URL,
    [config.ORDER_CREATED_QUEUE, config.DELIVERY_UPDATES_QUEUE],
    group=config.MQ_CONSUMER_GROUP,
    dedup_ttl=config.MQ_DEDUP_TTL_SECONDS,
    consumer=config.MQ_CONSUMER_NAME,
    prefetch=config.MQ_PREFETCH,
    claim_idle_ms=config.MQ_CLAIM_IDLE_MS,
    required=config.ENVIRONMENT == "production",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = OrderStore(engine)
    await store.create_schema()

    await broker.connect()
    inventory = InventoryGateway(
        config.INVENTORY_SERVICE_URL,
        config.INVENTORY_SERVICE_TOKEN,
        timeout_ms=config.INVENTORY_SERVICE_TIMEOUT,
    )
    coordinator = OrderCoordinator(store, inventory, broker, config.ORDER_CREATED_QUEUE)
    app.state.coordinator = coordinator

    await broker.consume(config.DELIVERY_UPDATES_QUEUE, delivery_status_handler(coordinator))
    logger.info("Sales service started (environment=%s)", config.ENVIRONMENT)
    yield

    logger.info("Shutting down sales service")
    await broker.close()
    await engine.dispose()


app = FastAPI(title="Sales Service", lifespan=lifespan)

_CLIENT_ERRORS = (ValidationError, AvailabilityError, InvalidStatusError, NotFoundError)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    client = request.client.host if request.client else "-"
    logger.info("Incoming request: %s %s from %s", request.method, request.url.path, client)
    return await call_next(request)


# ── Error Envelopes ──────────────────────────────


@app.exception_handler(SalesError)
async def sales_error_handler(request: Request, exc: SalesError):
    content: dict[str, Any] = {"success": False}
    if isinstance(exc, AvailabilityError):
        content["error"] = exc.message
        content["unavailable_items"] = exc.unavailable_items
    elif isinstance(exc, _CLIENT_ERRORS):
        content["error"] = exc.message
    elif isinstance(exc, InventoryError):
        logger.error("Inventory failure on %s: %s", request.url.path, exc.message)
        content["error"] = "Inventory service is currently unavailable. Please try again later."
    else:
        logger.error("Request %s failed: %s", request.url.path, exc.message)
        content["error"] = "Internal server error"
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400, content={"success": False, "error": "Invalid request body"}
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code, content={"success": False, "error": exc.detail}
    )


# ── Order Endpoints ──────────────────────────────


@app.post("/api/orders", status_code=201)
async def create_order(request: Request, payload: dict[str, Any] = Body(...)):
    """Create an order after a synchronous availability check."""
    coordinator: OrderCoordinator = request.app.state.coordinator
    order = await coordinator.create_order(payload.get("customer_id"), payload.get("items"))
    return {
        "success": True,
        "data": {
            "order_id": order.id,
            "status": order.status.value,
            "total_amount": order.total_amount,
        },
    }


@app.get("/api/orders/{order_id}")
async def get_order(request: Request, order_id: str):
    coordinator: OrderCoordinator = request.app.state.coordinator
    order = await coordinator.get_order(order_id)
    if order is None:
        raise HTTPException(404, "Order not found")
    return {"success": True, "data": order.model_dump(mode="json")}


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "broker": broker.state.value,
    }
