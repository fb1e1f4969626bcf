"""
Delivery Service — FastAPI entry point

┌──────────────┐  POST /api/delivery/{id}/status  ┌──────────────────┐
│ Operator /   │ ───────────────────────────────▶ │ Delivery Service │
│ carrier hook │                                  └───┬──────────▲───┘
└──────────────┘                     delivery.updates │          │ order.created
                                                      ▼          │ (logged only)
                                                  ┌──────────────────┐
                                                  │  Redis Streams   │
                                                  └──────────────────┘
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from messaging import BrokerClient

from . import config
from .service import DELIVERY_STATUSES, DeliveryService

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

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
    """Connect the broker and start draining order.created in the background."""
    await broker.connect()
    service = DeliveryService(broker, config.DELIVERY_UPDATES_QUEUE)
    app.state.delivery_service = service
    await broker.consume(config.ORDER_CREATED_QUEUE, service.handle_order_created)
    logger.info("Delivery service started (environment=%s)", config.ENVIRONMENT)
    yield
    logger.info("Shutting down delivery service")
    await broker.close()


app = FastAPI(title="Delivery Service", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    client = request.client.host if request.client else "-"
    logger.info("Incoming request: %s %s from %s", request.method, request.url.path, client)
    return await call_next(request)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code, content={"success": False, "error": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400, content={"success": False, "error": "Invalid request body"}
    )


# ── Command Endpoints ────────────────────────────


@app.post("/api/delivery/{order_id}/status")
async def update_delivery_status(
    request: Request, order_id: str, payload: dict[str, Any] = Body(...)
):
    status = payload.get("status")
    if status not in DELIVERY_STATUSES:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": 'Invalid status. Must be "Shipped" or "Delivered"',
            },
        )

    service: DeliveryService = request.app.state.delivery_service
    try:
        event = await service.publish_status_update(order_id, status)
    except Exception:
        logger.exception("Failed to publish delivery status update for order %s", order_id)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to publish delivery status update"},
        )

    return {
        "success": True,
        "message": f"Delivery status update published for order {order_id}",
        "data": {
            "order_id": event.order_id,
            "status": event.status,
            "updated_at": event.updated_at.isoformat(),
        },
    }


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "broker": broker.state.value,
    }
