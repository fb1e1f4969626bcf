"""
Inventory Service — FastAPI entry point

Availability oracle for the sales service. Every endpoint except /health
requires the shared secret in a `token` header.
"""

import hmac
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import catalog, config

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Inventory Service")


async def require_token(request: Request, token: str | None = Header(default=None)) -> None:
    if not token:
        logger.warning("Authentication failed, no token provided: %s", request.url.path)
        raise HTTPException(
            401, "Authentication required. Please provide a token in the headers."
        )
    if not hmac.compare_digest(token.encode(), config.AUTH_TOKEN.encode()):
        logger.warning("Authentication failed, invalid token: %s", request.url.path)
        raise HTTPException(403, "Invalid authentication token")


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


def _validation_error(items: Any) -> str | None:
    if not isinstance(items, list) or not items:
        return "items array is required and must not be empty"
    for item in items:
        if not isinstance(item, dict):
            return "Each item must be an object"
        product_id = item.get("product_id")
        if not isinstance(product_id, str) or not product_id:
            return "Each item must have a valid product_id"
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            return "Each item must have a positive integer quantity"
    return None


# ── Inventory Endpoints ──────────────────────────


@app.post("/api/inventory/check", dependencies=[Depends(require_token)])
async def check_availability(payload: dict[str, Any] = Body(...)):
    """Report which requested items cannot be fulfilled from stock."""
    items = payload.get("items")
    error = _validation_error(items)
    if error:
        return JSONResponse(status_code=400, content={"success": False, "error": error})
    return {"success": True, "data": catalog.check_availability(items)}


@app.get("/api/inventory/products", dependencies=[Depends(require_token)])
async def list_products():
    return {"success": True, "data": [p.model_dump() for p in catalog.list_products()]}


@app.get("/api/inventory/products/{product_id}", dependencies=[Depends(require_token)])
async def get_product(product_id: str):
    product = catalog.get_product(product_id)
    if product is None:
        raise HTTPException(404, "Product not found")
    return {"success": True, "data": product.model_dump()}


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
