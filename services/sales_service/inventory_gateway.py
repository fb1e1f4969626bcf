"""
Sales Service — inventory gateway

Synchronous availability check against the inventory service:

  ┌───────────────┐  POST /api/inventory/check   ┌───────────────────┐
  │ Sales Service │ ───────────────────────────▶ │ Inventory Service │
  │ (coordinator) │ ◀─── {success, data} ─────── │ (catalog oracle)  │
  └───────────────┘                              └───────────────────┘

The whole round trip is bounded by one timeout. A timeout or a
connection failure is never read as "available" or "unavailable"; it is
raised as InventoryUnavailableError and the caller gives up on the order.
"""

import asyncio
import logging
from collections.abc import Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    InventoryAuthError,
    InventoryProtocolError,
    InventoryUnavailableError,
)
from .models import AvailabilityResult, OrderItem

logger = logging.getLogger(__name__)

CHECK_PATH = "/api/inventory/check"


class InventoryGateway:
    def __init__(
        self,
        base_url: str,
        token: str,
        timeout_ms: int = 5000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        # zero or negative disables the timeout
        self.timeout = timeout_ms / 1000 if timeout_ms > 0 else None
        self._transport = transport

    async def check_availability(self, items: Sequence[OrderItem]) -> AvailabilityResult:
        logger.info(
            "Checking product availability: %d item(s) at %s", len(items), self.base_url
        )
        body = {
            "items": [
                {"product_id": item.product_id, "quantity": item.quantity}
                for item in items
            ]
        }

        try:
            if self.timeout is None:
                response = await self._post(body)
            else:
                response = await asyncio.wait_for(self._post(body), self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.error(
                "Inventory service request timed out after %ss (%s)",
                self.timeout, self.base_url,
            )
            raise InventoryUnavailableError("Inventory service request timeout") from exc
        except httpx.TransportError as exc:
            logger.error("Failed to connect to inventory service at %s: %s", self.base_url, exc)
            raise InventoryUnavailableError(
                "Inventory service unavailable - connection failed"
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Inventory service request to %s failed: %r", self.base_url, exc)
            raise InventoryProtocolError(f"Inventory service request failed: {exc}") from exc

        result = self._parse(response)
        logger.info(
            "Availability check completed: available=%s, unavailable=%d",
            result.available, len(result.unavailable_items),
        )
        return result

    async def _post(self, body: dict) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            return await client.post(CHECK_PATH, json=body, headers={"token": self.token})

    def _parse(self, response: httpx.Response) -> AvailabilityResult:
        if not response.is_success:
            logger.error(
                "Inventory service returned %d: %s", response.status_code, response.text
            )
            if response.status_code in (401, 403):
                raise InventoryAuthError("Inventory service authentication failed")
            raise InventoryProtocolError(
                f"Inventory service error: {response.status_code} {response.reason_phrase}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise InventoryProtocolError("Inventory service returned invalid JSON") from exc

        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error") if isinstance(payload, dict) else None
            logger.error("Inventory service returned unsuccessful response: %s", payload)
            raise InventoryProtocolError(error or "Inventory service check failed")

        data = payload.get("data")
        if data is None:
            raise InventoryProtocolError("Inventory service returned success but no data")

        try:
            return AvailabilityResult.model_validate(data)
        except PydanticValidationError as exc:
            raise InventoryProtocolError(
                "Inventory service returned a malformed availability result"
            ) from exc
