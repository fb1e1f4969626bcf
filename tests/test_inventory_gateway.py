import asyncio
import json

import httpx
import pytest

from sales_service.errors import (
    InventoryAuthError,
    InventoryProtocolError,
    InventoryUnavailableError,
)
from sales_service.inventory_gateway import InventoryGateway
from sales_service.models import OrderItem

ITEMS = [OrderItem(product_id="p1", quantity=5), OrderItem(product_id="p2", quantity=1)]


def _gateway(handler, timeout_ms=1000):
    return InventoryGateway(
        "http://inventory:3001/",
        "secret",
        timeout_ms=timeout_ms,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_sends_items_with_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["token"] = request.headers.get("token")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": {"available": True}})

    result = await _gateway(handler).check_availability(ITEMS)

    assert result.available is True
    assert result.unavailable_items == []
    assert seen["url"] == "http://inventory:3001/api/inventory/check"
    assert seen["token"] == "secret"
    assert seen["body"] == {
        "items": [{"product_id": "p1", "quantity": 5}, {"product_id": "p2", "quantity": 1}]
    }


@pytest.mark.asyncio
async def test_parses_unavailable_items():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "available": False,
                    "unavailable_items": [
                        {"product_id": "p1", "requested_quantity": 5, "available_quantity": 2}
                    ],
                },
            },
        )

    result = await _gateway(handler).check_availability(ITEMS)

    assert result.available is False
    assert [item.model_dump() for item in result.unavailable_items] == [
        {"product_id": "p1", "requested_quantity": 5, "available_quantity": 2}
    ]


@pytest.mark.asyncio
async def test_timeout_is_reported_as_unavailable():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json={"success": True, "data": {"available": True}})

    with pytest.raises(InventoryUnavailableError, match="timeout"):
        await _gateway(handler, timeout_ms=50).check_availability(ITEMS)


@pytest.mark.asyncio
async def test_non_positive_timeout_disables_the_limit():
    async def handler(request):
        await asyncio.sleep(0.05)
        return httpx.Response(200, json={"success": True, "data": {"available": True}})

    gateway = _gateway(handler, timeout_ms=0)
    assert gateway.timeout is None
    result = await gateway.check_availability(ITEMS)
    assert result.available is True


@pytest.mark.asyncio
async def test_connection_failure_is_reported_as_unavailable():
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    with pytest.raises(InventoryUnavailableError, match="connection failed"):
        await _gateway(handler).check_availability(ITEMS)


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 403])
async def test_auth_failures(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"success": False, "error": "nope"})

    with pytest.raises(InventoryAuthError):
        await _gateway(handler).check_availability(ITEMS)


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [400, 404, 500, 502])
async def test_other_error_statuses_are_protocol_errors(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"success": False, "error": "bad"})

    with pytest.raises(InventoryProtocolError):
        await _gateway(handler).check_availability(ITEMS)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"success": False, "error": "Internal server error"}),
        httpx.Response(200, json={"success": True}),
        httpx.Response(200, json={"success": True, "data": {"unavailable_items": "x"}}),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, content=b"<html>oops</html>"),
    ],
)
async def test_malformed_success_responses_are_protocol_errors(response):
    def handler(request):
        return response

    with pytest.raises(InventoryProtocolError):
        await _gateway(handler).check_availability(ITEMS)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [httpx.DecodingError("Error -3 while decompressing data"), httpx.TooManyRedirects("Exceeded")],
)
async def test_other_request_errors_are_protocol_errors(error):
    def handler(request):
        error.request = request
        raise error

    with pytest.raises(InventoryProtocolError, match="request failed"):
        await _gateway(handler).check_availability(ITEMS)
