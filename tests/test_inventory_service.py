import httpx
import pytest
import pytest_asyncio

from inventory_service import catalog, config, main


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://inventory", headers={"token": config.AUTH_TOKEN}
    ) as http:
        yield http


def test_catalog_reports_everything_available():
    result = catalog.check_availability(
        [{"product_id": "product-1", "quantity": 1}, {"product_id": "product-2", "quantity": 200}]
    )
    assert result == {"available": True}


def test_catalog_reports_short_and_unknown_products():
    result = catalog.check_availability(
        [
            {"product_id": "product-1", "quantity": 1},
            {"product_id": "product-8", "quantity": 16},
            {"product_id": "out-of-stock-product", "quantity": 1},
            {"product_id": "nope", "quantity": 3},
        ]
    )
    assert result == {
        "available": False,
        "unavailable_items": [
            {"product_id": "product-8", "requested_quantity": 16, "available_quantity": 15},
            {"product_id": "out-of-stock-product", "requested_quantity": 1, "available_quantity": 0},
            {"product_id": "nope", "requested_quantity": 3, "available_quantity": 0},
        ],
    }


def test_catalog_check_does_not_reserve_stock():
    items = [{"product_id": "product-7", "quantity": 25}]
    assert catalog.check_availability(items) == catalog.check_availability(items)
    assert catalog.get_product("product-7").stock_quantity == 25


@pytest.mark.asyncio
async def test_missing_token_is_401():
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://inventory") as http:
        response = await http.post("/api/inventory/check", json={"items": []})

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Authentication required. Please provide a token in the headers.",
    }


@pytest.mark.asyncio
async def test_wrong_token_is_403(client):
    response = await client.get("/api/inventory/products", headers={"token": "wrong"})

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Invalid authentication token"}


@pytest.mark.asyncio
async def test_check_endpoint(client):
    response = await client.post(
        "/api/inventory/check",
        json={"items": [{"product_id": "product-1", "quantity": 60}]},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {
            "available": False,
            "unavailable_items": [
                {"product_id": "product-1", "requested_quantity": 60, "available_quantity": 50}
            ],
        },
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, error",
    [
        ({}, "items array is required and must not be empty"),
        ({"items": []}, "items array is required and must not be empty"),
        ({"items": ["product-1"]}, "Each item must be an object"),
        ({"items": [{"quantity": 1}]}, "Each item must have a valid product_id"),
        ({"items": [{"product_id": "product-1", "quantity": 0}]},
         "Each item must have a positive integer quantity"),
        ({"items": [{"product_id": "product-1", "quantity": "1"}]},
         "Each item must have a positive integer quantity"),
    ],
)
async def test_check_endpoint_validates_items(client, payload, error):
    response = await client.post("/api/inventory/check", json=payload)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": error}


@pytest.mark.asyncio
async def test_products_are_listed(client):
    response = await client.get("/api/inventory/products")

    assert response.status_code == 200
    ids = [product["id"] for product in response.json()["data"]]
    assert ids[0] == "product-1"
    assert "out-of-stock-product" in ids


@pytest.mark.asyncio
async def test_product_lookup(client):
    found = await client.get("/api/inventory/products/product-4")
    assert found.json()["data"] == {"id": "product-4", "name": 'Monitor 27"', "stock_quantity": 30}

    missing = await client.get("/api/inventory/products/nope")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Product not found"}


@pytest.mark.asyncio
async def test_health_needs_no_token():
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://inventory") as http:
        response = await http.get("/health")

    assert response.status_code == 200
    assert response.json()["service"] == "inventory-service"


@pytest.mark.asyncio
async def test_non_ascii_token_is_403(client):
    response = await client.get(
        "/api/inventory/products", headers={"token": "wröng-tökén".encode("latin-1")}
    )

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Invalid authentication token"}
