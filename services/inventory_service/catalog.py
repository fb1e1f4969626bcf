"""
Inventory Service — product catalog

The catalog is a fixed in-memory table. An availability check never
reserves stock; it only compares the requested quantities against it,
so it can be repeated freely.
"""

import logging
from collections.abc import Iterable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Product(BaseModel):
    id: str
    name: str
    stock_quantity: int


PRODUCTS: list[Product] = [
    Product(id="product-1", name="Laptop Computer", stock_quantity=50),
    Product(id="product-2", name="Wireless Mouse", stock_quantity=200),
    Product(id="product-3", name="Mechanical Keyboard", stock_quantity=75),
    Product(id="product-4", name='Monitor 27"', stock_quantity=30),
    Product(id="product-5", name="USB-C Hub", stock_quantity=150),
    Product(id="product-6", name="Webcam HD", stock_quantity=100),
    Product(id="product-7", name="Desk Chair", stock_quantity=25),
    Product(id="product-8", name="Standing Desk", stock_quantity=15),
    Product(id="product-9", name="Noise Cancelling Headphones", stock_quantity=60),
    Product(id="product-10", name="External SSD 1TB", stock_quantity=80),
    Product(id="out-of-stock-product", name="Discontinued Item", stock_quantity=0),
]

_BY_ID = {product.id: product for product in PRODUCTS}


def get_product(product_id: str) -> Product | None:
    return _BY_ID.get(product_id)


def list_products() -> list[Product]:
    return list(PRODUCTS)


def check_availability(items: Iterable[dict]) -> dict:
    """
    Compare each requested (product_id, quantity) with stock.

    Unknown products are reported with available_quantity 0.
    `unavailable_items` is only present when something is missing.
    """
    unavailable = []
    checked = 0
    for item in items:
        checked += 1
        product = _BY_ID.get(item["product_id"])
        if product is None:
            logger.warning("Product not found: %s", item["product_id"])
            available_quantity = 0
        elif product.stock_quantity < item["quantity"]:
            logger.warning(
                "Insufficient stock for %s: requested=%d, available=%d",
                product.id, item["quantity"], product.stock_quantity,
            )
            available_quantity = product.stock_quantity
        else:
            continue
        unavailable.append(
            {
                "product_id": item["product_id"],
                "requested_quantity": item["quantity"],
                "available_quantity": available_quantity,
            }
        )

    logger.info(
        "Availability check completed: %d item(s), %d unavailable", checked, len(unavailable)
    )
    result: dict = {"available": not unavailable}
    if unavailable:
        result["unavailable_items"] = unavailable
    return result
