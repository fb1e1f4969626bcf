"""
Sales Service — order model

State transitions (no ordering is enforced between the two targets):
    Pending Shipment → Shipped
    Pending Shipment → Delivered
    Shipped          → Delivered

Only `status` and `updated_at` change after creation.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class OrderStatus(str, Enum):
    PENDING_SHIPMENT = "Pending Shipment"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"


DELIVERY_STATUSES = (OrderStatus.SHIPPED, OrderStatus.DELIVERED)


class OrderItem(BaseModel):
    product_id: str
    quantity: int


class Order(BaseModel):
    id: str
    customer_id: str
    status: OrderStatus = OrderStatus.PENDING_SHIPMENT
    items: list[OrderItem]
    total_amount: float = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StatusHistoryEntry(BaseModel):
    order_id: str
    status: OrderStatus
    changed_at: datetime


class UnavailableItem(BaseModel):
    product_id: str
    requested_quantity: int
    available_quantity: int


class AvailabilityResult(BaseModel):
    available: bool
    unavailable_items: list[UnavailableItem] = []
