"""
Messaging — event definitions

Events are facts that already happened: named in the past tense and
treated as immutable once published. Both records travel as UTF-8 JSON
in the `body` field of a stream entry.
"""

from datetime import datetime

from pydantic import BaseModel


class EventItem(BaseModel):
    product_id: str
    quantity: int


class OrderCreatedEvent(BaseModel):
    """An order was accepted and persisted by the sales service."""
    order_id: str
    customer_id: str
    items: list[EventItem]
    total_amount: float
    created_at: datetime


class DeliveryStatusUpdateEvent(BaseModel):
    """The delivery side reports a shipment status change.

    `status` is kept as a plain string; the sales coordinator decides
    whether the value is acceptable.
    """
    order_id: str
    status: str
    updated_at: datetime
