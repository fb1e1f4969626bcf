"""
Sales Service — order lifecycle coordinator

  createOrder:
  ┌────────────────────────────────────────────────────────────┐
  │  1. validate the request locally                            │
  │  2. ask the inventory service for availability (sync)       │
  │     └─ anything missing → AvailabilityError, nothing stored │
  │  3. store the order as "Pending Shipment"                   │
  │  4. publish order.created (best effort)                     │
  └────────────────────────────────────────────────────────────┘

  handleDeliveryStatusUpdate (one call per delivery.updates message):
      check status → check the order exists → overwrite status + history

The availability check is the only strong guarantee. Once the order is
stored, a failed publish is logged and the order is still returned: the
order can exist without its creation event ever reaching the broker.
"""

import logging
from typing import Any
from uuid import uuid4

from messaging import BrokerClient, BrokerError, OrderCreatedEvent

from .errors import (
    AvailabilityError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from .inventory_gateway import InventoryGateway
from .models import DELIVERY_STATUSES, Order, OrderItem, OrderStatus
from .store import OrderStore

logger = logging.getLogger(__name__)


class OrderCoordinator:
    """Stateless: every call re-reads what it needs from the store."""

    def __init__(
        self,
        store: OrderStore,
        inventory: InventoryGateway,
        broker: BrokerClient,
        order_created_line: str = "order.created",
    ) -> None:
        self.store = store
        self.inventory = inventory
        self.broker = broker
        self.order_created_line = order_created_line

    async def create_order(self, customer_id: Any, items: Any) -> Order:
        customer_id, order_items = _validate_order_request(customer_id, items)
        logger.info(
            "Creating order for customer %s with %d item(s)", customer_id, len(order_items)
        )

        availability = await self.inventory.check_availability(order_items)
        if not availability.available:
            unavailable = [item.model_dump() for item in availability.unavailable_items]
            logger.warning("Order rejected, unavailable products: %s", unavailable)
            raise AvailabilityError("Some products are not available", unavailable)

        # total computation is not part of order intake yet
        order = await self.store.create(
            Order(
                id=str(uuid4()),
                customer_id=customer_id,
                status=OrderStatus.PENDING_SHIPMENT,
                items=order_items,
                total_amount=0,
            )
        )

        await self._publish_order_created(order)
        logger.info("Order created: %s", order.id)
        return order

    async def _publish_order_created(self, order: Order) -> None:
        event = OrderCreatedEvent(
            order_id=order.id,
            customer_id=order.customer_id,
            items=[item.model_dump() for item in order.items],
            total_amount=order.total_amount,
            created_at=order.created_at,
        )
        try:
            await self.broker.publish(
                self.order_created_line, event.model_dump(mode="json"), order_id=order.id
            )
        except BrokerError as exc:
            logger.error(
                "Failed to publish order created event, order %s was still created: %s",
                order.id, exc,
            )

    async def get_order(self, order_id: str) -> Order | None:
        return await self.store.get_by_id(order_id)

    async def handle_delivery_status_update(self, order_id: str, status: Any) -> None:
        logger.info("Handling delivery status update: %s → %s", order_id, status)

        try:
            new_status = OrderStatus(status)
        except ValueError:
            new_status = None
        if new_status not in DELIVERY_STATUSES:
            allowed = ", ".join(s.value for s in DELIVERY_STATUSES)
            raise InvalidStatusError(f"Invalid status: {status}. Must be one of: {allowed}")

        # any existing status may move to either delivery status
        order = await self.store.get_by_id(order_id)
        if order is None:
            logger.warning("Order not found for status update: %s", order_id)
            raise NotFoundError(f"Order {order_id} not found")

        if not await self.store.update_status(order_id, new_status):
            raise NotFoundError(f"Order {order_id} not found")

        logger.info("Order %s status updated from delivery system: %s", order_id, new_status.value)


def _validate_order_request(customer_id: Any, items: Any) -> tuple[str, list[OrderItem]]:
    if not isinstance(customer_id, str) or not customer_id.strip():
        raise ValidationError("customer_id is required")

    if not isinstance(items, list) or not items:
        raise ValidationError("items array is required and must not be empty")

    order_items = []
    for index, item in enumerate(items):
        if isinstance(item, OrderItem):
            item = item.model_dump()
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")

        product_id = item.get("product_id")
        if not isinstance(product_id, str) or not product_id.strip():
            raise ValidationError(f"items[{index}].product_id is required")

        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be a positive integer")

        order_items.append(OrderItem(product_id=product_id, quantity=quantity))

    return customer_id, order_items
