"""
Delivery Service — status publisher and order.created consumer

Order created events are only acknowledged and logged here; shipping is
driven by an operator or an external system calling the status endpoint,
which republishes the change on delivery.updates for the sales service.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from messaging import BrokerClient, DeliveryStatusUpdateEvent, OrderCreatedEvent

logger = logging.getLogger(__name__)

DELIVERY_STATUSES = ("Shipped", "Delivered")


class DeliveryService:
    def __init__(self, broker: BrokerClient, delivery_updates_line: str = "delivery.updates") -> None:
        self.broker = broker
        self.delivery_updates_line = delivery_updates_line

    async def handle_order_created(self, payload: dict[str, Any]) -> None:
        event = OrderCreatedEvent.model_validate(payload)
        logger.info(
            "Received order created event: order=%s customer=%s items=%d",
            event.order_id, event.customer_id, len(event.items),
        )

    async def publish_status_update(self, order_id: str, status: str) -> DeliveryStatusUpdateEvent:
        """Publish one status change. Broker errors propagate to the caller."""
        if status not in DELIVERY_STATUSES:
            raise ValueError(f"Invalid status: {status}")

        logger.info("Publishing delivery status update: %s → %s", order_id, status)
        event = DeliveryStatusUpdateEvent(
            order_id=order_id, status=status, updated_at=datetime.now(timezone.utc)
        )
        try:
            await self.broker.publish(
                self.delivery_updates_line, event.model_dump(mode="json"), order_id=order_id
            )
        except Exception:
            logger.error("Failed to publish delivery status update: %s → %s", order_id, status)
            raise
        return event
