"""
Sales Service — delivery status consumer

Drains delivery.updates and hands each event to the coordinator.
Any exception raised here makes the broker client drop the message
(negative acknowledgement without requeue).
"""

import logging
from typing import Any

from messaging import DeliveryStatusUpdateEvent

from .coordinator import OrderCoordinator

logger = logging.getLogger(__name__)


def delivery_status_handler(coordinator: OrderCoordinator):
    async def handle(payload: dict[str, Any]) -> None:
        event = DeliveryStatusUpdateEvent.model_validate(payload)
        try:
            await coordinator.handle_delivery_status_update(event.order_id, event.status)
        except Exception:
            logger.error(
                "Failed to process delivery status update for order %s (%s)",
                event.order_id, event.status,
            )
            raise
        logger.info(
            "Processed delivery status update for order %s (%s)", event.order_id, event.status
        )

    return handle
