"""Shared message-broker client and wire event records."""

from .broker import BrokerClient, ConnectionState
from .errors import BrokerConnectionError, BrokerError, BrokerPublishError
from .events import DeliveryStatusUpdateEvent, EventItem, OrderCreatedEvent

__all__ = [
    "BrokerClient",
    "BrokerConnectionError",
    "BrokerError",
    "BrokerPublishError",
    "ConnectionState",
    "DeliveryStatusUpdateEvent",
    "EventItem",
    "OrderCreatedEvent",
]
