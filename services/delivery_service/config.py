import os
import socket

SERVICE_NAME = "delivery-service"

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development").lower()
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
ORDER_CREATED_QUEUE = os.environ.get("MQ_ORDER_CREATED_QUEUE", "order.created")
DELIVERY_UPDATES_QUEUE = os.environ.get("MQ_DELIVERY_UPDATES_QUEUE", "delivery.updates")
MQ_CONSUMER_GROUP = os.environ.get("MQ_CONSUMER_GROUP", "fulfillment")
MQ_DEDUP_TTL_SECONDS = int(os.environ.get("MQ_DEDUP_TTL_SECONDS", "86400"))
MQ_PREFETCH = int(os.environ.get("MQ_PREFETCH", "10"))
MQ_CONSUMER_NAME = os.environ.get(
    "MQ_CONSUMER_NAME", f"{SERVICE_NAME}-{socket.gethostname()}"
)
# pending entries idle this long (ms) are taken over from other consumers
MQ_CLAIM_IDLE_MS = int(os.environ.get("MQ_CLAIM_IDLE_MS", "60000"))
