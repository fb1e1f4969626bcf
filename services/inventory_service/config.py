import os

SERVICE_NAME = "inventory-service"

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
AUTH_TOKEN = os.environ.get("AUTH_TOKEN", "inventory-service-secret-token-12345")
