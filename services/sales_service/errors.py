"""
Sales Service — error taxonomy

Each error carries the HTTP status it maps to at the API boundary.
Inventory errors are infrastructure failures of the synchronous
availability call and are safe for the external caller to retry.
"""


class SalesError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SalesError):
    status_code = 400


class AvailabilityError(SalesError):
    status_code = 400

    def __init__(self, message: str, unavailable_items: list) -> None:
        super().__init__(message)
        self.unavailable_items = unavailable_items


class InvalidStatusError(SalesError):
    status_code = 400


class NotFoundError(SalesError):
    status_code = 404


class ConflictError(SalesError):
    status_code = 409


class InventoryError(SalesError):
    status_code = 502


class InventoryUnavailableError(InventoryError):
    status_code = 503


class InventoryAuthError(InventoryError):
    pass


class InventoryProtocolError(InventoryError):
    pass
