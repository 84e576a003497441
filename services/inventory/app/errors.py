"""Typed failures raised by the ledger, mutation service and rate limiter.

Each error carries the HTTP status the API layer maps it to, so callers
outside HTTP can still branch on the type alone.
"""
from typing import Any, Dict


class InventoryError(Exception):
    """Base class for all inventory service failures"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "error_type": type(self).__name__}


class ValidationError(InventoryError):
    """Malformed or missing input, non-positive quantity"""

    status_code = 400


class NotFoundError(InventoryError):
    """Unknown product or store"""

    status_code = 404


class InsufficientStockError(InventoryError):
    """A debit would take the projected quantity below zero"""

    status_code = 400

    def __init__(self, current_stock: int, requested: int, store_id=None, product_id=None):
        super().__init__(
            f"Insufficient stock: requested {requested}, available {current_stock}"
        )
        self.current_stock = current_stock
        self.requested = requested
        self.store_id = store_id
        self.product_id = product_id

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({
            "store": self.store_id,
            "currentStock": self.current_stock,
            "requestedQuantity": self.requested,
        })
        return body


class ConflictError(InventoryError):
    status_code = 409


class RateLimitExceededError(InventoryError):
    status_code = 429

    def __init__(self, retry_after_seconds: int, message: str = "Too many requests, please try again later."):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "retryAfterSeconds": self.retry_after_seconds}


class PersistenceError(InventoryError):
    """Storage failure. Transient; the caller may retry, the ledger never does."""

    status_code = 503
