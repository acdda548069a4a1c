"""
Error taxonomy

Every failure surfaced to a caller carries a human-readable message and a
machine-checkable ``kind``. The HTTP layer turns these into JSON responses
with the matching status code.
"""

from typing import Any, Dict, Optional


class ShopError(Exception):
    """Base exception for this application."""

    status_code = 500
    kind = "internal"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "detail": self.message, **self.context}


class NotFound(ShopError):
    """Entity absent, or not owned by the caller."""

    status_code = 404
    kind = "not_found"


class ProductNotFound(NotFound):
    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found", product_id=product_id)
        self.product_id = product_id


class ValidationError(ShopError):
    """Missing required field, non-positive quantity, empty item list..."""

    status_code = 400
    kind = "validation_error"


class InsufficientStock(ShopError):
    status_code = 400
    kind = "insufficient_stock"

    def __init__(self, product_id: str, available: int, name: Optional[str] = None):
        label = name or product_id
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}",
            product_id=product_id,
            available=available,
        )
        self.product_id = product_id
        self.available = available


class Unauthorized(ShopError):
    status_code = 401
    kind = "unauthorized"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class Internal(ShopError):
    """Persistence failure."""
