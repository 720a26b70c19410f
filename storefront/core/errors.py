"""
Storefront — Domain errors

Every error a handler can raise on purpose. They are rendered into the
uniform envelope by the handlers registered in storefront.main.
"""
from typing import Any


class StorefrontError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, errors: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.errors = errors or {}
        super().__init__(self.message)


class Unauthenticated(StorefrontError):
    status_code = 401
    default_message = "Authentication required"


class InvalidToken(StorefrontError):
    status_code = 401
    default_message = "Invalid or expired token"


class UserInactive(StorefrontError):
    status_code = 403
    default_message = "Account is disabled"


class Forbidden(StorefrontError):
    status_code = 403
    default_message = "Forbidden"


class InsufficientRole(Forbidden):
    default_message = "Insufficient permissions"


class NotFound(StorefrontError):
    status_code = 404
    default_message = "Resource not found"


class ValidationFailed(StorefrontError):
    status_code = 400
    default_message = "Validation failed"


class Conflict(StorefrontError):
    status_code = 409
    default_message = "Resource already exists"


class EmptyCart(ValidationFailed):
    default_message = "Your cart is empty"


class OutOfStock(ValidationFailed):
    default_message = "Some items are out of stock"

    def __init__(self, items: list[dict[str, Any]], message: str | None = None):
        self.items = items
        super().__init__(message, {"outOfStockItems": items})


class CircularReference(ValidationFailed):
    default_message = "Circular reference detected in category hierarchy"


class InvalidStatusTransition(ValidationFailed):
    default_message = "Invalid order status transition"
