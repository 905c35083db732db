"""
Ordering Exceptions

Every business failure the engine reports to a caller is an OrderingError
carrying an HTTP status and a stable, machine-readable reason code. The API
layer renders them uniformly; anything else is treated as an internal error.
"""

from typing import Any, Optional


class OrderingError(Exception):
    """Base class for all client-facing ordering errors."""

    status_code: int = 400
    code: str = "ordering_error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the error response body."""
        body: dict[str, Any] = {
            "success": False,
            "error": self.code,
            "detail": self.message,
        }
        if self.details:
            body["context"] = self.details
        return body


# =============================================================================
# TAXONOMY
# =============================================================================

class ValidationFailed(OrderingError):
    """Malformed or missing input, caught before any side effect."""
    code = "validation_error"


class NotFound(OrderingError):
    """A referenced entity does not exist."""
    status_code = 404
    code = "not_found"


class Unauthenticated(OrderingError):
    """No caller identity was supplied."""
    status_code = 401
    code = "unauthenticated"


class Forbidden(OrderingError):
    """The actor lacks the role or ownership for the operation."""
    status_code = 403
    code = "forbidden"


class BusinessRuleViolation(OrderingError):
    """The request is well-formed but breaks an ordering rule."""
    code = "business_rule_violation"


# =============================================================================
# ORDER ASSEMBLY
# =============================================================================

class DeliveryAddressRequired(ValidationFailed):
    code = "delivery_address_required"


class RestaurantUnavailable(NotFound):
    code = "restaurant_unavailable"


class ItemUnavailable(BusinessRuleViolation):
    code = "item_unavailable"


class CrossRestaurantCart(BusinessRuleViolation):
    code = "cross_restaurant_cart"


class BelowMinimumOrder(BusinessRuleViolation):
    code = "below_minimum_order"


class InvalidSchedule(BusinessRuleViolation):
    code = "invalid_schedule"


# =============================================================================
# ORDER LIFECYCLE
# =============================================================================

class OrderNotFound(NotFound):
    code = "order_not_found"


class InvalidStatus(ValidationFailed):
    code = "invalid_status"


class InvalidTransition(BusinessRuleViolation):
    status_code = 409
    code = "invalid_transition"


# =============================================================================
# COUPONS
# =============================================================================

class CouponNotFound(NotFound):
    code = "coupon_not_found"


class CouponCodeTaken(BusinessRuleViolation):
    status_code = 409
    code = "coupon_code_taken"


# =============================================================================
# STORAGE
# =============================================================================

class DuplicateOrderNumber(Exception):
    """
    Raised by a store when an order number is already taken.

    Not an OrderingError: the assembler retries with a fresh number and
    only an exhausted retry budget reaches the caller, as an internal error.
    """

    def __init__(self, order_number: str):
        super().__init__(f"Order number {order_number} already exists")
        self.order_number = order_number
