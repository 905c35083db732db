"""
Coupon Evaluator

Validation and discount computation for a coupon against an order context.
evaluate_coupon is pure; redeeming a coupon (incrementing its used count)
is done by the store's conditional update at persistence time.

Usage:
    decision = evaluate_coupon(coupon, subtotal=Decimal("50.00"), restaurant_id=7)
    if decision.valid:
        discount = decision.discount
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from food_ordering.core.exceptions import CouponNotFound
from food_ordering.models import Coupon, DiscountType
from food_ordering.services.store.base import BaseOrderStore

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(amount: Decimal) -> Decimal:
    """Round a monetary amount to cents, half up."""
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops the zone on read)."""
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class CouponDecision:
    """
    Outcome of evaluating a coupon.

    Attributes:
        valid: Whether the coupon applies to this order
        discount: Discount amount in dollars (0 when invalid)
        reason: Machine-readable rejection code (None when valid)
        message: Human-readable rejection reason (None when valid)
    """
    valid: bool
    discount: Decimal = ZERO
    reason: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def reject(cls, reason: str, message: str) -> "CouponDecision":
        return cls(valid=False, reason=reason, message=message)

    def to_dict(self) -> dict[str, Any]:
        if self.valid:
            return {"valid": True, "discount": self.discount}
        return {"valid": False, "reason": self.reason, "message": self.message}


def evaluate_coupon(
    coupon: Coupon,
    subtotal: Decimal,
    restaurant_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CouponDecision:
    """
    Validate a coupon and compute its discount.

    Checks run in a fixed order and the first failure wins. A valid
    result's discount is capped by max_discount (when positive) and
    clamped to [0, subtotal].

    Args:
        coupon: Coupon record
        subtotal: Cart subtotal before discount
        restaurant_id: Restaurant the order is placed with, if known
        now: Evaluation time (defaults to the current UTC time)

    Returns:
        CouponDecision
    """
    now = as_utc(now) or datetime.now(timezone.utc)
    subtotal = Decimal(subtotal)

    if not coupon.is_active:
        return CouponDecision.reject("coupon_inactive", "Coupon inactive")

    starts_at = as_utc(coupon.starts_at)
    if starts_at is not None and now < starts_at:
        return CouponDecision.reject("coupon_not_started", "Coupon not started")

    expires_at = as_utc(coupon.expires_at)
    if expires_at is not None and now > expires_at:
        return CouponDecision.reject("coupon_expired", "Coupon expired")

    if coupon.usage_limit and coupon.used_count >= coupon.usage_limit:
        return CouponDecision.reject("coupon_usage_limit_reached", "Coupon usage limit reached")

    if (
        coupon.restaurant_id is not None
        and restaurant_id is not None
        and coupon.restaurant_id != restaurant_id
    ):
        return CouponDecision.reject(
            "coupon_restaurant_mismatch", "Coupon not valid for this restaurant"
        )

    min_order = coupon.min_order_amount or ZERO
    if subtotal < min_order:
        return CouponDecision.reject("coupon_below_minimum", f"Minimum order {min_order}")

    if coupon.discount_type == DiscountType.PERCENT:
        discount = subtotal * Decimal(coupon.value) / Decimal(100)
    else:
        discount = Decimal(coupon.value)

    if coupon.max_discount and coupon.max_discount > 0:
        discount = min(discount, Decimal(coupon.max_discount))
    discount = max(ZERO, min(discount, subtotal))

    return CouponDecision(valid=True, discount=quantize_money(discount))


def normalize_code(code: str) -> str:
    """Coupon codes are stored trimmed and upper-case."""
    return str(code).strip().upper()


async def evaluate_coupon_code(
    store: BaseOrderStore,
    code: str,
    subtotal: Decimal,
    restaurant_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> tuple[Coupon, CouponDecision]:
    """
    Look a coupon up by code and evaluate it.

    Raises:
        CouponNotFound: If no coupon has this code
    """
    coupon = await store.get_coupon(normalize_code(code))
    if coupon is None:
        raise CouponNotFound("Coupon not found")
    return coupon, evaluate_coupon(coupon, subtotal, restaurant_id=restaurant_id, now=now)
