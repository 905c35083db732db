"""
Order Assembler

Turns a cart into a priced, scheduled, persisted order.

Phases:
    1. Mandatory validation (restaurant, items, minimum order, schedule).
       Any failure aborts before a single write.
    2. Optional coupon enrichment. It can lower the price, never abort.
    3. Persistence in one store transaction: conditional coupon redemption
       plus the order insert, retried with a fresh order number if the
       number turns out to be taken.
    4. Best-effort order-created event.
"""

import logging
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Union

from food_ordering.core.config import Settings, get_settings
from food_ordering.core.exceptions import (
    BelowMinimumOrder,
    CrossRestaurantCart,
    DeliveryAddressRequired,
    DuplicateOrderNumber,
    InvalidSchedule,
    ItemUnavailable,
    RestaurantUnavailable,
    ValidationFailed,
)
from food_ordering.models import (
    FulfillmentMethod,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    Restaurant,
)
from food_ordering.services.coupons import (
    ZERO,
    as_utc,
    evaluate_coupon,
    normalize_code,
    quantize_money,
)
from food_ordering.services.events.notifier import OrderEventNotifier
from food_ordering.services.numbering import OrderNumberAllocator, get_order_number_allocator
from food_ordering.services.store.base import BaseOrderStore

logger = logging.getLogger(__name__)

MAX_INSTRUCTIONS_LENGTH = 200


# =============================================================================
# REQUEST TYPES
# =============================================================================

@dataclass
class CartLine:
    """One requested menu item."""
    menu_item_id: int
    quantity: int
    special_instructions: Optional[str] = None


@dataclass
class DeliveryAddress:
    street: str
    city: str
    state: str
    zip_code: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    instructions: Optional[str] = None


@dataclass
class PaymentDetails:
    """Payment facts decided by the payment provider before checkout."""
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


@dataclass
class OrderRequest:
    """Everything a customer submits at checkout."""
    restaurant_id: int
    items: list[CartLine]
    payment_method: PaymentMethod
    fulfillment_method: FulfillmentMethod = FulfillmentMethod.DELIVERY
    order_type: OrderType = OrderType.INSTANT
    delivery_address: Optional[DeliveryAddress] = None
    payment_status: Optional[PaymentStatus] = None
    payment_details: Optional[PaymentDetails] = None
    scheduled_for: Union[str, datetime, None] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class PriceBreakdown:
    """Monetary fields of an order; total is always derived."""
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    discount: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return max(ZERO, self.subtotal - self.discount) + self.delivery_fee + self.tax


@dataclass(frozen=True)
class CouponMatch:
    """A coupon that evaluated as valid for this cart."""
    code: str
    discount: Decimal


@dataclass
class _PricedLine:
    menu_item: MenuItem
    line: CartLine
    position: int = field(default=0)


def parse_scheduled_time(value: Union[str, datetime, None]) -> datetime:
    """
    Parse a requested delivery time into an aware UTC datetime.

    Naive values are read as UTC.

    Raises:
        InvalidSchedule: If the value is missing or not an ISO-8601 instant
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidSchedule("scheduled_for is required for scheduled orders")
    if isinstance(value, datetime):
        when = value
    else:
        try:
            when = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise InvalidSchedule("Invalid scheduled date/time")
    return as_utc(when).astimezone(timezone.utc)


class OrderAssembler:
    """
    Validates, prices and persists new orders.

    Args:
        store: Order persistence
        notifier: Receives the order-created event
        settings: Pricing and scheduling configuration
        clock: Source of "now" (UTC)
        rng: Randomness for the delivery estimate
        allocator: Order number source (process-wide by default)
    """

    def __init__(
        self,
        store: BaseOrderStore,
        notifier: OrderEventNotifier,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        allocator: Optional[OrderNumberAllocator] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.Random()
        self._allocator = allocator or get_order_number_allocator()

    async def assemble(self, customer_id: int, request: OrderRequest) -> Order:
        """
        Validate and price a cart, then persist it as a pending order.

        Raises:
            ValidationFailed: Malformed cart or missing delivery address
            RestaurantUnavailable: Unknown or inactive restaurant
            ItemUnavailable: Unknown or unavailable menu item
            CrossRestaurantCart: Item from another restaurant
            BelowMinimumOrder: Subtotal under the restaurant minimum
            InvalidSchedule: Bad or too-early scheduled time
        """
        now = self._clock()

        self._check_request(request)
        restaurant = await self._load_restaurant(request.restaurant_id)
        lines = await self._load_lines(restaurant, request.items)

        subtotal = quantize_money(sum(
            (p.menu_item.price * p.line.quantity for p in lines), ZERO
        ))
        if subtotal < restaurant.minimum_order:
            raise BelowMinimumOrder(
                f"Minimum order amount is ${restaurant.minimum_order}",
                details={"subtotal": str(subtotal), "minimum": str(restaurant.minimum_order)},
            )

        scheduled_for, estimated = self._resolve_schedule(request, restaurant, now)

        pricing = PriceBreakdown(
            subtotal=subtotal,
            delivery_fee=quantize_money(restaurant.delivery_fee),
            tax=quantize_money(subtotal * self.settings.tax_rate),
        )
        coupon = await self._match_coupon(request.coupon_code, subtotal, restaurant, now)

        order = await self._persist(
            customer_id, request, restaurant, lines, pricing, coupon,
            scheduled_for=scheduled_for, estimated=estimated, now=now,
        )
        logger.info(
            f"Order {order.order_number} created for customer {customer_id} "
            f"at restaurant {restaurant.id}: total {order.total}"
            + (f" (coupon {order.coupon_code} -{order.discount})" if order.coupon_code else "")
        )

        self.notifier.order_created(order, restaurant)
        return order

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _check_request(self, request: OrderRequest) -> None:
        if not request.items:
            raise ValidationFailed("At least one item is required")
        for line in request.items:
            if line.quantity < 1:
                raise ValidationFailed(f"Quantity for menu item {line.menu_item_id} must be at least 1")
            if line.special_instructions and len(line.special_instructions) > MAX_INSTRUCTIONS_LENGTH:
                raise ValidationFailed(
                    f"Special instructions cannot exceed {MAX_INSTRUCTIONS_LENGTH} characters"
                )
        if (
            request.fulfillment_method == FulfillmentMethod.DELIVERY
            and request.delivery_address is None
        ):
            raise DeliveryAddressRequired("A delivery address is required for delivery orders")

    async def _load_restaurant(self, restaurant_id: int) -> Restaurant:
        restaurant = await self.store.get_restaurant(restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise RestaurantUnavailable("Restaurant not found or inactive")
        return restaurant

    async def _load_lines(self, restaurant: Restaurant, cart: list[CartLine]) -> list[_PricedLine]:
        menu = await self.store.get_menu_items([line.menu_item_id for line in cart])
        lines = []
        for position, line in enumerate(cart):
            menu_item = menu.get(line.menu_item_id)
            if menu_item is None or not menu_item.is_available:
                raise ItemUnavailable(f"Menu item {line.menu_item_id} not found or unavailable")
            if menu_item.restaurant_id != restaurant.id:
                raise CrossRestaurantCart("All items must be from the same restaurant")
            lines.append(_PricedLine(menu_item=menu_item, line=line, position=position))
        return lines

    def _resolve_schedule(
        self,
        request: OrderRequest,
        restaurant: Restaurant,
        now: datetime,
    ) -> tuple[Optional[datetime], datetime]:
        """Return (scheduled_for, estimated_delivery_time)."""
        if request.order_type == OrderType.SCHEDULED:
            when = parse_scheduled_time(request.scheduled_for)
            lead = timedelta(minutes=self.settings.schedule_min_lead_minutes)
            if when < now + lead:
                raise InvalidSchedule(
                    f"Scheduled time must be at least "
                    f"{self.settings.schedule_min_lead_minutes} minutes from now"
                )
            return when, when

        window = max(0, restaurant.delivery_time_max - restaurant.delivery_time_min)
        minutes = restaurant.delivery_time_min + self._rng.uniform(0, window)
        return None, now + timedelta(minutes=minutes)

    # =========================================================================
    # COUPON ENRICHMENT
    # =========================================================================

    async def _match_coupon(
        self,
        code: Optional[str],
        subtotal: Decimal,
        restaurant: Restaurant,
        now: datetime,
    ) -> Optional[CouponMatch]:
        if not code or not code.strip():
            return None

        normalized = normalize_code(code)
        coupon = await self.store.get_coupon(normalized)
        if coupon is None:
            logger.info(f"Coupon {normalized} not found; ignoring")
            return None

        decision = evaluate_coupon(coupon, subtotal, restaurant_id=restaurant.id, now=now)
        if not decision.valid or decision.discount <= 0:
            logger.info(f"Coupon {normalized} not applied: {decision.message or 'no discount'}")
            return None
        return CouponMatch(code=coupon.code, discount=decision.discount)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _persist(
        self,
        customer_id: int,
        request: OrderRequest,
        restaurant: Restaurant,
        lines: list[_PricedLine],
        pricing: PriceBreakdown,
        coupon: Optional[CouponMatch],
        *,
        scheduled_for: Optional[datetime],
        estimated: datetime,
        now: datetime,
    ) -> Order:
        attempts = self.settings.order_number_max_attempts
        for attempt in range(1, attempts + 1):
            order_number = self._allocator.allocate()
            try:
                async with self.store.transaction() as tx:
                    applied = pricing
                    applied_code = None
                    if coupon is not None:
                        if await tx.redeem_coupon(coupon.code):
                            applied = replace(pricing, discount=coupon.discount)
                            applied_code = coupon.code
                        else:
                            logger.info(
                                f"Coupon {coupon.code} was exhausted before redemption; "
                                f"placing order without discount"
                            )

                    order = self._build_order(
                        order_number, customer_id, request, restaurant, lines,
                        applied, applied_code,
                        scheduled_for=scheduled_for, estimated=estimated, now=now,
                    )
                    await tx.add_order(order)
                return order
            except DuplicateOrderNumber:
                logger.warning(
                    f"Order number {order_number} already taken "
                    f"(attempt {attempt}/{attempts}); allocating another"
                )

        raise RuntimeError(f"Could not allocate a unique order number after {attempts} attempts")

    def _build_order(
        self,
        order_number: str,
        customer_id: int,
        request: OrderRequest,
        restaurant: Restaurant,
        lines: list[_PricedLine],
        pricing: PriceBreakdown,
        coupon_code: Optional[str],
        *,
        scheduled_for: Optional[datetime],
        estimated: datetime,
        now: datetime,
    ) -> Order:
        address = request.delivery_address
        payment = request.payment_details or PaymentDetails()

        return Order(
            order_number=order_number,
            customer_id=customer_id,
            restaurant_id=restaurant.id,
            restaurant=restaurant,
            fulfillment_method=request.fulfillment_method,
            status=OrderStatus.PENDING,
            subtotal=pricing.subtotal,
            delivery_fee=pricing.delivery_fee,
            tax=pricing.tax,
            discount=pricing.discount,
            coupon_code=coupon_code,
            total=pricing.total,
            delivery_street=address.street if address else None,
            delivery_city=address.city if address else None,
            delivery_state=address.state if address else None,
            delivery_zip_code=address.zip_code if address else None,
            delivery_lat=address.lat if address else None,
            delivery_lng=address.lng if address else None,
            delivery_instructions=address.instructions if address else None,
            payment_method=request.payment_method,
            payment_status=request.payment_status or PaymentStatus.PAID,
            payment_transaction_id=payment.transaction_id,
            payment_amount=payment.amount,
            payment_currency=payment.currency,
            payment_raw=payment.raw,
            order_type=request.order_type,
            scheduled_for=scheduled_for,
            estimated_delivery_time=estimated,
            actual_delivery_time=None,
            notes=request.notes,
            cancellation_reason=None,
            created_at=now,
            updated_at=None,
            items=[
                OrderItem(
                    position=p.position,
                    menu_item_id=p.menu_item.id,
                    name=p.menu_item.name,
                    quantity=p.line.quantity,
                    unit_price=p.menu_item.price,
                    special_instructions=p.line.special_instructions,
                )
                for p in lines
            ],
        )
