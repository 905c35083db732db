"""
SQLAlchemy Database Models

Orders, their line items, coupons and persisted notifications, plus the
read-only catalog tables (restaurants, menu items) the order engine
looks up while assembling a cart.
"""

import enum
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from food_ordering.database import Base

MONEY = Numeric(10, 2)


class OrderStatus(str, enum.Enum):
    """Order status workflow, in fulfillment order."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


# Forward sequence; CANCELLED sits outside it
STATUS_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


class OrderType(str, enum.Enum):
    """Instant orders are prepared now, scheduled ones at a chosen time."""
    INSTANT = "instant"
    SCHEDULED = "scheduled"


class FulfillmentMethod(str, enum.Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"
    DINE_IN = "dine_in"


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    CASH = "cash"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class DiscountType(str, enum.Enum):
    """Percent of the subtotal, or a flat amount."""
    PERCENT = "percent"
    AMOUNT = "amount"


class NotificationType(str, enum.Enum):
    ORDER_STATUS = "order_status"


# =============================================================================
# CATALOG (read-only for the order engine)
# =============================================================================

class Restaurant(Base):
    """Restaurant settings consulted during order assembly."""
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    minimum_order = Column(MONEY, default=Decimal("0.00"), nullable=False)
    delivery_fee = Column(MONEY, default=Decimal("0.00"), nullable=False)
    delivery_time_min = Column(Integer, default=30, nullable=False)
    delivery_time_max = Column(Integer, default=45, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.name}>"


class MenuItem(Base):
    """A dish on a restaurant's menu."""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(MONEY, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price}>"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Order aggregate root.

    Monetary fields are computed once at assembly and never recomputed.
    Only the lifecycle controller changes status and delivery timestamps.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)

    customer_id = Column(Integer, nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)

    # =========================================================================
    # FULFILLMENT & STATUS
    # =========================================================================
    fulfillment_method = Column(
        Enum(FulfillmentMethod),
        default=FulfillmentMethod.DELIVERY,
        nullable=False,
    )
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(MONEY, nullable=False)
    delivery_fee = Column(MONEY, nullable=False)
    tax = Column(MONEY, nullable=False)
    discount = Column(MONEY, nullable=False, default=Decimal("0.00"))
    coupon_code = Column(String(20), nullable=True)
    total = Column(MONEY, nullable=False)

    # =========================================================================
    # DELIVERY ADDRESS SNAPSHOT (delivery orders only)
    # =========================================================================
    delivery_street = Column(String(255), nullable=True)
    delivery_city = Column(String(100), nullable=True)
    delivery_state = Column(String(50), nullable=True)
    delivery_zip_code = Column(String(10), nullable=True)
    delivery_lat = Column(Float, nullable=True)
    delivery_lng = Column(Float, nullable=True)
    delivery_instructions = Column(Text, nullable=True)

    # =========================================================================
    # PAYMENT INFO (decided upstream)
    # =========================================================================
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PAID, nullable=False)
    payment_transaction_id = Column(String(100), nullable=True)
    payment_amount = Column(MONEY, nullable=True)
    payment_currency = Column(String(3), nullable=True)
    payment_raw = Column(JSON, nullable=True)

    # =========================================================================
    # SCHEDULING
    # =========================================================================
    order_type = Column(
        Enum(OrderType),
        default=OrderType.INSTANT,
        nullable=False,
        index=True
    )
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    estimated_delivery_time = Column(DateTime(timezone=True), nullable=False)
    actual_delivery_time = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship(
        "OrderItem",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    restaurant = relationship("Restaurant", lazy="selectin")

    @property
    def delivery_address(self):
        """Address snapshot as a dict, or None for pickup/dine-in orders."""
        if self.delivery_street is None:
            return None
        coordinates = None
        if self.delivery_lat is not None and self.delivery_lng is not None:
            coordinates = {"lat": self.delivery_lat, "lng": self.delivery_lng}
        return {
            "street": self.delivery_street,
            "city": self.delivery_city,
            "state": self.delivery_state,
            "zip_code": self.delivery_zip_code,
            "coordinates": coordinates,
            "instructions": self.delivery_instructions,
        }

    def __repr__(self):
        return f"<Order {self.order_number} - {self.fulfillment_method.value} - {self.status.value}>"


class OrderItem(Base):
    """One cart line, with name and price captured at order time."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    menu_item_id = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    special_instructions = Column(String(200), nullable=True)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


# =============================================================================
# COUPONS
# =============================================================================

class Coupon(Base):
    """
    Promotional discount rule.

    usage_limit = 0 means unlimited, max_discount = 0 means no cap,
    restaurant_id = None means valid at every restaurant.
    """
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    discount_type = Column(Enum(DiscountType), nullable=False)
    value = Column(MONEY, nullable=False)
    min_order_amount = Column(MONEY, default=Decimal("0.00"), nullable=False)
    max_discount = Column(MONEY, default=Decimal("0.00"), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    usage_limit = Column(Integer, default=0, nullable=False)
    used_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=True)
    created_by = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Coupon {self.code} - {self.discount_type.value} {self.value} ({self.used_count}/{self.usage_limit})>"


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class Notification(Base):
    """
    Durable copy of an order event for the customer's inbox.

    Written independently of real-time delivery so a customer who was
    offline can still discover the change.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    type = Column(Enum(NotificationType), default=NotificationType.ORDER_STATUS, nullable=False)
    payload = Column(JSON, nullable=False)
    read = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self):
        return f"<Notification #{self.id} - user {self.user_id} - {'read' if self.read else 'unread'}>"
