"""
Pydantic Schemas for Request/Response Validation

Request bodies are translated into the assembler's plain request types;
responses are read straight off the ORM objects.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from food_ordering.models import (
    DiscountType,
    FulfillmentMethod,
    NotificationType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
)
from food_ordering.services.assembler import (
    CartLine,
    DeliveryAddress,
    OrderRequest,
    PaymentDetails,
)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single cart line."""
    menu_item_id: int = Field(..., examples=[12])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    special_instructions: Optional[str] = Field(None, max_length=200)


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DeliveryAddressCreate(BaseModel):
    street: str = Field(..., min_length=1, max_length=255, examples=["350 Fifth Avenue"])
    city: str = Field(..., min_length=1, max_length=100, examples=["New York"])
    state: str = Field(..., min_length=1, max_length=50, examples=["NY"])
    zip_code: str = Field(..., min_length=1, max_length=10, examples=["10001"])
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = Field(None, max_length=500)


class PaymentDetailsCreate(BaseModel):
    transaction_id: Optional[str] = Field(None, max_length=100)
    amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3, examples=["USD"])
    raw: Optional[dict[str, Any]] = None


class OrderCreate(BaseModel):
    """Request schema for placing an order."""

    restaurant_id: int = Field(..., examples=[1])
    items: List[OrderItemCreate] = Field(..., min_length=1)

    fulfillment_method: FulfillmentMethod = Field(default=FulfillmentMethod.DELIVERY)
    delivery_address: Optional[DeliveryAddressCreate] = None

    # Payment is settled upstream; the order only records it
    payment_method: PaymentMethod = Field(..., examples=["credit_card"])
    payment_status: Optional[PaymentStatus] = None
    payment_details: Optional[PaymentDetailsCreate] = None

    # Scheduling (ISO-8601; naive values are read as UTC)
    order_type: OrderType = Field(default=OrderType.INSTANT)
    scheduled_for: Optional[str] = Field(None, examples=["2026-10-18T19:30:00Z"])

    # Unusable codes are ignored, not rejected
    coupon_code: Optional[str] = Field(None, examples=["SAVE10"])
    notes: Optional[str] = Field(None, max_length=500)

    def to_request(self) -> OrderRequest:
        address = None
        if self.delivery_address is not None:
            coords = self.delivery_address.coordinates
            address = DeliveryAddress(
                street=self.delivery_address.street,
                city=self.delivery_address.city,
                state=self.delivery_address.state,
                zip_code=self.delivery_address.zip_code,
                lat=coords.lat if coords else None,
                lng=coords.lng if coords else None,
                instructions=self.delivery_address.instructions,
            )

        payment = None
        if self.payment_details is not None:
            payment = PaymentDetails(**self.payment_details.model_dump())

        return OrderRequest(
            restaurant_id=self.restaurant_id,
            items=[
                CartLine(
                    menu_item_id=item.menu_item_id,
                    quantity=item.quantity,
                    special_instructions=item.special_instructions,
                )
                for item in self.items
            ],
            payment_method=self.payment_method,
            fulfillment_method=self.fulfillment_method,
            order_type=self.order_type,
            delivery_address=address,
            payment_status=self.payment_status,
            payment_details=payment,
            scheduled_for=self.scheduled_for,
            coupon_code=self.coupon_code,
            notes=self.notes,
        )


class StatusUpdate(BaseModel):
    """Kept as a plain string so unknown values get a domain error."""
    status: str = Field(..., examples=["confirmed"])
    reason: Optional[str] = Field(None, max_length=500)


class CouponCreate(BaseModel):
    """Admin request to create a coupon."""
    code: str = Field(..., min_length=3, max_length=20, examples=["SAVE10"])
    discount_type: DiscountType
    value: Decimal = Field(..., gt=0, decimal_places=2)
    min_order_amount: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)
    max_discount: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    usage_limit: int = Field(default=0, ge=0)
    is_active: bool = True
    restaurant_id: Optional[int] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) < 3:
            raise ValueError("Coupon code must have at least 3 characters")
        return v

    @model_validator(mode="after")
    def check_ranges(self) -> "CouponCreate":
        if self.discount_type == DiscountType.PERCENT and self.value > 100:
            raise ValueError("Percent coupons cannot exceed 100")
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class RestaurantSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    menu_item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    special_instructions: Optional[str] = None


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    customer_id: int
    restaurant_id: int
    restaurant: Optional[RestaurantSummary] = None
    status: OrderStatus
    fulfillment_method: FulfillmentMethod
    items: List[OrderItemResponse]

    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    discount: Decimal
    coupon_code: Optional[str] = None
    total: Decimal

    delivery_address: Optional[dict[str, Any]] = None

    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_transaction_id: Optional[str] = None

    order_type: OrderType
    scheduled_for: Optional[datetime] = None
    estimated_delivery_time: datetime
    actual_delivery_time: Optional[datetime] = None

    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class OrderCreateResponse(BaseModel):
    """Response after successfully creating an order."""
    success: bool = True
    message: str
    order: OrderResponse


class OrderListResponse(BaseModel):
    total: int
    total_pages: int
    current_page: int
    orders: List[OrderResponse]


class OrderStatusResponse(BaseModel):
    success: bool = True
    message: str
    order: OrderResponse


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    discount_type: DiscountType
    value: Decimal
    min_order_amount: Decimal
    max_discount: Decimal
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    usage_limit: int
    used_count: int
    is_active: bool
    restaurant_id: Optional[int] = None
    created_at: Optional[datetime] = None


class CouponValidationResponse(BaseModel):
    """Outcome of checking a coupon against a subtotal."""
    valid: bool
    discount: Optional[Decimal] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    coupon: CouponResponse


class CouponListResponse(BaseModel):
    coupons: List[CouponResponse]


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: NotificationType
    payload: dict[str, Any]
    read: bool
    created_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    count: Optional[int] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    context: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    event_publisher: str
    timestamp: datetime
