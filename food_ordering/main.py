"""
FastAPI Application Entry Point

Food Ordering Engine - order pricing, coupons and order lifecycle.

Endpoints:
    - POST /api/orders: Place an order
    - GET /api/orders: List the caller's orders
    - GET /api/orders/admin: Orders of the restaurants an owner or admin manages
    - GET /api/orders/{id}: Get one order
    - PUT /api/orders/{id}/status: Move an order through its workflow
    - GET /api/coupons/validate: Check a coupon against a subtotal
    - POST/GET/DELETE /api/coupons: Coupon administration
    - GET /api/notifications: The caller's notification inbox
    - GET /health: System health check

Identity is established upstream; the gateway forwards it in the
X-User-Id and X-User-Role headers.
"""

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from food_ordering.core.config import get_settings, setup_logging
from food_ordering.core.exceptions import (
    CouponNotFound,
    Forbidden,
    OrderingError,
    Unauthenticated,
)
from food_ordering.models import Coupon, OrderType
from food_ordering.schemas import (
    CouponCreate,
    CouponListResponse,
    CouponResponse,
    CouponValidationResponse,
    ErrorResponse,
    HealthResponse,
    MessageResponse,
    NotificationListResponse,
    NotificationResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusResponse,
    StatusUpdate,
)
from food_ordering.services.assembler import OrderAssembler
from food_ordering.services.coupons import evaluate_coupon_code
from food_ordering.services.events import (
    BaseEventPublisher,
    OrderEventNotifier,
    get_event_publisher,
    get_notifier,
)
from food_ordering.services.lifecycle import (
    Actor,
    OrderLifecycleController,
    UserRole,
    parse_status,
)
from food_ordering.services.store import BaseOrderStore, get_order_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info(f"   Strict status transitions: {settings.strict_status_transitions}")
    logger.info("=" * 60)

    store = get_order_store()
    await store.initialize()
    logger.info(f"Order Store: {store.provider_name}")

    publisher = get_event_publisher()
    logger.info(f"Event Publisher: {publisher.provider_name}")

    logger.info("Application ready")

    yield  # Application runs

    logger.info("Shutting down...")
    await get_notifier().close()
    await publisher.close()
    await store.close()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order pricing and lifecycle engine: cart validation, coupons, "
        "order numbering, status workflow and real-time order events."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_actor(
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Actor:
    """Identity forwarded by the auth gateway."""
    if x_user_id is None or not x_user_role:
        raise Unauthenticated("Authentication required")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        raise Unauthenticated(f"Unknown role '{x_user_role}'")
    return Actor(user_id=x_user_id, role=role)


async def get_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    return actor


def get_assembler(
    store: BaseOrderStore = Depends(get_order_store),
    notifier: OrderEventNotifier = Depends(get_notifier),
) -> OrderAssembler:
    return OrderAssembler(store, notifier)


def get_lifecycle_controller(
    store: BaseOrderStore = Depends(get_order_store),
    notifier: OrderEventNotifier = Depends(get_notifier),
) -> OrderLifecycleController:
    return OrderLifecycleController(store, notifier)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    store: BaseOrderStore = Depends(get_order_store),
    publisher: BaseEventPublisher = Depends(get_event_publisher),
) -> HealthResponse:
    """Verify the database and the event transport are reachable."""
    db_status = "healthy" if await store.health_check() else "unhealthy"
    publisher_status = "healthy" if await publisher.health_check() else "unhealthy"

    overall = "operational" if db_status == publisher_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        event_publisher=f"{publisher_status} ({publisher.provider_name})",
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    status_code=201,
    response_model=OrderCreateResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    actor: Actor = Depends(get_actor),
    assembler: OrderAssembler = Depends(get_assembler),
) -> OrderCreateResponse:
    """
    Validate, price and place an order for the calling customer.

    An unknown or no-longer-valid coupon never fails the order; it is
    simply not applied.
    """
    if actor.role != UserRole.CUSTOMER:
        raise Forbidden("Only customers can place orders")

    order = await assembler.assemble(actor.user_id, order_data.to_request())

    return OrderCreateResponse(
        message="Order created successfully",
        order=OrderResponse.model_validate(order),
    )


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List My Orders",
)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
    order_type: Optional[OrderType] = Query(None, alias="type"),
    upcoming: bool = Query(False, description="Scheduled orders still in the future"),
    actor: Actor = Depends(get_actor),
    store: BaseOrderStore = Depends(get_order_store),
) -> OrderListResponse:
    """Retrieve a page of the caller's orders, newest first."""
    status_filter = parse_status(status) if status else None
    upcoming_after = None
    if order_type == OrderType.SCHEDULED and upcoming:
        upcoming_after = datetime.now(timezone.utc)

    total, orders = await store.list_orders(
        actor.user_id,
        status=status_filter,
        order_type=order_type,
        upcoming_after=upcoming_after,
        skip=(page - 1) * limit,
        limit=limit,
    )

    return OrderListResponse(
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/admin",
    response_model=OrderListResponse,
    responses={403: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="List Managed Orders",
)
async def list_managed_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    restaurant_id: Optional[int] = Query(None, alias="restaurant"),
    actor: Actor = Depends(get_actor),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
) -> OrderListResponse:
    """Owners page through their restaurants' orders; admins through all of them."""
    total, orders = await controller.list_managed_orders(
        actor,
        status=status,
        restaurant_id=restaurant_id,
        skip=(page - 1) * limit,
        limit=limit,
    )

    return OrderListResponse(
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    actor: Actor = Depends(get_actor),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
) -> OrderResponse:
    """Get an order as its customer, its restaurant's owner or an admin."""
    order = await controller.get_order(order_id, actor)
    return OrderResponse.model_validate(order)


@app.put(
    "/api/orders/{order_id}/status",
    response_model=OrderStatusResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: int,
    update: StatusUpdate,
    actor: Actor = Depends(get_actor),
    controller: OrderLifecycleController = Depends(get_lifecycle_controller),
) -> OrderStatusResponse:
    """Restaurant owners and admins move orders along the workflow."""
    order = await controller.transition_status(order_id, update.status, actor, reason=update.reason)
    return OrderStatusResponse(
        message="Order status updated successfully",
        order=OrderResponse.model_validate(order),
    )


# =============================================================================
# COUPON ENDPOINTS
# =============================================================================

@app.get(
    "/api/coupons/validate",
    response_model=CouponValidationResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Coupons"],
)
async def validate_coupon(
    code: str = Query(..., min_length=1, max_length=20),
    subtotal: Decimal = Query(..., ge=0),
    restaurant_id: Optional[int] = Query(None),
    store: BaseOrderStore = Depends(get_order_store),
) -> CouponValidationResponse:
    """Check whether a coupon would apply, and for how much. Nothing is redeemed."""
    coupon, decision = await evaluate_coupon_code(store, code, subtotal, restaurant_id=restaurant_id)
    return CouponValidationResponse(
        **decision.to_dict(),
        coupon=CouponResponse.model_validate(coupon),
    )


@app.post(
    "/api/coupons",
    status_code=201,
    response_model=CouponResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Coupons"],
)
async def create_coupon(
    data: CouponCreate,
    admin: Actor = Depends(get_admin),
    store: BaseOrderStore = Depends(get_order_store),
) -> CouponResponse:
    coupon = Coupon(
        **data.model_dump(),
        used_count=0,
        created_by=admin.user_id,
        created_at=datetime.now(timezone.utc),
    )
    coupon = await store.add_coupon(coupon)
    logger.info(f"Coupon {coupon.code} created by admin {admin.user_id}")
    return CouponResponse.model_validate(coupon)


@app.get("/api/coupons", response_model=CouponListResponse, tags=["Coupons"])
async def list_coupons(
    admin: Actor = Depends(get_admin),
    store: BaseOrderStore = Depends(get_order_store),
) -> CouponListResponse:
    coupons = await store.list_coupons()
    return CouponListResponse(coupons=[CouponResponse.model_validate(c) for c in coupons])


@app.delete(
    "/api/coupons/{coupon_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Coupons"],
)
async def delete_coupon(
    coupon_id: int,
    admin: Actor = Depends(get_admin),
    store: BaseOrderStore = Depends(get_order_store),
) -> MessageResponse:
    if not await store.delete_coupon(coupon_id):
        raise CouponNotFound("Coupon not found")
    logger.info(f"Coupon #{coupon_id} deleted by admin {admin.user_id}")
    return MessageResponse(message="Coupon deleted")


# =============================================================================
# NOTIFICATION ENDPOINTS
# =============================================================================

@app.get("/api/notifications", response_model=NotificationListResponse, tags=["Notifications"])
async def list_notifications(
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    store: BaseOrderStore = Depends(get_order_store),
) -> NotificationListResponse:
    """The caller's most recent notifications, newest first."""
    notifications = await store.list_notifications(actor.user_id, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
    )


@app.post("/api/notifications/read-all", response_model=MessageResponse, tags=["Notifications"])
async def mark_notifications_read(
    actor: Actor = Depends(get_actor),
    store: BaseOrderStore = Depends(get_order_store),
) -> MessageResponse:
    count = await store.mark_notifications_read(actor.user_id)
    return MessageResponse(message="All notifications marked as read", count=count)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_exception_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Render business failures with their status and reason code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} ({exc.message})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = {
        "success": False,
        "error": "internal_error",
        "detail": str(exc) if settings.debug else "An unexpected error occurred",
    }
    return JSONResponse(status_code=500, content=content)


def run() -> None:
    """Console entry point."""
    uvicorn.run(
        "food_ordering.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
