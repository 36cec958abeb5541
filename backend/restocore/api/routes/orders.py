"""Order API routes: checkout, kitchen status flow, items and discounts."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, Request

from restocore.core.rate_limit import limiter
from restocore.core.rbac import CurrentUser, RequireCashier
from restocore.db.session import DbSession
from restocore.models.order import OrderStatus
from restocore.schemas.order import (
    AddItemsRequest,
    ApplyDiscountRequest,
    CancelOrderRequest,
    CheckoutRequest,
    OrderResponse,
    OrderSummary,
    QuickCheckoutRequest,
    StatusUpdateRequest,
)
from restocore.schemas.pagination import PaginatedResponse
from restocore.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/checkout", response_model=OrderResponse, status_code=201)
@limiter.limit("30/minute")
def checkout(request: Request, body: CheckoutRequest, db: DbSession, current_user: CurrentUser):
    """Convert a cart into an order. A cart can be checked out once."""
    return OrderService(db).checkout(
        body.cart_id,
        order_type=body.order_type,
        table_name=body.table_name,
        store_id=current_user.store_id,
    )


@router.post("/quick-checkout", response_model=OrderResponse, status_code=201)
@limiter.limit("30/minute")
def quick_checkout(
    request: Request,
    body: QuickCheckoutRequest,
    db: DbSession,
    current_user: RequireCashier,
):
    """Counter or phone sale: create an order straight from items, without a cart."""
    return OrderService(db).quick_checkout(
        current_user.store_id,
        body.items,
        order_type=body.order_type,
        customer_name=body.customer_name,
        table_name=body.table_name,
    )


@router.get("", response_model=List[OrderSummary])
def list_orders(
    db: DbSession,
    current_user: CurrentUser,
    status: Optional[OrderStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """List the store's orders, newest first."""
    return OrderService(db).list_orders(current_user.store_id, status=status, limit=limit, offset=offset)


@router.get("/kitchen", response_model=PaginatedResponse[OrderResponse])
def kitchen_orders(
    db: DbSession,
    current_user: CurrentUser,
    status: Optional[OrderStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
):
    """Kitchen display: orders still to prepare, hand over or settle."""
    orders, total = OrderService(db).list_kitchen_orders(
        current_user.store_id, status=status, skip=skip, limit=limit
    )
    return PaginatedResponse[OrderResponse].create(
        [OrderResponse.model_validate(o) for o in orders], total, skip, limit
    )


@router.get("/sessions/{session_id}", response_model=List[OrderResponse])
def session_orders(session_id: str, db: DbSession, current_user: CurrentUser):
    """Orders checked out from one table session."""
    return OrderService(db).list_orders_by_session(session_id, current_user.store_id)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: DbSession, current_user: CurrentUser):
    return OrderService(db).get_order(order_id, store_id=current_user.store_id)


@router.post("/{order_id}/items", response_model=OrderResponse)
@limiter.limit("30/minute")
def add_items(
    request: Request,
    order_id: int,
    body: AddItemsRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    """Add items to an order that the kitchen has not finished."""
    return OrderService(db).add_items_to_order(order_id, body.items, store_id=current_user.store_id)


@router.patch("/{order_id}/status", response_model=OrderResponse)
@limiter.limit("60/minute")
def update_status(
    request: Request,
    order_id: int,
    body: StatusUpdateRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    """Move the order through PENDING -> PREPARING -> READY -> COMPLETED."""
    return OrderService(db).update_status(order_id, body.status, store_id=current_user.store_id)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
@limiter.limit("30/minute")
def cancel_order(
    request: Request,
    order_id: int,
    db: DbSession,
    current_user: RequireCashier,
    body: Optional[CancelOrderRequest] = None,
):
    reason = body.reason if body else None
    logger.info(f"Order {order_id} cancellation requested by {current_user.role.value} {current_user.user_id}")
    return OrderService(db).cancel_order(order_id, reason=reason, store_id=current_user.store_id)


@router.post("/{order_id}/discount", response_model=OrderResponse)
@limiter.limit("20/minute")
def apply_discount(
    request: Request,
    order_id: int,
    body: ApplyDiscountRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    """Apply a discount. The caller's role must cover the discount's tier."""
    return OrderService(db).apply_discount(
        order_id,
        current_user,
        body.discount_type,
        body.value,
        reason=body.reason,
    )


@router.delete("/{order_id}/discount", response_model=OrderResponse)
@limiter.limit("20/minute")
def remove_discount(request: Request, order_id: int, db: DbSession, current_user: CurrentUser):
    """Remove the order's discount (admin or owner)."""
    return OrderService(db).remove_discount(order_id, current_user)
