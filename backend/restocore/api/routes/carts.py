"""Cart API routes, one cart per table/counter session."""

from fastapi import APIRouter, Request

from restocore.core.rate_limit import limiter
from restocore.core.rbac import CurrentUser
from restocore.db.session import DbSession
from restocore.schemas.cart import CartItemAdd, CartItemUpdate, CartResponse
from restocore.services.cart_service import CartService

router = APIRouter()


@router.get("/sessions/{session_id}", response_model=CartResponse)
def get_cart(session_id: str, db: DbSession, current_user: CurrentUser):
    """Get the session's cart."""
    return CartService(db).get_cart(current_user.store_id, session_id)


@router.post("/sessions/{session_id}", response_model=CartResponse)
@limiter.limit("30/minute")
def open_cart(request: Request, session_id: str, db: DbSession, current_user: CurrentUser):
    """Get the session's cart, creating it on first use."""
    return CartService(db).get_or_create_cart(current_user.store_id, session_id)


@router.post("/sessions/{session_id}/items", response_model=CartResponse, status_code=201)
@limiter.limit("60/minute")
def add_cart_item(
    request: Request,
    session_id: str,
    body: CartItemAdd,
    db: DbSession,
    current_user: CurrentUser,
):
    """Add an item (with customizations) to the cart."""
    service = CartService(db)
    cart = service.get_or_create_cart(current_user.store_id, session_id)
    return service.add_item(cart, body.menu_item_id, body.quantity, body.option_ids, body.notes)


@router.patch("/sessions/{session_id}/items/{item_id}", response_model=CartResponse)
@limiter.limit("60/minute")
def update_cart_item(
    request: Request,
    session_id: str,
    item_id: int,
    body: CartItemUpdate,
    db: DbSession,
    current_user: CurrentUser,
):
    service = CartService(db)
    cart = service.get_cart(current_user.store_id, session_id)
    return service.update_item_quantity(cart, item_id, body.quantity)


@router.delete("/sessions/{session_id}/items/{item_id}", response_model=CartResponse)
@limiter.limit("60/minute")
def remove_cart_item(
    request: Request,
    session_id: str,
    item_id: int,
    db: DbSession,
    current_user: CurrentUser,
):
    service = CartService(db)
    cart = service.get_cart(current_user.store_id, session_id)
    return service.remove_item(cart, item_id)


@router.delete("/sessions/{session_id}/items", response_model=CartResponse)
@limiter.limit("30/minute")
def clear_cart(request: Request, session_id: str, db: DbSession, current_user: CurrentUser):
    """Remove every item from the cart."""
    service = CartService(db)
    cart = service.get_cart(current_user.store_id, session_id)
    return service.clear(cart)
