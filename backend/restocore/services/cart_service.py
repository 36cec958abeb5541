"""Cart Service - per-session item collection before checkout.

Prices are snapshotted from the menu catalog when a line is added, so later
menu edits never change what is already in a cart. Identical lines (same
menu item, same customization set, same notes) are merged by adding
quantities.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from restocore.core.exceptions import (
    CartLockedError,
    InvalidCustomizationError,
    InvalidQuantityError,
    MenuItemUnavailableError,
    NotFoundError,
)
from restocore.core.money import ZERO, quantize, sum_money
from restocore.db.session import run_in_transaction
from restocore.models.cart import Cart, CartItem, CartItemOption, CartStatus
from restocore.models.store import CustomizationOption, MenuItem, Store

logger = logging.getLogger(__name__)


@dataclass
class PricedOption:
    option_id: int
    name: str
    additional_price: Decimal


@dataclass
class PricedLine:
    """A menu item resolved against the catalog with its price snapshot."""

    menu_item_id: int
    menu_item_name: str
    base_price: Decimal
    quantity: int
    notes: Optional[str] = None
    options: List[PricedOption] = field(default_factory=list)

    @property
    def unit_price(self) -> Decimal:
        return quantize(self.base_price + sum((o.additional_price for o in self.options), ZERO))

    @property
    def line_subtotal(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)


def normalize_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(f"Quantity must be a whole number of at least 1, got {quantity!r}", quantity=quantity)
    return quantity


def price_line(
    db: Session,
    store_id: int,
    menu_item_id: int,
    quantity: int,
    option_ids: Optional[Iterable[int]] = None,
    notes: Optional[str] = None,
) -> PricedLine:
    """Resolve a menu item and its customizations within ``store_id``.

    Raises:
        InvalidQuantityError: quantity below 1.
        NotFoundError: no such menu item in the store.
        MenuItemUnavailableError: item disabled, out of stock or deleted.
        InvalidCustomizationError: an option does not belong to the item.
    """
    quantity = validate_quantity(quantity)

    menu_item = db.execute(
        select(MenuItem).where(MenuItem.id == menu_item_id, MenuItem.store_id == store_id)
    ).scalar_one_or_none()
    if menu_item is None or menu_item.deleted_at is not None:
        raise NotFoundError("Menu item", menu_item_id)
    if menu_item.is_out_of_stock:
        raise MenuItemUnavailableError(
            f"Menu item '{menu_item.name}' is out of stock", menu_item_id=menu_item_id
        )
    if not menu_item.is_available:
        raise MenuItemUnavailableError(
            f"Menu item '{menu_item.name}' is not available", menu_item_id=menu_item_id
        )

    wanted = sorted(set(option_ids or []))
    options: List[PricedOption] = []
    if wanted:
        rows = db.execute(
            select(CustomizationOption).where(
                CustomizationOption.id.in_(wanted),
                CustomizationOption.menu_item_id == menu_item.id,
            )
        ).scalars().all()
        found = {row.id: row for row in rows}
        missing = [option_id for option_id in wanted if option_id not in found]
        if missing:
            raise InvalidCustomizationError(
                f"Invalid customization options for '{menu_item.name}': {missing}",
                menu_item_id=menu_item_id,
                option_ids=missing,
            )
        options = [
            PricedOption(option_id=o.id, name=o.name, additional_price=quantize(o.additional_price))
            for o in (found[option_id] for option_id in wanted)
        ]

    return PricedLine(
        menu_item_id=menu_item.id,
        menu_item_name=menu_item.name,
        base_price=quantize(menu_item.base_price),
        quantity=quantity,
        notes=normalize_notes(notes),
        options=options,
    )


class CartService:
    """Service for building up a session's cart."""

    def __init__(self, db: Session):
        self.db = db

    # ===== LOOKUP =====

    def get_cart(self, store_id: int, session_id: str) -> Cart:
        cart = self.db.execute(
            select(Cart).where(Cart.session_id == session_id, Cart.store_id == store_id)
        ).scalar_one_or_none()
        if cart is None:
            raise NotFoundError("Cart", session_id)
        return cart

    def get_cart_by_id(self, cart_id: int, store_id: Optional[int] = None) -> Cart:
        query = select(Cart).where(Cart.id == cart_id)
        if store_id is not None:
            query = query.where(Cart.store_id == store_id)
        cart = self.db.execute(query).scalar_one_or_none()
        if cart is None:
            raise NotFoundError("Cart", cart_id)
        return cart

    def get_or_create_cart(self, store_id: int, session_id: str) -> Cart:
        """Return the session's cart, creating an empty one on first use."""
        cart = self.db.execute(
            select(Cart).where(Cart.session_id == session_id)
        ).scalar_one_or_none()
        if cart is not None:
            if cart.store_id != store_id:
                # Session ids are globally unique; another store's cart is invisible
                raise NotFoundError("Cart", session_id)
            return cart

        if self.db.get(Store, store_id) is None:
            raise NotFoundError("Store", store_id)

        def create() -> Cart:
            new_cart = Cart(
                store_id=store_id,
                session_id=session_id,
                status=CartStatus.ACTIVE,
                subtotal=ZERO,
            )
            self.db.add(new_cart)
            self.db.flush()
            return new_cart

        cart = run_in_transaction(self.db, create, label="cart.create")
        logger.info(f"[cart.create] Created cart {cart.id} for session {session_id} in store {store_id}")
        return cart

    # ===== MUTATIONS =====

    def add_item(
        self,
        cart: Cart,
        menu_item_id: int,
        quantity: int,
        option_ids: Optional[Sequence[int]] = None,
        notes: Optional[str] = None,
    ) -> Cart:
        """Add a priced line to the cart, merging with an identical line if present."""

        def operation() -> Cart:
            self._lock(cart)
            line = price_line(self.db, cart.store_id, menu_item_id, quantity, option_ids, notes)
            option_key = tuple(o.option_id for o in line.options)

            existing = next(
                (
                    item
                    for item in cart.items
                    if item.menu_item_id == line.menu_item_id
                    and item.option_ids == option_key
                    and normalize_notes(item.notes) == line.notes
                ),
                None,
            )
            if existing is not None:
                existing.quantity += line.quantity
                unit_price = existing.base_price + sum(
                    (o.additional_price for o in existing.options), ZERO
                )
                existing.line_subtotal = quantize(unit_price * existing.quantity)
            else:
                item = CartItem(
                    menu_item_id=line.menu_item_id,
                    menu_item_name=line.menu_item_name,
                    base_price=line.base_price,
                    quantity=line.quantity,
                    notes=line.notes,
                    line_subtotal=line.line_subtotal,
                )
                item.options = [
                    CartItemOption(
                        option_id=o.option_id,
                        name=o.name,
                        additional_price=o.additional_price,
                    )
                    for o in line.options
                ]
                cart.items.append(item)

            self._recalculate(cart)
            return cart

        run_in_transaction(self.db, operation, label="cart.add_item")
        logger.info(
            f"[cart.add_item] Cart {cart.id}: +{quantity} x menu item {menu_item_id}, subtotal {cart.subtotal}"
        )
        return cart

    def update_item_quantity(self, cart: Cart, item_id: int, quantity: int) -> Cart:
        def operation() -> Cart:
            self._lock(cart)
            item = self._find_item(cart, item_id)
            item.quantity = validate_quantity(quantity)
            unit_price = item.base_price + sum((o.additional_price for o in item.options), ZERO)
            item.line_subtotal = quantize(unit_price * item.quantity)
            self._recalculate(cart)
            return cart

        return run_in_transaction(self.db, operation, label="cart.update_item")

    def remove_item(self, cart: Cart, item_id: int) -> Cart:
        def operation() -> Cart:
            self._lock(cart)
            item = self._find_item(cart, item_id)
            cart.items.remove(item)
            self._recalculate(cart)
            return cart

        return run_in_transaction(self.db, operation, label="cart.remove_item")

    def clear(self, cart: Cart) -> Cart:
        def operation() -> Cart:
            self._lock(cart)
            cart.items.clear()
            self._recalculate(cart)
            return cart

        run_in_transaction(self.db, operation, label="cart.clear")
        logger.info(f"[cart.clear] Cleared cart {cart.id}")
        return cart

    # ===== TOTALS =====

    def get_subtotal(self, cart: Cart) -> Decimal:
        return sum_money(item.line_subtotal for item in cart.items)

    # ===== INTERNALS =====

    def _lock(self, cart: Cart) -> None:
        """Re-read the cart row for update and refuse changes after checkout."""
        self.db.refresh(cart, with_for_update=True)
        if cart.status != CartStatus.ACTIVE:
            raise CartLockedError(
                f"Cart {cart.id} has been checked out and can no longer be modified",
                cart_id=cart.id,
                status=cart.status,
            )

    def _find_item(self, cart: Cart, item_id: int) -> CartItem:
        for item in cart.items:
            if item.id == item_id:
                return item
        raise NotFoundError("Cart item", item_id)

    def _recalculate(self, cart: Cart) -> None:
        cart.subtotal = self.get_subtotal(cart)
