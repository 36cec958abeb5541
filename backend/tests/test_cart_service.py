"""Tests for the cart service."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from restocore.core.exceptions import (
    CartLockedError,
    InvalidCustomizationError,
    InvalidQuantityError,
    MenuItemUnavailableError,
    NotFoundError,
)
from restocore.models.cart import CartStatus
from restocore.models.store import MenuItem
from restocore.services.cart_service import CartService
from restocore.services.order_service import OrderService


@pytest.fixture
def carts(db_session):
    return CartService(db_session)


@pytest.fixture
def cart(carts, store):
    return carts.get_or_create_cart(store.id, "table-4")


class TestCartLookup:
    """Tests for creating and finding carts."""

    def test_created_once_per_session(self, carts, store, cart):
        assert cart.status == CartStatus.ACTIVE
        assert cart.subtotal == Decimal("0.00")
        assert carts.get_or_create_cart(store.id, "table-4").id == cart.id
        assert carts.get_cart(store.id, "table-4").id == cart.id

    def test_other_store_cannot_see_cart(self, carts, cart, other_store):
        with pytest.raises(NotFoundError):
            carts.get_cart(other_store.id, "table-4")
        with pytest.raises(NotFoundError):
            carts.get_or_create_cart(other_store.id, "table-4")

    def test_unknown_store(self, carts, store):
        with pytest.raises(NotFoundError):
            carts.get_or_create_cart(store.id + 999, "table-9")


class TestAddItem:
    """Tests for pricing and merging cart lines."""

    def test_price_snapshot_with_options(self, carts, cart, burger):
        cheese, bacon = burger.options
        carts.add_item(cart, burger.id, 2, option_ids=[cheese.id, bacon.id])

        [line] = cart.items
        assert line.base_price == Decimal("12.50")
        assert line.line_subtotal == Decimal("32.00")
        assert [o.name for o in line.options] == ["Extra cheese", "Bacon"]
        assert cart.subtotal == Decimal("32.00")

    def test_identical_lines_merge(self, carts, cart, burger):
        cheese, bacon = burger.options
        carts.add_item(cart, burger.id, 1, option_ids=[cheese.id, bacon.id], notes="no onions")
        carts.add_item(cart, burger.id, 2, option_ids=[bacon.id, cheese.id], notes="  no onions ")

        [line] = cart.items
        assert line.quantity == 3
        assert line.line_subtotal == Decimal("48.00")

    def test_different_options_or_notes_stay_separate(self, carts, cart, burger):
        cheese, _ = burger.options
        carts.add_item(cart, burger.id, 1)
        carts.add_item(cart, burger.id, 1, option_ids=[cheese.id])
        carts.add_item(cart, burger.id, 1, notes="well done")

        assert len(cart.items) == 3
        assert cart.subtotal == Decimal("39.00")

    def test_menu_edits_do_not_reprice_cart(self, db_session, carts, cart, burger):
        carts.add_item(cart, burger.id, 1)
        burger.base_price = Decimal("20.00")
        db_session.commit()

        assert cart.items[0].line_subtotal == Decimal("12.50")
        assert carts.get_subtotal(cart) == Decimal("12.50")

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_invalid_quantity(self, carts, cart, soda, quantity):
        with pytest.raises(InvalidQuantityError):
            carts.add_item(cart, soda.id, quantity)
        assert cart.items == []

    def test_option_of_another_item_rejected(self, carts, cart, burger, steak):
        cheese, _ = burger.options
        with pytest.raises(InvalidCustomizationError) as exc_info:
            carts.add_item(cart, steak.id, 1, option_ids=[cheese.id])
        assert exc_info.value.context["option_ids"] == [cheese.id]

    def test_menu_item_of_another_store(self, db_session, carts, cart, other_store):
        foreign = MenuItem(store_id=other_store.id, name="Pizza", base_price=Decimal("9.00"))
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(NotFoundError):
            carts.add_item(cart, foreign.id, 1)

    def test_unavailable_items(self, db_session, carts, cart, soda, steak):
        soda.is_available = False
        steak.is_out_of_stock = True
        db_session.commit()

        with pytest.raises(MenuItemUnavailableError):
            carts.add_item(cart, soda.id, 1)
        with pytest.raises(MenuItemUnavailableError):
            carts.add_item(cart, steak.id, 1)

    def test_deleted_item_not_found(self, db_session, carts, cart, soda):
        soda.deleted_at = datetime.now(timezone.utc)
        db_session.commit()

        with pytest.raises(NotFoundError):
            carts.add_item(cart, soda.id, 1)


class TestCartMutations:
    """Tests for quantity updates, removal and clearing."""

    def test_update_quantity(self, carts, cart, burger, soda):
        carts.add_item(cart, burger.id, 1)
        carts.add_item(cart, soda.id, 1)
        soda_line = next(i for i in cart.items if i.menu_item_id == soda.id)

        carts.update_item_quantity(cart, soda_line.id, 4)

        assert soda_line.quantity == 4
        assert soda_line.line_subtotal == Decimal("12.00")
        assert cart.subtotal == Decimal("24.50")

    def test_update_quantity_to_zero_rejected(self, carts, cart, soda):
        carts.add_item(cart, soda.id, 2)
        with pytest.raises(InvalidQuantityError):
            carts.update_item_quantity(cart, cart.items[0].id, 0)
        assert cart.items[0].quantity == 2

    def test_remove_and_clear(self, carts, cart, burger, soda):
        carts.add_item(cart, burger.id, 1)
        carts.add_item(cart, soda.id, 2)

        carts.remove_item(cart, cart.items[0].id)
        assert [i.menu_item_id for i in cart.items] == [soda.id]
        assert cart.subtotal == Decimal("6.00")

        carts.clear(cart)
        assert cart.items == []
        assert cart.subtotal == Decimal("0.00")

    def test_unknown_line(self, carts, cart):
        with pytest.raises(NotFoundError):
            carts.remove_item(cart, 12345)

    def test_locked_after_checkout(self, db_session, carts, cart, soda, notifier):
        carts.add_item(cart, soda.id, 1)
        OrderService(db_session, notifier=notifier).checkout(cart.id)

        assert cart.is_locked
        with pytest.raises(CartLockedError):
            carts.add_item(cart, soda.id, 1)
        with pytest.raises(CartLockedError):
            carts.clear(cart)
