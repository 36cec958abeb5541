"""Order Service - checkout, kitchen status flow and discounts.

Flow:
1. Checkout claims the cart (ACTIVE -> CHECKED_OUT) with a conditional
   UPDATE, so two concurrent checkouts of one cart yield exactly one order.
2. Cart lines become order lines; totals are computed from the store's VAT
   and service-charge rates, which are snapshotted on the order.
3. The kitchen moves the order PENDING -> PREPARING -> READY; it completes
   once served and fully paid. PENDING/PREPARING orders may be cancelled.
4. Discounts are authorized by the discount policy and re-validated whenever
   the order's subtotal changes.

Every operation runs in one transaction through ``run_in_transaction`` and
re-reads the order row FOR UPDATE, so optimistic-lock conflicts are retried
from a fresh state. Notifications go out only after commit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from restocore.core.exceptions import (
    CartAlreadyCheckedOutError,
    DiscountInvalidatedError,
    EmptyCartError,
    InvalidDiscountError,
    InvalidStatusTransitionError,
    NotFoundError,
    OrderNotModifiableError,
    PaymentIncompleteError,
)
from restocore.core.money import ZERO, Numeric, apply_rate, quantize, sum_money, to_money
from restocore.core.rbac import ActorContext
from restocore.db.session import run_in_transaction
from restocore.models.cart import Cart, CartStatus
from restocore.models.order import (
    CLOSED_STATUSES,
    KITCHEN_STATUSES,
    OPEN_STATUSES,
    DiscountType,
    Order,
    OrderItem,
    OrderItemOption,
    OrderStatus,
    OrderType,
)
from restocore.models.store import Store
from restocore.schemas.order import OrderItemRequest
from restocore.services.cart_service import PricedLine, price_line
from restocore.services.discount_policy import (
    authorize_discount,
    authorize_discount_removal,
    discount_amount,
)
from restocore.services.notification_service import (
    OrderEvent,
    OrderNotifier,
    order_notifier,
    order_payload,
)

logger = logging.getLogger(__name__)

# Allowed kitchen status transitions
STATUS_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_amount: Decimal
    vat_amount: Decimal
    service_charge_amount: Decimal
    grand_total: Decimal


def calculate_totals(
    subtotal: Numeric,
    discount: Numeric,
    vat_rate: Numeric,
    service_charge_rate: Numeric,
) -> OrderTotals:
    """VAT and service charge are charged on the discounted subtotal.

    >>> calculate_totals("100.00", "10.00", "0.07", "0.10").grand_total
    Decimal('105.30')
    """
    subtotal = to_money(subtotal)
    discount = to_money(discount)
    taxable = max(subtotal - discount, ZERO)
    vat = apply_rate(taxable, vat_rate)
    service = apply_rate(taxable, service_charge_rate)
    return OrderTotals(
        subtotal=subtotal,
        discount_amount=discount,
        vat_amount=vat,
        service_charge_amount=service,
        grand_total=quantize(taxable + vat + service),
    )


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in STATUS_TRANSITIONS.get(current, frozenset())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Service for the order lifecycle."""

    def __init__(self, db: Session, notifier: Optional[OrderNotifier] = None):
        self.db = db
        self.notifier = notifier or order_notifier

    # ===== CHECKOUT =====

    def checkout(
        self,
        cart_id: int,
        order_type: OrderType = OrderType.DINE_IN,
        table_name: Optional[str] = None,
        store_id: Optional[int] = None,
    ) -> Order:
        """Turn a cart into an order, atomically.

        Raises:
            NotFoundError: no such cart (in ``store_id`` when given).
            CartAlreadyCheckedOutError: the cart was already claimed.
            EmptyCartError: the cart has no items.
        """

        def operation() -> Order:
            claim = (
                update(Cart)
                .where(Cart.id == cart_id, Cart.status == CartStatus.ACTIVE)
                .values(status=CartStatus.CHECKED_OUT, checked_out_at=_utcnow())
                .execution_options(synchronize_session=False)
            )
            if store_id is not None:
                claim = claim.where(Cart.store_id == store_id)
            claimed = self.db.execute(claim).rowcount

            cart = self.db.execute(
                select(Cart).where(Cart.id == cart_id).execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if cart is None or (store_id is not None and cart.store_id != store_id):
                raise NotFoundError("Cart", cart_id)
            if not claimed:
                raise CartAlreadyCheckedOutError(
                    f"Cart {cart_id} has already been checked out",
                    cart_id=cart_id,
                    order_id=cart.order_id,
                )
            if not cart.items:
                raise EmptyCartError(f"Cart {cart_id} is empty", cart_id=cart_id)

            store = self._get_store(cart.store_id)
            order = self._new_order(
                store,
                order_type=order_type,
                table_name=table_name,
                session_id=cart.session_id,
                cart_id=cart.id,
            )
            for cart_item in cart.items:
                order_item = OrderItem(
                    menu_item_id=cart_item.menu_item_id,
                    menu_item_name=cart_item.menu_item_name,
                    quantity=cart_item.quantity,
                    unit_price=quantize(
                        cart_item.base_price
                        + sum((o.additional_price for o in cart_item.options), ZERO)
                    ),
                    line_subtotal=cart_item.line_subtotal,
                    notes=cart_item.notes,
                )
                order_item.options = [
                    OrderItemOption(
                        option_id=o.option_id,
                        name=o.name,
                        additional_price=o.additional_price,
                    )
                    for o in cart_item.options
                ]
                order.items.append(order_item)

            self._apply_totals(order)
            self.db.add(order)
            self.db.flush()

            cart.order_id = order.id
            cart.items.clear()
            cart.subtotal = ZERO
            return order

        order = run_in_transaction(self.db, operation, label="order.checkout")
        logger.info(
            f"[order.checkout] Created order {order.order_number} (id {order.id}) from cart {cart_id}, "
            f"grand total {order.grand_total}"
        )
        self._notify(order, OrderEvent.ORDER_CREATED)
        return order

    def quick_checkout(
        self,
        store_id: int,
        items: Sequence[OrderItemRequest],
        order_type: OrderType = OrderType.TAKEAWAY,
        customer_name: Optional[str] = None,
        table_name: Optional[str] = None,
    ) -> Order:
        """Create an order directly from item requests, for counter and phone sales."""
        if not items:
            raise EmptyCartError("Quick checkout requires at least one item")

        def operation() -> Order:
            store = self._get_store(store_id)
            lines = [self._price(store_id, item) for item in items]
            order = self._new_order(
                store,
                order_type=order_type,
                table_name=table_name,
                customer_name=customer_name,
            )
            for line in lines:
                order.items.append(self._order_item(line))
            self._apply_totals(order)
            self.db.add(order)
            self.db.flush()
            return order

        order = run_in_transaction(self.db, operation, label="order.quick_checkout")
        logger.info(
            f"[order.quick_checkout] Created order {order.order_number} (id {order.id}) "
            f"with {len(order.items)} lines, grand total {order.grand_total}"
        )
        self._notify(order, OrderEvent.ORDER_CREATED)
        return order

    # ===== QUERIES =====

    def get_order(self, order_id: int, store_id: Optional[int] = None) -> Order:
        query = select(Order).where(Order.id == order_id)
        if store_id is not None:
            query = query.where(Order.store_id == store_id)
        order = self.db.execute(query).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(
        self,
        store_id: int,
        status: Optional[OrderStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        query = select(Order).where(Order.store_id == store_id)
        if status is not None:
            query = query.where(Order.status == status)
        query = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit)
        return list(self.db.execute(query).scalars().all())

    def list_kitchen_orders(
        self,
        store_id: int,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        """Orders for the kitchen display and the total matching count.

        Without ``status`` the display shows everything the kitchen still has
        to act on: PENDING, then PREPARING, then READY, newest first within
        each.
        """
        conditions = [Order.store_id == store_id]
        if status is not None:
            conditions.append(Order.status == status)
        else:
            conditions.append(Order.status.in_(KITCHEN_STATUSES))

        total = self.db.execute(select(func.count(Order.id)).where(*conditions)).scalar_one()
        priority = case(
            {s: rank for rank, s in enumerate(KITCHEN_STATUSES)},
            value=Order.status,
            else_=len(KITCHEN_STATUSES),
        )
        query = (
            select(Order)
            .where(*conditions)
            .order_by(priority, Order.created_at.desc(), Order.id.desc())
            .offset(skip)
            .limit(limit)
        )
        orders = list(self.db.execute(query).scalars().all())
        logger.info(
            f"[order.kitchen] Store {store_id}: {len(orders)} of {total} orders "
            f"(status {status.value if status else 'active'})"
        )
        return orders, total

    def list_orders_by_session(self, session_id: str, store_id: int) -> List[Order]:
        """Every order checked out from one table session, newest first."""
        query = (
            select(Order)
            .where(Order.store_id == store_id, Order.session_id == session_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(self.db.execute(query).scalars().all())

    # ===== ITEMS =====

    def add_items_to_order(
        self,
        order_id: int,
        items: Sequence[OrderItemRequest],
        store_id: Optional[int] = None,
    ) -> Order:
        """Append lines to a PENDING or PREPARING order and reprice it."""
        if not items:
            raise EmptyCartError("No items to add")

        def operation() -> Order:
            order = self.lock_order(order_id, store_id)
            if order.status not in OPEN_STATUSES:
                raise OrderNotModifiableError(
                    f"Cannot add items to an order with status {order.status.value}",
                    order_id=order_id,
                    status=order.status,
                )
            lines = [self._price(order.store_id, item) for item in items]
            new_subtotal = sum_money(
                [i.line_subtotal for i in order.items] + [line.line_subtotal for line in lines]
            )
            new_discount = self._revalidated_discount(order, new_subtotal)

            for line in lines:
                order.items.append(self._order_item(line))
            self._apply_totals(order, discount=new_discount)
            self._sync_paid_at(order)
            return order

        order = run_in_transaction(self.db, operation, label="order.add_items")
        logger.info(
            f"[order.add_items] Order {order.order_number}: +{len(items)} lines, "
            f"subtotal {order.subtotal}, grand total {order.grand_total}"
        )
        self._notify(order, OrderEvent.ORDER_UPDATED)
        return order

    # ===== DISCOUNTS =====

    def apply_discount(
        self,
        order_id: int,
        actor: ActorContext,
        kind: DiscountType,
        value: Numeric,
        reason: Optional[str] = None,
    ) -> Order:
        """Authorize and apply a discount; replaces any existing one.

        Replacing needs the removal role as well as the new discount's tier.
        A discount that settles the balance of a READY order completes it,
        the same as a settling payment does.
        """

        def operation() -> Order:
            order = self.lock_order(order_id, actor.store_id)
            self._ensure_discountable(order)
            if order.has_discount:
                authorize_discount_removal(actor.role)
            discount = authorize_discount(kind, value, order.subtotal, actor.role)

            totals = calculate_totals(
                order.subtotal,
                discount.amount,
                order.vat_rate_snapshot,
                order.service_charge_rate_snapshot,
            )
            if totals.grand_total < order.total_paid:
                raise InvalidDiscountError(
                    f"Discount would bring the total to {totals.grand_total}, "
                    f"below the {order.total_paid} already paid",
                    grand_total=totals.grand_total,
                    total_paid=order.total_paid,
                )

            order.discount_type = discount.kind
            order.discount_value = discount.value
            order.discount_reason = reason
            order.discount_applied_by_role = discount.applied_by_role.value
            order.discount_applied_by = actor.user_id
            order.discount_applied_at = _utcnow()
            self._apply_totals(order, discount=discount.amount)
            self._sync_paid_at(order)
            if order.paid_at is not None and order.status == OrderStatus.READY:
                order.status = OrderStatus.COMPLETED
            return order

        order = run_in_transaction(self.db, operation, label="order.apply_discount")
        logger.info(
            f"[order.apply_discount] Order {order.order_number}: {order.discount_type.value} "
            f"{order.discount_value} (-{order.discount_amount}) by {actor.role.value} {actor.user_id}"
            f", status {order.status.value}"
        )
        self._notify(order, OrderEvent.DISCOUNT_APPLIED)
        if order.status == OrderStatus.COMPLETED:
            self._notify(order, OrderEvent.ORDER_PAID)
        return order

    def remove_discount(self, order_id: int, actor: ActorContext) -> Order:
        def operation() -> Order:
            order = self.lock_order(order_id, actor.store_id)
            authorize_discount_removal(actor.role)
            self._ensure_discountable(order)
            if not order.has_discount:
                raise InvalidDiscountError(
                    f"Order {order.order_number} has no discount", order_id=order_id
                )
            order.discount_type = None
            order.discount_value = None
            order.discount_reason = None
            order.discount_applied_by_role = None
            order.discount_applied_by = None
            order.discount_applied_at = None
            self._apply_totals(order, discount=ZERO)
            self._sync_paid_at(order)
            return order

        order = run_in_transaction(self.db, operation, label="order.remove_discount")
        logger.info(
            f"[order.remove_discount] Order {order.order_number}: discount removed by "
            f"{actor.role.value} {actor.user_id}, grand total {order.grand_total}"
        )
        self._notify(order, OrderEvent.DISCOUNT_REMOVED)
        return order

    # ===== STATUS =====

    def update_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        store_id: Optional[int] = None,
    ) -> Order:
        """Move an order along the kitchen flow.

        Raises:
            InvalidStatusTransitionError: transition not in ``STATUS_TRANSITIONS``.
            PaymentIncompleteError: READY -> COMPLETED with a balance remaining.
        """
        new_status = OrderStatus(new_status)

        def operation() -> Order:
            order = self.lock_order(order_id, store_id)
            self._transition(order, new_status)
            return order

        order = run_in_transaction(self.db, operation, label="order.update_status")
        logger.info(f"[order.update_status] Order {order.order_number} -> {order.status.value}")
        self._notify(
            order,
            OrderEvent.ORDER_CANCELLED
            if order.status == OrderStatus.CANCELLED
            else OrderEvent.ORDER_STATUS_CHANGED,
        )
        return order

    def cancel_order(
        self,
        order_id: int,
        reason: Optional[str] = None,
        store_id: Optional[int] = None,
    ) -> Order:
        def operation() -> Order:
            order = self.lock_order(order_id, store_id)
            self._transition(order, OrderStatus.CANCELLED)
            order.cancellation_reason = reason
            return order

        order = run_in_transaction(self.db, operation, label="order.cancel")
        logger.info(f"[order.cancel] Order {order.order_number} cancelled: {reason or 'no reason given'}")
        self._notify(order, OrderEvent.ORDER_CANCELLED)
        return order

    # ===== SHARED HELPERS =====

    def lock_order(self, order_id: int, store_id: Optional[int] = None) -> Order:
        """Read an order for modification (``SELECT ... FOR UPDATE``), bypassing stale identity-map state."""
        query = (
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if store_id is not None:
            query = query.where(Order.store_id == store_id)
        order = self.db.execute(query).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def _transition(self, order: Order, new_status: OrderStatus) -> None:
        if not can_transition(order.status, new_status):
            raise InvalidStatusTransitionError(order.status, new_status)
        if new_status == OrderStatus.COMPLETED and not order.is_fully_paid:
            raise PaymentIncompleteError(
                f"Order {order.order_number} has {order.remaining_balance} outstanding",
                order_id=order.id,
                remaining=order.remaining_balance,
            )
        order.status = new_status
        if new_status == OrderStatus.CANCELLED:
            order.cancelled_at = _utcnow()

    def _get_store(self, store_id: int) -> Store:
        store = self.db.get(Store, store_id)
        if store is None or not store.is_active:
            raise NotFoundError("Store", store_id)
        return store

    def _price(self, store_id: int, item: OrderItemRequest) -> PricedLine:
        return price_line(
            self.db,
            store_id,
            item.menu_item_id,
            item.quantity,
            item.option_ids,
            item.notes,
        )

    @staticmethod
    def _order_item(line: PricedLine) -> OrderItem:
        order_item = OrderItem(
            menu_item_id=line.menu_item_id,
            menu_item_name=line.menu_item_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_subtotal=line.line_subtotal,
            notes=line.notes,
        )
        order_item.options = [
            OrderItemOption(
                option_id=o.option_id,
                name=o.name,
                additional_price=o.additional_price,
            )
            for o in line.options
        ]
        return order_item

    def _new_order(self, store: Store, **fields) -> Order:
        now = _utcnow()
        return Order(
            store_id=store.id,
            order_number=self._next_order_number(store.id, now),
            status=OrderStatus.PENDING,
            vat_rate_snapshot=store.vat_rate,
            service_charge_rate_snapshot=store.service_charge_rate,
            discount_amount=ZERO,
            total_paid=ZERO,
            **fields,
        )

    def _next_order_number(self, store_id: int, now: datetime) -> str:
        """``YYYYMMDD-NNN``, counting this store's orders for the day."""
        prefix = now.strftime("%Y%m%d")
        count = self.db.execute(
            select(func.count(Order.id)).where(
                Order.store_id == store_id,
                Order.order_number.like(f"{prefix}-%"),
            )
        ).scalar_one()
        return f"{prefix}-{count + 1:03d}"

    def _apply_totals(self, order: Order, discount: Optional[Decimal] = None) -> None:
        """Recompute every derived total from the order's lines."""
        if discount is None:
            discount = order.discount_amount or ZERO
        totals = calculate_totals(
            sum_money(item.line_subtotal for item in order.items),
            discount,
            order.vat_rate_snapshot,
            order.service_charge_rate_snapshot,
        )
        order.subtotal = totals.subtotal
        order.discount_amount = totals.discount_amount
        order.vat_amount = totals.vat_amount
        order.service_charge_amount = totals.service_charge_amount
        order.grand_total = totals.grand_total

    def _revalidated_discount(self, order: Order, new_subtotal: Decimal) -> Decimal:
        """Discount amount for ``new_subtotal``; fails closed if it no longer fits."""
        if not order.has_discount:
            return ZERO
        if order.discount_type == DiscountType.FIXED_AMOUNT:
            if order.discount_value > new_subtotal:
                raise DiscountInvalidatedError(
                    f"Fixed discount {order.discount_value} exceeds new subtotal {new_subtotal}",
                    order_id=order.id,
                    discount_value=order.discount_value,
                    subtotal=new_subtotal,
                )
        return discount_amount(order.discount_type, order.discount_value, new_subtotal)

    @staticmethod
    def _ensure_discountable(order: Order) -> None:
        if order.status in CLOSED_STATUSES:
            raise OrderNotModifiableError(
                f"Cannot change the discount of an order with status {order.status.value}",
                order_id=order.id,
                status=order.status,
            )

    @staticmethod
    def _sync_paid_at(order: Order) -> None:
        """Keep ``paid_at`` in step with ``total_paid`` after the total moved."""
        if order.total_paid > ZERO and order.is_fully_paid:
            if order.paid_at is None:
                order.paid_at = _utcnow()
        else:
            order.paid_at = None

    def _notify(self, order: Order, event: OrderEvent) -> None:
        try:
            self.notifier.notify(order.store_id, event, order_payload(order))
        except Exception as e:
            logger.warning(f"[notify] {event.value} for order {order.id} not sent: {e}")
