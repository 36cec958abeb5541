"""Payment Ledger Service - append-only payments and refunds against an order.

``Order.total_paid`` is always the net of payments minus refunds. A payment
that brings the order to its grand total (within one cent) marks it paid and,
when the kitchen has already set it READY, completes it. Refunds reference
one payment and never touch the payment row itself.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from restocore.core.exceptions import (
    InsufficientTenderError,
    InvalidAmountError,
    NotFoundError,
    OrderNotModifiableError,
    OverpaymentError,
    RefundExceedsPaymentError,
)
from restocore.core.money import EPSILON, ZERO, Numeric, exceeds, quantize, sum_money, to_decimal, to_money
from restocore.db.session import run_in_transaction
from restocore.models.order import Order, OrderStatus
from restocore.models.payment import Payment, PaymentMethod, Refund, SplitMethod
from restocore.services.notification_service import (
    OrderEvent,
    OrderNotifier,
    order_notifier,
    order_payload,
)
from restocore.services.order_service import OrderService

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """Outcome of a recorded payment. ``change`` is only set for cash with a tendered amount."""

    payment: Payment
    order: Order
    change: Optional[Decimal] = None

    @property
    def order_completed(self) -> bool:
        return self.order.status == OrderStatus.COMPLETED


@dataclass
class PaymentSummary:
    order_id: int
    grand_total: Decimal
    total_paid: Decimal
    total_refunded: Decimal
    net_paid: Decimal
    remaining_balance: Decimal
    is_fully_paid: bool
    overpayment: Decimal


def parse_amount(value: Numeric, field: str = "amount") -> Decimal:
    """A strictly positive amount with at most two decimal places."""
    amount = to_decimal(value)
    if amount <= ZERO:
        raise InvalidAmountError(f"{field} must be greater than zero, got {amount}", **{field: amount})
    if amount != quantize(amount):
        raise InvalidAmountError(f"{field} has more than two decimal places: {amount}", **{field: amount})
    return amount


class PaymentLedgerService:
    """Service for recording money in and out of an order."""

    def __init__(self, db: Session, notifier: Optional[OrderNotifier] = None):
        self.db = db
        self.notifier = notifier or order_notifier
        self.orders = OrderService(db, notifier=self.notifier)

    # ===== PAYMENTS =====

    def record_payment(
        self,
        order_id: int,
        amount: Numeric,
        method: PaymentMethod,
        amount_tendered: Optional[Numeric] = None,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
        recorded_by: Optional[str] = None,
        store_id: Optional[int] = None,
        split_method: Optional[SplitMethod] = None,
        split_share_id: Optional[str] = None,
    ) -> PaymentResult:
        """Append a payment and update the order's running balance.

        Raises:
            InvalidAmountError: amount not positive, or tendered on a non-cash payment.
            OrderNotModifiableError: order is cancelled.
            OverpaymentError: amount above the remaining balance by more than one cent.
            InsufficientTenderError: cash tendered below the amount.
        """
        method = PaymentMethod(method)
        amount = parse_amount(amount)
        tendered = None
        if amount_tendered is not None:
            if method != PaymentMethod.CASH:
                raise InvalidAmountError(
                    "amount_tendered is only accepted for cash payments",
                    method=method,
                    amount_tendered=amount_tendered,
                )
            tendered = to_money(amount_tendered)
            if tendered < amount:
                logger.warning(
                    f"[payment.record] Order {order_id}: tendered {tendered} below amount {amount}"
                )
                raise InsufficientTenderError(amount, tendered)

        def operation() -> PaymentResult:
            order = self.orders.lock_order(order_id, store_id)
            if order.status == OrderStatus.CANCELLED:
                raise OrderNotModifiableError(
                    f"Cannot take payment for cancelled order {order.order_number}",
                    order_id=order_id,
                    status=order.status,
                )

            remaining = order.grand_total - order.total_paid
            if exceeds(amount, remaining):
                logger.warning(
                    f"[payment.record] Order {order.order_number}: payment {amount} "
                    f"exceeds remaining balance {remaining}"
                )
                raise OverpaymentError(amount, max(remaining, ZERO))

            payment = Payment(
                order_id=order.id,
                amount=amount,
                method=method,
                amount_tendered=tendered,
                transaction_id=transaction_id,
                notes=notes,
                recorded_by=recorded_by,
                split_method=split_method,
                split_share_id=split_share_id,
            )
            self.db.add(payment)
            order.total_paid = order.total_paid + amount

            if order.is_fully_paid:
                if order.paid_at is None:
                    order.paid_at = datetime.now(timezone.utc)
                if order.status == OrderStatus.READY:
                    order.status = OrderStatus.COMPLETED
                if order.overpayment > ZERO:
                    logger.warning(
                        f"[payment.record] Order {order.order_number} overpaid by "
                        f"{order.overpayment} (within {EPSILON} tolerance)"
                    )

            self.db.flush()
            change = tendered - amount if tendered is not None else None
            return PaymentResult(payment=payment, order=order, change=change)

        result = run_in_transaction(self.db, operation, label="payment.record")
        order = result.order
        logger.info(
            f"[payment.record] Order {order.order_number}: {method.value} {amount} recorded "
            f"(paid {order.total_paid} of {order.grand_total}, status {order.status.value})"
            + (f", change {result.change}" if result.change is not None else "")
        )
        self._notify(order, OrderEvent.PAYMENT_RECORDED)
        if order.is_fully_paid:
            self._notify(order, OrderEvent.ORDER_PAID)
        return result

    # ===== REFUNDS =====

    def record_refund(
        self,
        order_id: int,
        payment_id: int,
        amount: Numeric,
        reason: Optional[str] = None,
        refunded_by: Optional[str] = None,
        store_id: Optional[int] = None,
    ) -> Order:
        """Append a refund against ``payment_id`` and reduce the order's net paid amount.

        The order's status is left alone; ``paid_at`` is cleared once it is no
        longer fully paid.
        """
        amount = parse_amount(amount)

        def operation() -> Order:
            order = self.orders.lock_order(order_id, store_id)
            payment = self.db.execute(
                select(Payment).where(Payment.id == payment_id, Payment.order_id == order.id)
            ).scalar_one_or_none()
            if payment is None:
                raise NotFoundError("Payment", payment_id)

            refundable = payment.amount - self._refunded_against(payment.id)
            if amount > refundable:
                logger.warning(
                    f"[payment.refund] Order {order.order_number}: refund {amount} exceeds "
                    f"refundable {refundable} on payment {payment_id}"
                )
                raise RefundExceedsPaymentError(payment_id, amount, refundable)

            self.db.add(
                Refund(
                    order_id=order.id,
                    payment_id=payment.id,
                    amount=amount,
                    reason=reason,
                    refunded_by=refunded_by,
                )
            )
            order.total_paid = max(order.total_paid - amount, ZERO)
            if not order.is_fully_paid:
                order.paid_at = None
            self.db.flush()
            return order

        order = run_in_transaction(self.db, operation, label="payment.refund")
        logger.info(
            f"[payment.refund] Order {order.order_number}: refunded {amount} of payment {payment_id}, "
            f"net paid {order.total_paid}"
        )
        self._notify(order, OrderEvent.REFUND_RECORDED)
        return order

    # ===== QUERIES =====

    def list_payments(self, order_id: int, store_id: Optional[int] = None) -> List[Payment]:
        order = self.orders.get_order(order_id, store_id)
        return list(
            self.db.execute(
                select(Payment).where(Payment.order_id == order.id).order_by(Payment.id)
            ).scalars().all()
        )

    def list_refunds(self, order_id: int, store_id: Optional[int] = None) -> List[Refund]:
        order = self.orders.get_order(order_id, store_id)
        return list(
            self.db.execute(
                select(Refund).where(Refund.order_id == order.id).order_by(Refund.id)
            ).scalars().all()
        )

    def get_payment_summary(self, order_id: int, store_id: Optional[int] = None) -> PaymentSummary:
        order = self.orders.get_order(order_id, store_id)
        gross = sum_money(p.amount for p in self.list_payments(order.id))
        refunded = sum_money(r.amount for r in self.list_refunds(order.id))
        net = gross - refunded
        return PaymentSummary(
            order_id=order.id,
            grand_total=order.grand_total,
            total_paid=gross,
            total_refunded=refunded,
            net_paid=net,
            remaining_balance=max(order.grand_total - net, ZERO),
            is_fully_paid=net >= order.grand_total - EPSILON,
            overpayment=max(net - order.grand_total, ZERO),
        )

    # ===== INTERNALS =====

    def _refunded_against(self, payment_id: int) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(Refund.amount), 0)).where(Refund.payment_id == payment_id)
        ).scalar_one()
        return to_money(total)

    def _notify(self, order: Order, event: OrderEvent) -> None:
        try:
            self.notifier.notify(order.store_id, event, order_payload(order))
        except Exception as e:
            logger.warning(f"[notify] {event.value} for order {order.id} not sent: {e}")
