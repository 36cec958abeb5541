"""Bill Split Service - divide one order's total across diners.

Splits are not persisted. A split is a list of shares; each share is paid
through the payment ledger as an ordinary payment tagged with the split
method and share id, which is how a stateless caller rebuilds which shares
are already paid.

EQUAL: the money utility's equal split, remainder on the last share.
CUSTOM: staff-entered amounts; paying is blocked until they balance.
BY_ITEM: not supported.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from restocore.core.exceptions import (
    InvalidAmountError,
    InvalidDinerCountError,
    NotFoundError,
    ShareAlreadyPaidError,
    SplitMismatchError,
    UnbalancedSplitError,
    UnsupportedSplitMethodError,
)
from restocore.core.money import ZERO, Numeric, equal_split, money_equal, sum_money, to_money
from restocore.models.payment import Payment, PaymentMethod, SplitMethod
from restocore.services.payment_ledger_service import PaymentLedgerService, PaymentResult

logger = logging.getLogger(__name__)

MIN_DINERS = 2
MAX_DINERS = 20


@dataclass
class SplitShare:
    share_id: str
    amount: Decimal
    paid: bool = False
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[int] = None


@dataclass(frozen=True)
class BalanceResult:
    """How a set of share amounts compares to the order total."""

    total: Decimal
    grand_total: Decimal
    remaining: Decimal
    excess: Decimal
    is_balanced: bool
    is_overpaid: bool
    is_underpaid: bool


def share_ids(count: int) -> List[str]:
    return [f"share-{i}" for i in range(1, count + 1)]


def compute_equal_split(grand_total: Numeric, diner_count: int) -> List[SplitShare]:
    """
    Split ``grand_total`` evenly across 2 to 20 diners.

    Examples:
        >>> [s.amount for s in compute_equal_split("10.00", 3)]
        [Decimal('3.33'), Decimal('3.33'), Decimal('3.34')]
    """
    if isinstance(diner_count, bool) or not isinstance(diner_count, int) or not (
        MIN_DINERS <= diner_count <= MAX_DINERS
    ):
        raise InvalidDinerCountError(
            f"Diner count must be between {MIN_DINERS} and {MAX_DINERS}, got {diner_count}",
            diner_count=diner_count,
        )
    amounts = equal_split(grand_total, diner_count)
    return [SplitShare(share_id=sid, amount=amt) for sid, amt in zip(share_ids(diner_count), amounts)]


def validate_custom_split(amounts: Iterable[Numeric], grand_total: Numeric) -> BalanceResult:
    """Compare staff-entered share amounts with the order total (one cent tolerance)."""
    parsed = [to_money(a) for a in amounts]
    for amount in parsed:
        if amount <= ZERO:
            raise InvalidAmountError(f"Share amount must be greater than zero, got {amount}", amount=amount)
    total = sum_money(parsed)
    grand_total = to_money(grand_total)
    balanced = money_equal(total, grand_total)
    return BalanceResult(
        total=total,
        grand_total=grand_total,
        remaining=max(grand_total - total, ZERO),
        excess=max(total - grand_total, ZERO),
        is_balanced=balanced,
        is_overpaid=total > grand_total and not balanced,
        is_underpaid=total < grand_total and not balanced,
    )


@dataclass
class BillSplit:
    """An in-memory split of one order's total."""

    method: SplitMethod
    grand_total: Decimal
    shares: List[SplitShare] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        method: SplitMethod,
        grand_total: Numeric,
        diner_count: Optional[int] = None,
        amounts: Optional[Sequence[Numeric]] = None,
    ) -> "BillSplit":
        method = SplitMethod(method)
        if method == SplitMethod.EQUAL:
            return cls.equal(grand_total, diner_count)
        if method == SplitMethod.CUSTOM:
            return cls.custom(grand_total, amounts or [])
        raise UnsupportedSplitMethodError(
            f"Split method {method.value} is not supported", method=method
        )

    @classmethod
    def equal(cls, grand_total: Numeric, diner_count: Optional[int]) -> "BillSplit":
        return cls(
            method=SplitMethod.EQUAL,
            grand_total=to_money(grand_total),
            shares=compute_equal_split(grand_total, diner_count),
        )

    @classmethod
    def custom(cls, grand_total: Numeric, amounts: Sequence[Numeric]) -> "BillSplit":
        if not amounts:
            raise InvalidAmountError("Custom split requires at least one share amount")
        ids = share_ids(len(amounts))
        return cls(
            method=SplitMethod.CUSTOM,
            grand_total=to_money(grand_total),
            shares=[SplitShare(share_id=sid, amount=to_money(a)) for sid, a in zip(ids, amounts)],
        )

    def balance(self) -> BalanceResult:
        return validate_custom_split([s.amount for s in self.shares], self.grand_total)

    @property
    def is_balanced(self) -> bool:
        return self.balance().is_balanced

    @property
    def is_complete(self) -> bool:
        """Every share paid. Never inferred from the order's total paid."""
        return bool(self.shares) and all(s.paid for s in self.shares)

    @property
    def paid_total(self) -> Decimal:
        return sum_money(s.amount for s in self.shares if s.paid)

    @property
    def unpaid_shares(self) -> List[SplitShare]:
        return [s for s in self.shares if not s.paid]

    def get_share(self, share_id: str) -> SplitShare:
        for share in self.shares:
            if share.share_id == share_id:
                return share
        raise NotFoundError("Split share", share_id)

    def mark_paid(self, share_id: str, payment_method: PaymentMethod, payment_id: Optional[int]) -> SplitShare:
        share = self.get_share(share_id)
        if share.paid:
            raise ShareAlreadyPaidError(
                f"Share {share_id} has already been paid", share_id=share_id, payment_id=share.payment_id
            )
        share.paid = True
        share.payment_method = payment_method
        share.payment_id = payment_id
        return share


class BillSplitService:
    """Pays split shares through the payment ledger."""

    def __init__(self, db: Session, ledger: Optional[PaymentLedgerService] = None):
        self.db = db
        self.ledger = ledger or PaymentLedgerService(db)

    def restore_paid_shares(self, order_id: int, split: BillSplit) -> BillSplit:
        """Mark shares paid from the ledger's payments tagged with their share ids.

        A share counts as paid only when the money kept against it (payments
        net of refunds) equals its amount. A fully refunded share is unpaid
        again.

        Raises:
            SplitMismatchError: money is kept against a share that is missing
                from ``split`` or whose amount differs from what was paid.
        """
        payments = self.db.execute(
            select(Payment)
            .where(
                Payment.order_id == order_id,
                Payment.split_method == split.method,
                Payment.split_share_id.is_not(None),
            )
            .order_by(Payment.id)
        ).scalars().all()

        kept: Dict[str, Decimal] = {}
        latest: Dict[str, Payment] = {}
        for payment in payments:
            net = payment.amount - sum_money(r.amount for r in payment.refunds)
            if net <= ZERO:
                continue
            kept[payment.split_share_id] = kept.get(payment.split_share_id, ZERO) + net
            latest[payment.split_share_id] = payment

        shares = {s.share_id: s for s in split.shares}
        for share_id, paid_amount in kept.items():
            share = shares.get(share_id)
            if share is None or paid_amount != share.amount:
                logger.warning(
                    f"[split.restore] Order {order_id}: {share_id} has {paid_amount} paid, "
                    f"split asks {share.amount if share else 'nothing'}"
                )
                raise SplitMismatchError(share_id, share.amount if share else None, paid_amount)
            if not share.paid:
                share.paid = True
                share.payment_method = latest[share_id].method
                share.payment_id = latest[share_id].id
        return split

    def pay_share(
        self,
        order_id: int,
        split: BillSplit,
        share_id: str,
        method: PaymentMethod,
        amount_tendered: Optional[Numeric] = None,
        transaction_id: Optional[str] = None,
        recorded_by: Optional[str] = None,
        store_id: Optional[int] = None,
    ) -> PaymentResult:
        """Record the share's amount as a payment and mark the share paid.

        Raises:
            UnbalancedSplitError: the shares do not add up to the split total.
            ShareAlreadyPaidError: the share was paid before.
        """
        balance = split.balance()
        if not balance.is_balanced:
            logger.warning(
                f"[split.pay] Order {order_id}: shares total {balance.total}, "
                f"order total {balance.grand_total}; payment blocked"
            )
            raise UnbalancedSplitError(balance.total, balance.grand_total)

        share = split.get_share(share_id)
        if share.paid:
            raise ShareAlreadyPaidError(
                f"Share {share_id} has already been paid", share_id=share_id, payment_id=share.payment_id
            )

        result = self.ledger.record_payment(
            order_id,
            share.amount,
            method,
            amount_tendered=amount_tendered,
            transaction_id=transaction_id,
            recorded_by=recorded_by,
            store_id=store_id,
            split_method=split.method,
            split_share_id=share.share_id,
        )
        split.mark_paid(share_id, PaymentMethod(method), result.payment.id)
        logger.info(
            f"[split.pay] Order {order_id}: {share_id} paid {share.amount}, "
            f"{len(split.unpaid_shares)} shares outstanding"
        )
        return result
