"""Payment ledger models. Rows are append-only; nothing here is updated or deleted."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from restocore.db.base import Base, Money
from restocore.models.validators import non_negative, positive


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    MOBILE_PAYMENT = "mobile_payment"
    OTHER = "other"


class SplitMethod(str, Enum):
    EQUAL = "equal"
    CUSTOM = "custom"
    BY_ITEM = "by_item"


class Payment(Base):
    """Money received against an order."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(SQLEnum(PaymentMethod), nullable=False)
    # Cash only; change is derived as amount_tendered - amount
    amount_tendered: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    split_method: Mapped[Optional[SplitMethod]] = mapped_column(SQLEnum(SplitMethod), nullable=True)
    split_share_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    recorded_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="payments")
    refunds: Mapped[list["Refund"]] = relationship(
        "Refund", back_populates="payment", order_by="Refund.id"
    )

    @validates("amount")
    def _validate_amount(self, key, value):
        return positive(key, value)

    @validates("amount_tendered")
    def _validate_tendered(self, key, value):
        return non_negative(key, value)

    @property
    def change(self) -> Optional[Decimal]:
        if self.amount_tendered is None:
            return None
        return self.amount_tendered - self.amount


class Refund(Base):
    """Money returned against a specific payment. The payment row itself is never touched."""

    __tablename__ = "refunds"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refunded_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="refunds")
    payment: Mapped["Payment"] = relationship("Payment", back_populates="refunds")

    @validates("amount")
    def _validate_amount(self, key, value):
        return positive(key, value)
