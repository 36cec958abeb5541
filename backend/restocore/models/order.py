"""Order models: the finalized purchase created at checkout."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from restocore.core.money import EPSILON, ZERO
from restocore.db.base import Base, Money, Rate, TimestampMixin, VersionMixin
from restocore.models.validators import fraction, non_negative, positive


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


# Statuses in which line items may still be added or the order cancelled
OPEN_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING)
# Statuses that no longer accept discount changes
CLOSED_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)
# Statuses the kitchen display shows by default
KITCHEN_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY)


class Order(Base, TimestampMixin, VersionMixin):
    """A customer order with its money totals and payment state.

    ``grand_total = subtotal - discount_amount + vat_amount + service_charge_amount``.
    ``total_paid`` is net of refunds. Orders are never hard deleted.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("store_id", "order_number", name="uq_orders_store_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    store_id: Mapped[int] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    cart_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("carts.id", ondelete="SET NULL"), nullable=True
    )
    table_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    order_type: Mapped[OrderType] = mapped_column(
        SQLEnum(OrderType), default=OrderType.DINE_IN, nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True
    )

    # Totals
    subtotal: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)
    vat_rate_snapshot: Mapped[Decimal] = mapped_column(Rate, default=Decimal("0"), nullable=False)
    service_charge_rate_snapshot: Mapped[Decimal] = mapped_column(
        Rate, default=Decimal("0"), nullable=False
    )
    vat_amount: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)
    service_charge_amount: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)

    # Discount
    discount_type: Mapped[Optional[DiscountType]] = mapped_column(SQLEnum(DiscountType), nullable=True)
    discount_value: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)
    discount_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    discount_applied_by_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discount_applied_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    discount_applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Payment state
    total_paid: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    payments: Mapped[list["Payment"]] = relationship(
        "Payment", back_populates="order", order_by="Payment.id"
    )
    refunds: Mapped[list["Refund"]] = relationship(
        "Refund", back_populates="order", order_by="Refund.id"
    )

    @validates(
        "subtotal",
        "vat_amount",
        "service_charge_amount",
        "grand_total",
        "discount_amount",
        "total_paid",
    )
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("vat_rate_snapshot", "service_charge_rate_snapshot")
    def _validate_rates(self, key, value):
        return fraction(key, value)

    @property
    def has_discount(self) -> bool:
        return self.discount_type is not None

    @property
    def remaining_balance(self) -> Decimal:
        return max(self.grand_total - self.total_paid, ZERO)

    @property
    def overpayment(self) -> Decimal:
        """Amount paid above the grand total (only ever within the one-cent tolerance)."""
        return max(self.total_paid - self.grand_total, ZERO)

    @property
    def is_fully_paid(self) -> bool:
        return self.total_paid >= self.grand_total - EPSILON


class OrderItem(Base):
    """A line on an order; prices are copied from the cart or catalog."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(ForeignKey("menu_items.id"), nullable=False)
    menu_item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # base price plus customization prices
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    line_subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    options: Mapped[list["OrderItemOption"]] = relationship(
        "OrderItemOption", back_populates="order_item", cascade="all, delete-orphan"
    )

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("unit_price", "line_subtotal")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)


class OrderItemOption(Base):
    __tablename__ = "order_item_options"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_item_id: Mapped[int] = mapped_column(
        ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    option_id: Mapped[int] = mapped_column(ForeignKey("customization_options.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    additional_price: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)

    order_item: Mapped["OrderItem"] = relationship("OrderItem", back_populates="options")
