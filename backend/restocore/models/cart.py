"""Cart models: the pre-checkout, per-session item collection."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from restocore.db.base import Base, Money, TimestampMixin
from restocore.models.validators import non_negative, positive


class CartStatus(str, Enum):
    """Lifecycle of a cart. CHECKED_OUT is terminal."""

    ACTIVE = "active"
    CHECKED_OUT = "checked_out"


class Cart(Base, TimestampMixin):
    """The cart owned by one table/counter session."""

    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    status: Mapped[CartStatus] = mapped_column(
        SQLEnum(CartStatus), default=CartStatus.ACTIVE, nullable=False
    )
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    checked_out_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Back-reference only; orders.cart_id holds the foreign key.
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def is_locked(self) -> bool:
        return self.status != CartStatus.ACTIVE


class CartItem(Base):
    """A line in a cart with its price snapshot."""

    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    cart_id: Mapped[int] = mapped_column(
        ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(ForeignKey("menu_items.id"), nullable=False)
    menu_item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    line_subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)

    cart: Mapped["Cart"] = relationship("Cart", back_populates="items")
    options: Mapped[list["CartItemOption"]] = relationship(
        "CartItemOption",
        back_populates="cart_item",
        cascade="all, delete-orphan",
        order_by="CartItemOption.option_id",
    )

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("base_price", "line_subtotal")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @property
    def option_ids(self) -> tuple[int, ...]:
        return tuple(sorted(o.option_id for o in self.options))


class CartItemOption(Base):
    """A customization chosen for a cart line, with its price snapshot."""

    __tablename__ = "cart_item_options"

    id: Mapped[int] = mapped_column(primary_key=True)
    cart_item_id: Mapped[int] = mapped_column(
        ForeignKey("cart_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    option_id: Mapped[int] = mapped_column(ForeignKey("customization_options.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    additional_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)

    cart_item: Mapped["CartItem"] = relationship("CartItem", back_populates="options")
