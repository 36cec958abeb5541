"""Store (tenant) and the read-only menu catalog used for pricing."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from restocore.db.base import Base, Money, Rate, TimestampMixin
from restocore.models.validators import fraction, non_negative


class Store(Base, TimestampMixin):
    """A restaurant. Every cart, order and payment belongs to exactly one store."""

    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(Rate, default=Decimal("0"), nullable=False)
    service_charge_rate: Mapped[Decimal] = mapped_column(Rate, default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    menu_items: Mapped[list["MenuItem"]] = relationship("MenuItem", back_populates="store")

    @validates("vat_rate", "service_charge_rate")
    def _validate_rates(self, key, value):
        return fraction(key, value)


class MenuItem(Base, TimestampMixin):
    """A sellable item. Maintained by the menu service; only read here."""

    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    store_id: Mapped[int] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_out_of_stock: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    store: Mapped["Store"] = relationship("Store", back_populates="menu_items")
    options: Mapped[list["CustomizationOption"]] = relationship(
        "CustomizationOption", back_populates="menu_item", cascade="all, delete-orphan"
    )

    @validates("base_price")
    def _validate_price(self, key, value):
        return non_negative(key, value)

    @property
    def is_orderable(self) -> bool:
        return self.is_available and not self.is_out_of_stock and self.deleted_at is None


class CustomizationOption(Base):
    """A priced modifier for a menu item (size, extra topping, ...)."""

    __tablename__ = "customization_options"

    id: Mapped[int] = mapped_column(primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(
        ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    additional_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    menu_item: Mapped["MenuItem"] = relationship("MenuItem", back_populates="options")

    @validates("additional_price")
    def _validate_price(self, key, value):
        return non_negative(key, value)
