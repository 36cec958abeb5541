"""SQLAlchemy models."""

from restocore.models.store import Store, MenuItem, CustomizationOption
from restocore.models.cart import Cart, CartItem, CartItemOption, CartStatus
from restocore.models.order import (
    Order,
    OrderItem,
    OrderItemOption,
    OrderStatus,
    OrderType,
    DiscountType,
)
from restocore.models.payment import Payment, Refund, PaymentMethod, SplitMethod

__all__ = [
    "Store",
    "MenuItem",
    "CustomizationOption",
    "Cart",
    "CartItem",
    "CartItemOption",
    "CartStatus",
    "Order",
    "OrderItem",
    "OrderItemOption",
    "OrderStatus",
    "OrderType",
    "DiscountType",
    "Payment",
    "Refund",
    "PaymentMethod",
    "SplitMethod",
]
