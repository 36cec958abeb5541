"""Order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from restocore.models.order import DiscountType, OrderStatus, OrderType


class OrderItemRequest(BaseModel):
    """One line for quick checkout or for adding to an existing order."""

    menu_item_id: int
    quantity: int = Field(default=1, ge=1)
    option_ids: List[int] = []
    notes: Optional[str] = Field(default=None, max_length=500)


class CheckoutRequest(BaseModel):
    cart_id: int
    order_type: OrderType = OrderType.DINE_IN
    table_name: Optional[str] = Field(default=None, max_length=50)


class QuickCheckoutRequest(BaseModel):
    """Counter or phone sale without a cart."""

    items: List[OrderItemRequest] = Field(..., min_length=1)
    order_type: OrderType = OrderType.TAKEAWAY
    customer_name: Optional[str] = Field(default=None, max_length=200)
    table_name: Optional[str] = Field(default=None, max_length=50)


class AddItemsRequest(BaseModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ApplyDiscountRequest(BaseModel):
    discount_type: DiscountType
    value: Decimal
    reason: Optional[str] = Field(default=None, max_length=500)


class OrderItemOptionResponse(BaseModel):
    option_id: int
    name: str
    additional_price: Decimal

    model_config = {"from_attributes": True}


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: int
    menu_item_name: str
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    notes: Optional[str] = None
    options: List[OrderItemOptionResponse] = []

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    """Order response schema."""

    id: int
    order_number: str
    store_id: int
    session_id: Optional[str] = None
    cart_id: Optional[int] = None
    table_name: Optional[str] = None
    customer_name: Optional[str] = None
    order_type: OrderType
    status: OrderStatus
    items: List[OrderItemResponse] = []

    subtotal: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    discount_amount: Decimal
    discount_reason: Optional[str] = None
    discount_applied_by_role: Optional[str] = None
    discount_applied_by: Optional[str] = None
    discount_applied_at: Optional[datetime] = None
    vat_rate_snapshot: Decimal
    service_charge_rate_snapshot: Decimal
    vat_amount: Decimal
    service_charge_amount: Decimal
    grand_total: Decimal

    total_paid: Decimal
    remaining_balance: Decimal
    is_fully_paid: bool
    paid_at: Optional[datetime] = None

    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderSummary(BaseModel):
    """List view of an order."""

    id: int
    order_number: str
    table_name: Optional[str] = None
    order_type: OrderType
    status: OrderStatus
    grand_total: Decimal
    total_paid: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}
