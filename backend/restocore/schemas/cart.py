"""Cart schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from restocore.models.cart import CartStatus


class CartItemAdd(BaseModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1)
    option_ids: List[int] = []
    notes: Optional[str] = Field(default=None, max_length=500)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class CartItemOptionResponse(BaseModel):
    option_id: int
    name: str
    additional_price: Decimal

    model_config = {"from_attributes": True}


class CartItemResponse(BaseModel):
    id: int
    menu_item_id: int
    menu_item_name: str
    base_price: Decimal
    quantity: int
    notes: Optional[str] = None
    line_subtotal: Decimal
    options: List[CartItemOptionResponse] = []

    model_config = {"from_attributes": True}


class CartResponse(BaseModel):
    """Cart response schema."""

    id: int
    store_id: int
    session_id: str
    status: CartStatus
    subtotal: Decimal
    checked_out_at: Optional[datetime] = None
    order_id: Optional[int] = None
    items: List[CartItemResponse] = []

    model_config = {"from_attributes": True}
