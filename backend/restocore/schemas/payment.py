"""Payment and refund schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from restocore.models.order import OrderStatus
from restocore.models.payment import PaymentMethod, SplitMethod


class PaymentCreate(BaseModel):
    amount: Decimal
    method: PaymentMethod
    amount_tendered: Optional[Decimal] = None
    transaction_id: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    amount: Decimal
    method: PaymentMethod
    amount_tendered: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    split_method: Optional[SplitMethod] = None
    split_share_id: Optional[str] = None
    recorded_by: Optional[str] = None
    recorded_at: datetime

    model_config = {"from_attributes": True}


class PaymentRecorded(BaseModel):
    """Response to a recorded payment: the ledger row plus the order's new balance."""

    payment: PaymentResponse
    change: Optional[Decimal] = None
    order_status: OrderStatus
    grand_total: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    is_fully_paid: bool


class RefundCreate(BaseModel):
    payment_id: int
    amount: Decimal
    reason: Optional[str] = Field(default=None, max_length=500)


class RefundResponse(BaseModel):
    id: int
    order_id: int
    payment_id: int
    amount: Decimal
    reason: Optional[str] = None
    refunded_by: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentSummaryResponse(BaseModel):
    order_id: int
    grand_total: Decimal
    total_paid: Decimal
    total_refunded: Decimal
    net_paid: Decimal
    remaining_balance: Decimal
    is_fully_paid: bool
    overpayment: Decimal

    model_config = {"from_attributes": True}
