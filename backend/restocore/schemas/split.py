"""Bill split schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from restocore.models.payment import PaymentMethod, SplitMethod


class EqualSplitRequest(BaseModel):
    diner_count: int


class CustomSplitRequest(BaseModel):
    amounts: List[Decimal] = Field(..., min_length=1)


class SplitShareResponse(BaseModel):
    share_id: str
    amount: Decimal
    paid: bool = False
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[int] = None

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    total: Decimal
    grand_total: Decimal
    remaining: Decimal
    excess: Decimal
    is_balanced: bool
    is_overpaid: bool
    is_underpaid: bool

    model_config = {"from_attributes": True}


class SplitResponse(BaseModel):
    order_id: int
    method: SplitMethod
    grand_total: Decimal
    shares: List[SplitShareResponse]
    balance: BalanceResponse
    is_complete: bool


class SplitPaymentRequest(BaseModel):
    """Pay one share. The split definition travels with the request."""

    method: SplitMethod
    diner_count: Optional[int] = None
    amounts: Optional[List[Decimal]] = None
    share_id: str
    payment_method: PaymentMethod
    amount_tendered: Optional[Decimal] = None
    transaction_id: Optional[str] = Field(default=None, max_length=100)
