"""Payment ledger API routes: payments, refunds and balance for an order."""

from typing import List

from fastapi import APIRouter, Request

from restocore.core.rate_limit import limiter
from restocore.core.rbac import RequireAdmin, RequireCashier
from restocore.db.session import DbSession
from restocore.schemas.order import OrderResponse
from restocore.schemas.payment import (
    PaymentCreate,
    PaymentRecorded,
    PaymentResponse,
    PaymentSummaryResponse,
    RefundCreate,
    RefundResponse,
)
from restocore.services.payment_ledger_service import PaymentLedgerService, PaymentResult

router = APIRouter()


def payment_recorded(result: PaymentResult) -> PaymentRecorded:
    order = result.order
    return PaymentRecorded(
        payment=PaymentResponse.model_validate(result.payment),
        change=result.change,
        order_status=order.status,
        grand_total=order.grand_total,
        total_paid=order.total_paid,
        remaining_balance=order.remaining_balance,
        is_fully_paid=order.is_fully_paid,
    )


@router.post("/{order_id}/payments", response_model=PaymentRecorded, status_code=201)
@limiter.limit("30/minute")
def record_payment(
    request: Request,
    order_id: int,
    body: PaymentCreate,
    db: DbSession,
    current_user: RequireCashier,
):
    """Record a payment. Cash payments may include the amount tendered to get change back."""
    result = PaymentLedgerService(db).record_payment(
        order_id,
        body.amount,
        body.method,
        amount_tendered=body.amount_tendered,
        transaction_id=body.transaction_id,
        notes=body.notes,
        recorded_by=current_user.user_id,
        store_id=current_user.store_id,
    )
    return payment_recorded(result)


@router.get("/{order_id}/payments", response_model=List[PaymentResponse])
def list_payments(order_id: int, db: DbSession, current_user: RequireCashier):
    return PaymentLedgerService(db).list_payments(order_id, store_id=current_user.store_id)


@router.post("/{order_id}/refunds", response_model=OrderResponse, status_code=201)
@limiter.limit("10/minute")
def record_refund(
    request: Request,
    order_id: int,
    body: RefundCreate,
    db: DbSession,
    current_user: RequireAdmin,
):
    """Refund part or all of one payment (admin or owner)."""
    return PaymentLedgerService(db).record_refund(
        order_id,
        body.payment_id,
        body.amount,
        reason=body.reason,
        refunded_by=current_user.user_id,
        store_id=current_user.store_id,
    )


@router.get("/{order_id}/refunds", response_model=List[RefundResponse])
def list_refunds(order_id: int, db: DbSession, current_user: RequireCashier):
    return PaymentLedgerService(db).list_refunds(order_id, store_id=current_user.store_id)


@router.get("/{order_id}/payment-summary", response_model=PaymentSummaryResponse)
def payment_summary(order_id: int, db: DbSession, current_user: RequireCashier):
    return PaymentLedgerService(db).get_payment_summary(order_id, store_id=current_user.store_id)
