"""Bill split API routes.

Splits are not stored. Each request carries the split definition; shares
already paid are recognised from the order's payments tagged with their
share id.
"""

from fastapi import APIRouter, Request

from restocore.api.routes.payments import payment_recorded
from restocore.core.rate_limit import limiter
from restocore.core.rbac import RequireCashier
from restocore.db.session import DbSession
from restocore.schemas.payment import PaymentRecorded
from restocore.schemas.split import (
    BalanceResponse,
    CustomSplitRequest,
    EqualSplitRequest,
    SplitPaymentRequest,
    SplitResponse,
    SplitShareResponse,
)
from restocore.services.bill_split_service import BillSplit, BillSplitService
from restocore.services.order_service import OrderService

router = APIRouter()


def split_response(order_id: int, split: BillSplit) -> SplitResponse:
    return SplitResponse(
        order_id=order_id,
        method=split.method,
        grand_total=split.grand_total,
        shares=[SplitShareResponse.model_validate(s) for s in split.shares],
        balance=BalanceResponse.model_validate(split.balance()),
        is_complete=split.is_complete,
    )


@router.post("/{order_id}/split/equal", response_model=SplitResponse)
@limiter.limit("30/minute")
def split_equal(
    request: Request,
    order_id: int,
    body: EqualSplitRequest,
    db: DbSession,
    current_user: RequireCashier,
):
    """Split the order total evenly; any odd cents go on the last share."""
    order = OrderService(db).get_order(order_id, store_id=current_user.store_id)
    split = BillSplit.equal(order.grand_total, body.diner_count)
    BillSplitService(db).restore_paid_shares(order.id, split)
    return split_response(order.id, split)


@router.post("/{order_id}/split/custom", response_model=SplitResponse)
@limiter.limit("30/minute")
def split_custom(
    request: Request,
    order_id: int,
    body: CustomSplitRequest,
    db: DbSession,
    current_user: RequireCashier,
):
    """Check staff-entered share amounts against the order total."""
    order = OrderService(db).get_order(order_id, store_id=current_user.store_id)
    split = BillSplit.custom(order.grand_total, body.amounts)
    BillSplitService(db).restore_paid_shares(order.id, split)
    return split_response(order.id, split)


@router.post("/{order_id}/split/pay", response_model=PaymentRecorded, status_code=201)
@limiter.limit("30/minute")
def pay_split_share(
    request: Request,
    order_id: int,
    body: SplitPaymentRequest,
    db: DbSession,
    current_user: RequireCashier,
):
    """Pay one share of a balanced split."""
    order = OrderService(db).get_order(order_id, store_id=current_user.store_id)
    split = BillSplit.create(
        body.method,
        order.grand_total,
        diner_count=body.diner_count,
        amounts=body.amounts,
    )
    service = BillSplitService(db)
    service.restore_paid_shares(order.id, split)
    result = service.pay_share(
        order.id,
        split,
        body.share_id,
        body.payment_method,
        amount_tendered=body.amount_tendered,
        transaction_id=body.transaction_id,
        recorded_by=current_user.user_id,
        store_id=current_user.store_id,
    )
    return payment_recorded(result)
