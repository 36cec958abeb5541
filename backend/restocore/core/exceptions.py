"""Domain error taxonomy for the order and payment engine.

Every error carries a stable ``code``, a human readable message and the
offending values in ``context`` so callers can render a precise message.
None of these are retried automatically except ``ConcurrencyConflictError``.
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for errors raised by the core services."""

    code = "domain_error"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "error": self.code,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value"):  # enums
        return value.value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist in the caller's store."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------

class InvalidAmountError(DomainError):
    """Non-positive or malformed monetary input."""

    code = "invalid_amount"
    status_code = 422


class RefundExceedsPaymentError(InvalidAmountError):
    """Refund larger than what is still refundable on the original payment."""

    code = "refund_exceeds_payment"

    def __init__(self, payment_id: int, requested: Decimal, refundable: Decimal):
        self.payment_id = payment_id
        self.requested = requested
        self.refundable = refundable
        super().__init__(
            f"Refund of {requested} exceeds refundable amount {refundable} for payment {payment_id}",
            payment_id=payment_id,
            requested=requested,
            refundable=refundable,
        )


# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------

class InvalidDiscountError(DomainError):
    """Discount value out of bounds for its subtotal or kind."""

    code = "invalid_discount"
    status_code = 422


class InsufficientRoleError(DomainError):
    """Actor's role is below the tier required for the discount action."""

    code = "insufficient_role"
    status_code = 403

    def __init__(self, action: str, actor_role: Any, required_role: Any, percentage: Optional[Decimal] = None):
        self.action = action
        self.actor_role = actor_role
        self.required_role = required_role
        self.percentage = percentage
        role_name = getattr(required_role, "value", required_role)
        super().__init__(
            f"Role {getattr(actor_role, 'value', actor_role)} cannot {action}; requires {role_name} or higher",
            action=action,
            actor_role=actor_role,
            required_role=required_role,
            percentage=percentage,
        )


class DiscountInvalidatedError(DomainError):
    """An applied discount no longer holds after the order changed."""

    code = "discount_invalidated"
    status_code = 409


# ---------------------------------------------------------------------------
# Cart / order
# ---------------------------------------------------------------------------

class CartLockedError(DomainError):
    """Cart mutated after checkout."""

    code = "cart_locked"
    status_code = 409


class CartAlreadyCheckedOutError(DomainError):
    """Cart checked out twice."""

    code = "cart_already_checked_out"
    status_code = 409


class InvalidQuantityError(DomainError):
    code = "invalid_quantity"
    status_code = 422


class InvalidCustomizationError(DomainError):
    """Customization option does not belong to the menu item."""

    code = "invalid_customization"
    status_code = 422


class EmptyCartError(DomainError):
    code = "empty_cart"
    status_code = 422


class MenuItemUnavailableError(DomainError):
    code = "menu_item_unavailable"
    status_code = 422


class OrderNotModifiableError(DomainError):
    """Change attempted on an order whose status does not allow it."""

    code = "order_not_modifiable"
    status_code = 409


class InvalidStatusTransitionError(DomainError):
    code = "invalid_status_transition"
    status_code = 409

    def __init__(self, current: Any, requested: Any):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid status transition from {getattr(current, 'value', current)} "
            f"to {getattr(requested, 'value', requested)}",
            current=current,
            requested=requested,
        )


class PaymentIncompleteError(DomainError):
    """Order cannot complete while a balance remains."""

    code = "payment_incomplete"
    status_code = 409


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class OverpaymentError(DomainError):
    code = "overpayment"
    status_code = 422

    def __init__(self, amount: Decimal, remaining: Decimal):
        self.amount = amount
        self.remaining = remaining
        super().__init__(
            f"Payment of {amount} exceeds remaining balance {remaining}",
            amount=amount,
            remaining=remaining,
        )


class InsufficientTenderError(DomainError):
    code = "insufficient_tender"
    status_code = 422

    def __init__(self, amount: Decimal, tendered: Decimal):
        self.amount = amount
        self.tendered = tendered
        super().__init__(
            f"Insufficient amount tendered. Required: {amount}, tendered: {tendered}",
            amount=amount,
            tendered=tendered,
        )


# ---------------------------------------------------------------------------
# Bill split
# ---------------------------------------------------------------------------

class UnbalancedSplitError(DomainError):
    code = "unbalanced_split"
    status_code = 422

    def __init__(self, total: Decimal, grand_total: Decimal):
        self.total = total
        self.grand_total = grand_total
        super().__init__(
            f"Split shares sum to {total} but order total is {grand_total}",
            total=total,
            grand_total=grand_total,
        )


class UnsupportedSplitMethodError(DomainError):
    code = "unsupported_split_method"
    status_code = 422


class InvalidDinerCountError(DomainError):
    code = "invalid_diner_count"
    status_code = 422


class ShareAlreadyPaidError(DomainError):
    code = "share_already_paid"
    status_code = 409


class SplitMismatchError(DomainError):
    """A split definition disagrees with what its shares were already paid."""

    code = "split_mismatch"
    status_code = 409

    def __init__(self, share_id: str, share_amount: Optional[Decimal], paid_amount: Decimal):
        self.share_id = share_id
        self.share_amount = share_amount
        self.paid_amount = paid_amount
        described = "is not in this split" if share_amount is None else f"is {share_amount}"
        super().__init__(
            f"Share {share_id} {described} but {paid_amount} was already paid against it",
            share_id=share_id,
            share_amount=share_amount,
            paid_amount=paid_amount,
        )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class ConcurrencyConflictError(DomainError):
    """Another writer changed the order first. Safe to retry from a fresh read."""

    code = "concurrency_conflict"
    status_code = 409
