"""Discount authorization policy.

Pure functions, no database access. A discount's effective percentage of the
subtotal decides its tier, and each tier names the lowest role allowed to
apply it:

    percentage < 10          -> cashier
    10 <= percentage <= 50   -> admin
    percentage > 50          -> owner

Removing a discount always requires admin, whatever the tier it was applied at.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from restocore.core.exceptions import InsufficientRoleError, InvalidDiscountError
from restocore.core.money import HUNDRED, ZERO, Numeric, percent_of, quantize, to_decimal, to_money
from restocore.core.rbac import StaffRole, role_at_least
from restocore.models.order import DiscountType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscountTier:
    """Inclusive-exclusive band of percentages and the minimum role for it."""

    name: str
    lower: Decimal
    upper: Optional[Decimal]
    upper_inclusive: bool
    minimum_role: StaffRole

    def contains(self, percentage: Decimal) -> bool:
        if percentage < self.lower:
            return False
        if self.upper is None:
            return True
        if self.upper_inclusive:
            return percentage <= self.upper
        return percentage < self.upper


# Ordered lowest to highest; the first tier that contains the percentage wins.
DISCOUNT_TIERS = (
    DiscountTier("small", Decimal("0"), Decimal("10"), False, StaffRole.CASHIER),
    DiscountTier("medium", Decimal("10"), Decimal("50"), True, StaffRole.ADMIN),
    DiscountTier("large", Decimal("50"), None, False, StaffRole.OWNER),
)

REMOVAL_MINIMUM_ROLE = StaffRole.ADMIN

# Roles that carry discount rights at all
DISCOUNT_ROLES = frozenset({StaffRole.OWNER, StaffRole.ADMIN, StaffRole.CASHIER})


@dataclass(frozen=True)
class Discount:
    """An authorized discount, ready to be written onto an order."""

    kind: DiscountType
    value: Decimal
    amount: Decimal
    percentage: Decimal
    applied_by_role: StaffRole


def effective_percentage(kind: DiscountType, value: Decimal, subtotal: Decimal) -> Decimal:
    if kind == DiscountType.PERCENTAGE:
        return value
    if subtotal <= ZERO:
        raise InvalidDiscountError(
            "Fixed amount discount requires a positive subtotal",
            kind=kind,
            value=value,
            subtotal=subtotal,
        )
    return value / subtotal * HUNDRED


def tier_for(percentage: Decimal) -> DiscountTier:
    for tier in DISCOUNT_TIERS:
        if tier.contains(percentage):
            return tier
    # Negative percentages are rejected before lookup
    raise InvalidDiscountError(f"No discount tier for {percentage}%", percentage=percentage)


def discount_amount(kind: DiscountType, value: Numeric, subtotal: Numeric) -> Decimal:
    """Currency amount a discount takes off ``subtotal``."""
    value = to_decimal(value)
    if kind == DiscountType.PERCENTAGE:
        return percent_of(subtotal, value)
    return to_money(value)


def validate_discount(kind: DiscountType, value: Numeric, subtotal: Numeric) -> Decimal:
    """Check bounds and return the effective percentage."""
    value = to_decimal(value)
    subtotal = to_money(subtotal)

    if value < ZERO:
        raise InvalidDiscountError("Discount value cannot be negative", kind=kind, value=value)
    # The authorized value is stored as is, at two decimal places
    if value != quantize(value):
        raise InvalidDiscountError(
            f"Discount value has more than two decimal places: {value}", kind=kind, value=value
        )

    if kind == DiscountType.PERCENTAGE:
        if value >= HUNDRED:
            raise InvalidDiscountError(
                "Percentage discount must be below 100%", kind=kind, value=value
            )
    elif kind == DiscountType.FIXED_AMOUNT:
        if value > subtotal:
            raise InvalidDiscountError(
                f"Fixed discount {value} exceeds subtotal {subtotal}",
                kind=kind,
                value=value,
                subtotal=subtotal,
            )
    else:
        raise InvalidDiscountError(f"Unknown discount type: {kind}", kind=kind)

    return effective_percentage(kind, value, subtotal)


def authorize_discount(
    kind: DiscountType,
    value: Numeric,
    subtotal: Numeric,
    role: StaffRole,
) -> Discount:
    """Validate a discount and check ``role`` may apply it.

    Raises:
        InvalidDiscountError: value out of bounds for its kind or subtotal.
        InsufficientRoleError: role below the tier's minimum.
    """
    kind = DiscountType(kind)
    percentage = validate_discount(kind, value, subtotal)
    tier = tier_for(percentage)

    if role not in DISCOUNT_ROLES or not role_at_least(role, tier.minimum_role):
        logger.warning(
            f"[discount] {role.value} refused {kind.value} discount of {value} "
            f"({percentage:.2f}%), tier {tier.name} requires {tier.minimum_role.value}"
        )
        raise InsufficientRoleError(
            action=f"apply a {percentage:.2f}% discount",
            actor_role=role,
            required_role=tier.minimum_role,
            percentage=percentage,
        )

    return Discount(
        kind=kind,
        value=to_money(value),
        amount=discount_amount(kind, value, subtotal),
        percentage=percentage,
        applied_by_role=role,
    )


def authorize_discount_removal(role: StaffRole) -> None:
    """Removal needs admin or owner regardless of the discount's tier."""
    if role not in DISCOUNT_ROLES or not role_at_least(role, REMOVAL_MINIMUM_ROLE):
        raise InsufficientRoleError(
            action="remove a discount",
            actor_role=role,
            required_role=REMOVAL_MINIMUM_ROLE,
        )
