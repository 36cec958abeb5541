"""Tests for the discount authorization policy."""

from decimal import Decimal

import pytest

from restocore.core.exceptions import InsufficientRoleError, InvalidDiscountError
from restocore.core.rbac import StaffRole
from restocore.models.order import DiscountType
from restocore.services.discount_policy import (
    authorize_discount,
    authorize_discount_removal,
    tier_for,
)

PCT = DiscountType.PERCENTAGE
FIXED = DiscountType.FIXED_AMOUNT


class TestTiers:
    """Tests for tier boundaries."""

    @pytest.mark.parametrize(
        "percentage,role",
        [
            ("0", StaffRole.CASHIER),
            ("9.99", StaffRole.CASHIER),
            ("10", StaffRole.ADMIN),
            ("50", StaffRole.ADMIN),
            ("50.01", StaffRole.OWNER),
            ("99", StaffRole.OWNER),
        ],
    )
    def test_minimum_role_per_percentage(self, percentage, role):
        assert tier_for(Decimal(percentage)).minimum_role == role


class TestAuthorizeDiscount:
    """Tests for applying discounts by role."""

    def test_cashier_small_percentage(self):
        discount = authorize_discount(PCT, "5", "100.00", StaffRole.CASHIER)
        assert discount.amount == Decimal("5.00")
        assert discount.applied_by_role == StaffRole.CASHIER

    def test_cashier_sixty_percent_refused(self):
        with pytest.raises(InsufficientRoleError) as exc_info:
            authorize_discount(PCT, "60", "100.00", StaffRole.CASHIER)
        assert exc_info.value.required_role == StaffRole.OWNER
        assert exc_info.value.status_code == 403

    def test_owner_sixty_percent_allowed(self):
        discount = authorize_discount(PCT, "60", "100.00", StaffRole.OWNER)
        assert discount.amount == Decimal("60.00")
        assert discount.applied_by_role == StaffRole.OWNER

    def test_admin_between_ten_and_fifty(self):
        assert authorize_discount(PCT, "50", "80.00", StaffRole.ADMIN).amount == Decimal("40.00")
        with pytest.raises(InsufficientRoleError) as exc_info:
            authorize_discount(PCT, "10", "80.00", StaffRole.CASHIER)
        assert exc_info.value.required_role == StaffRole.ADMIN

    def test_admin_above_fifty_refused(self):
        with pytest.raises(InsufficientRoleError):
            authorize_discount(PCT, "51", "80.00", StaffRole.ADMIN)

    def test_fixed_amount_uses_effective_percentage(self):
        """15.00 off 100.00 is a 15% discount, so a cashier may not apply it."""
        with pytest.raises(InsufficientRoleError):
            authorize_discount(FIXED, "15.00", "100.00", StaffRole.CASHIER)
        discount = authorize_discount(FIXED, "9.00", "100.00", StaffRole.CASHIER)
        assert discount.amount == Decimal("9.00")
        assert discount.percentage == Decimal("9")

    @pytest.mark.parametrize("role", [StaffRole.SERVER, StaffRole.CHEF])
    def test_kitchen_and_floor_staff_have_no_discount_rights(self, role):
        with pytest.raises(InsufficientRoleError):
            authorize_discount(PCT, "1", "100.00", role)


class TestInvalidDiscounts:
    """Tests for bounds checks."""

    def test_fixed_amount_above_subtotal(self):
        with pytest.raises(InvalidDiscountError):
            authorize_discount(FIXED, "150.00", "100.00", StaffRole.OWNER)

    def test_percentage_of_one_hundred(self):
        with pytest.raises(InvalidDiscountError):
            authorize_discount(PCT, "100", "100.00", StaffRole.OWNER)

    def test_negative_value(self):
        with pytest.raises(InvalidDiscountError):
            authorize_discount(PCT, "-5", "100.00", StaffRole.OWNER)

    def test_fixed_amount_on_zero_subtotal(self):
        with pytest.raises(InvalidDiscountError):
            authorize_discount(FIXED, "0", "0.00", StaffRole.OWNER)

    def test_percentage_just_below_tier_boundary_rejected(self):
        """9.996% would be stored as 10.00%, which is the admin tier."""
        with pytest.raises(InvalidDiscountError):
            authorize_discount(PCT, "9.996", "100.00", StaffRole.CASHIER)

    def test_percentage_rounding_up_to_one_hundred_rejected(self):
        with pytest.raises(InvalidDiscountError):
            authorize_discount(PCT, "99.995", "100.00", StaffRole.OWNER)

    def test_fixed_amount_with_fractional_cents_rejected(self):
        with pytest.raises(InvalidDiscountError):
            authorize_discount(FIXED, "9.999", "100.00", StaffRole.OWNER)

    def test_stored_value_is_the_authorized_value(self):
        discount = authorize_discount(PCT, "9.99", "100.00", StaffRole.CASHIER)
        assert discount.value == Decimal("9.99")
        assert discount.percentage == Decimal("9.99")

    def test_bounds_checked_before_role(self):
        """An out-of-bounds discount is invalid whoever asks."""
        with pytest.raises(InvalidDiscountError):
            authorize_discount(FIXED, "150.00", "100.00", StaffRole.CASHIER)


class TestRemoval:
    """Removal needs admin whatever the tier."""

    def test_cashier_cannot_remove(self):
        with pytest.raises(InsufficientRoleError) as exc_info:
            authorize_discount_removal(StaffRole.CASHIER)
        assert exc_info.value.required_role == StaffRole.ADMIN

    @pytest.mark.parametrize("role", [StaffRole.ADMIN, StaffRole.OWNER])
    def test_admin_and_owner_can_remove(self, role):
        authorize_discount_removal(role)
