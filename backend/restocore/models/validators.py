"""Model-level validation utilities for data integrity.

Reusable validators that enforce money rules at the ORM level, so invalid
amounts never reach the database regardless of which service writes them.
"""

from decimal import Decimal


def non_negative(key: str, value):
    """Validate that a numeric value is >= 0."""
    if value is not None:
        v = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if v < 0:
            raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def positive(key: str, value):
    """Validate that a numeric value is > 0."""
    if value is not None:
        v = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if v <= 0:
            raise ValueError(f"{key} must be positive, got {value}")
    return value


def fraction(key: str, value):
    """Validate that a rate is a fraction between 0 and 1 inclusive."""
    if value is not None:
        v = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if v < 0 or v > 1:
            raise ValueError(f"{key} must be between 0 and 1, got {value}")
    return value
