"""
Monetary precision helpers.

All currency amounts are ``Decimal`` values with two fractional digits.
Binary floating point is never used for storage or comparison: floats are
converted through ``str`` first, and anything that cannot be parsed is
rejected with ``InvalidAmountError``.

Comparisons that have to absorb division rounding use ``EPSILON`` (one
cent). Equal splits work in integer cents and hand the whole remainder to
the last share so the shares always add back up to the total.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Union

from restocore.core.exceptions import InvalidAmountError

Numeric = Union[Decimal, str, int, float]

CENT = Decimal("0.01")
EPSILON = CENT
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: Numeric) -> Decimal:
    """Parse ``value`` into a finite ``Decimal`` without rounding."""
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(f"Malformed monetary amount: {value!r}", value=value)
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Malformed monetary amount: {value!r}", value=str(value))
    if not amount.is_finite():
        raise InvalidAmountError(f"Malformed monetary amount: {value!r}", value=str(value))
    return amount


def quantize(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Numeric) -> Decimal:
    """Parse and round a value to a two-digit currency amount."""
    return quantize(to_decimal(value))


def to_cents(amount: Numeric) -> int:
    """Convert a currency amount to integer minor units."""
    return int(to_money(amount) * 100)


def from_cents(cents: int) -> Decimal:
    return quantize(Decimal(cents) / 100)


def sum_money(amounts: Iterable[Numeric]) -> Decimal:
    total = ZERO
    for amount in amounts:
        total += to_decimal(amount)
    return quantize(total)


def money_equal(a: Numeric, b: Numeric) -> bool:
    """True when ``a`` and ``b`` differ by at most one cent."""
    return abs(to_decimal(a) - to_decimal(b)) <= EPSILON


def exceeds(a: Numeric, b: Numeric) -> bool:
    """True when ``a`` is larger than ``b`` by more than one cent."""
    return to_decimal(a) - to_decimal(b) > EPSILON


def apply_rate(amount: Numeric, rate: Numeric) -> Decimal:
    """Multiply by a fractional rate (``0.07`` for 7%) and round to cents."""
    return quantize(to_decimal(amount) * to_decimal(rate))


def percent_of(amount: Numeric, percentage: Numeric) -> Decimal:
    """``percentage`` percent of ``amount``, rounded to cents."""
    return quantize(to_decimal(amount) * to_decimal(percentage) / HUNDRED)


def equal_split(total: Numeric, parts: int) -> List[Decimal]:
    """
    Split ``total`` into ``parts`` shares.

    base = floor(total * 100 / parts) / 100 for every share; the remainder
    (always less than ``parts`` cents) is added to the last share only.

    Examples:
        >>> equal_split("10.00", 3)
        [Decimal('3.33'), Decimal('3.33'), Decimal('3.34')]
        >>> equal_split("33.33", 3)
        [Decimal('11.11'), Decimal('11.11'), Decimal('11.11')]
    """
    if parts < 1:
        raise InvalidAmountError(f"Cannot split into {parts} parts", parts=parts)
    amount = to_money(total)
    if amount < 0:
        raise InvalidAmountError(f"Cannot split a negative total: {amount}", total=amount)

    total_cents = int((amount * 100).to_integral_value(rounding=ROUND_DOWN))
    base_cents = total_cents // parts
    remainder = total_cents - base_cents * parts

    shares = [from_cents(base_cents) for _ in range(parts)]
    shares[-1] = from_cents(base_cents + remainder)
    return shares
