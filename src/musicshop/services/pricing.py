"""Trade-in pricing engine.

Discount per unit = payout cap (``base_discount_amount``) x condition percent / 100,
rounded half-up to whole currency units. The functions here are pure; the
order service calls them once at checkout and stores the results on the order.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Protocol

from musicshop.core.exceptions import InvalidInputError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNIT = Decimal("1")
CENT = Decimal("0.01")


class PayoutConfig(Protocol):
    base_discount_amount: Any


class ConditionConfig(Protocol):
    percent: Any


@dataclass(frozen=True)
class DiscountLine:
    """Unit discount and quantity of one trade-in line."""

    unit_discount: Decimal
    quantity: int


def round_units(value: Decimal) -> Decimal:
    """Round to the nearest whole currency unit, halves away from zero."""
    return value.quantize(UNIT, rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_finite_decimal(value: Any) -> Decimal | None:
    """Convert a numeric value to Decimal, or None if missing or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not number.is_finite():
        return None
    return number


def compute_unit_discount(
    entry: PayoutConfig | None,
    condition: ConditionConfig | None,
) -> Decimal:
    """Calculate the trade-in discount for one unit.

    A missing catalog entry or condition, or a missing/non-finite amount,
    yields 0 so that an incomplete trade-in configuration never blocks checkout.

    Args:
        entry: Catalog entry carrying ``base_discount_amount`` (payout cap)
        condition: Condition carrying ``percent`` (0-1000)

    Returns:
        Discount in whole currency units
    """
    if entry is None or condition is None:
        return ZERO

    base_amount = to_finite_decimal(getattr(entry, "base_discount_amount", None))
    percent = to_finite_decimal(getattr(condition, "percent", None))
    if base_amount is None or percent is None:
        return ZERO

    discount = round_units(base_amount * percent / HUNDRED)
    return discount if discount > ZERO else ZERO


def compute_line_discount(unit_discount: Decimal, quantity: int) -> Decimal:
    """Discount for ``quantity`` traded-in units."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidInputError("Trade-in quantity must be a positive integer")
    return unit_discount * quantity


def compute_order_discount(lines: Iterable[DiscountLine]) -> Decimal:
    """Sum of line discounts, before the order-level cap."""
    return sum(
        (compute_line_discount(line.unit_discount, line.quantity) for line in lines),
        ZERO,
    )


def cap_discount(raw_discount: Decimal, items_total: Decimal, max_ratio: Decimal) -> Decimal:
    """Clamp a trade-in discount to ``max_ratio`` of the purchase total.

    The result is never negative and never exceeds the items total, whatever
    the configured ratio.

    Args:
        raw_discount: Sum of trade-in line discounts
        items_total: Sum of purchased line subtotals
        max_ratio: Maximum share of ``items_total`` the discount may cover

    Returns:
        Capped discount rounded to cents
    """
    if raw_discount <= ZERO or items_total <= ZERO:
        return ZERO
    ratio = min(max(max_ratio, ZERO), UNIT)
    cap = round_money(items_total * ratio)
    return round_money(min(raw_discount, cap))
