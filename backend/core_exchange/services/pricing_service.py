"""
Core-exchange pricing calculator.

WHY: In a core-exchange sale the customer gets a discount in return for
owing back the used core. The discount a seller may grant is bounded by the
product's fixed carcass value, so the shop never gives away more than the
core is worth.

All money is integer cents. Percentages are Decimal. Pure functions only,
no database access.

Scenario: carcass 100.00 on a part negotiated at 500.00
- max discount = 20%
- at 15%: discount 75.00, retained revenue 25.00, final price 425.00
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

from ..errors import InvalidPrice
from ..validation import parse_percent

HUNDRED = Decimal(100)
PERCENT_PLACES = Decimal("0.0001")


def max_discount_percent(unit_price_cents: int, carcass_value_cents: int) -> Decimal:
    """
    Percent at which the discount equals the carcass value, clamped to [0, 100].

    Truncated (not rounded) to 4 decimal places, so applying it can never
    produce a discount above the carcass value.
    """
    if unit_price_cents <= 0:
        raise InvalidPrice(
            "Unit price must be positive to compute a discount ceiling",
            details={"unit_price_cents": unit_price_cents},
        )
    if carcass_value_cents <= 0:
        return Decimal(0).quantize(PERCENT_PLACES)

    pct = Decimal(carcass_value_cents) * HUNDRED / Decimal(unit_price_cents)
    pct = min(pct, HUNDRED)
    return pct.quantize(PERCENT_PLACES, rounding=ROUND_DOWN)


def discount_value(unit_price_cents: int, percent: Decimal) -> int:
    """Monetary discount for a percentage, rounded half-up to the cent."""
    raw = Decimal(unit_price_cents) * Decimal(percent) / HUNDRED
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def retained_revenue(carcass_value_cents: int, discount_value_cents: int) -> int:
    """Margin kept when the discount granted is below the carcass value."""
    return max(0, carcass_value_cents - discount_value_cents)


def final_price(unit_price_cents: int, percent: Decimal) -> int:
    return unit_price_cents - discount_value(unit_price_cents, percent)


def validate_discount(unit_price_cents: int, percent: Decimal, carcass_value_cents: int) -> bool:
    """True iff the discount does not exceed the carcass value."""
    return discount_value(unit_price_cents, percent) <= carcass_value_cents


@dataclass(frozen=True)
class LineQuote:
    unit_price_cents: int
    carcass_value_cents: int
    quantity: int
    requested_discount_percent: Decimal
    discount_percent: Decimal
    max_discount_percent: Decimal
    discount_value_cents: int
    final_price_cents: int
    retained_revenue_cents: int
    clamped: bool

    @property
    def line_total_cents(self) -> int:
        return self.final_price_cents * self.quantity

    @property
    def line_retained_revenue_cents(self) -> int:
        return self.retained_revenue_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "unit_price_cents": self.unit_price_cents,
            "carcass_value_cents": self.carcass_value_cents,
            "quantity": self.quantity,
            "requested_discount_percent": str(self.requested_discount_percent),
            "discount_percent": str(self.discount_percent),
            "max_discount_percent": str(self.max_discount_percent),
            "discount_value_cents": self.discount_value_cents,
            "final_price_cents": self.final_price_cents,
            "retained_revenue_cents": self.retained_revenue_cents,
            "line_total_cents": self.line_total_cents,
            "line_retained_revenue_cents": self.line_retained_revenue_cents,
            "clamped": self.clamped,
        }


def quote_line(
    unit_price_cents: int,
    discount_percent,
    carcass_value_cents: int,
    quantity: int = 1,
) -> LineQuote:
    """
    Price one line under the carcass-value ceiling.

    The ceiling is recomputed for the negotiated price. A requested discount
    above it is clamped down to the ceiling instead of rejected; `clamped`
    tells the caller to surface the adjustment.
    """
    requested = parse_percent(discount_percent)
    ceiling = max_discount_percent(unit_price_cents, carcass_value_cents)

    clamped = requested > ceiling
    effective = ceiling if clamped else requested

    discount_cents = discount_value(unit_price_cents, effective)
    return LineQuote(
        unit_price_cents=unit_price_cents,
        carcass_value_cents=carcass_value_cents,
        quantity=quantity,
        requested_discount_percent=requested,
        discount_percent=effective,
        max_discount_percent=ceiling,
        discount_value_cents=discount_cents,
        final_price_cents=unit_price_cents - discount_cents,
        retained_revenue_cents=retained_revenue(carcass_value_cents, discount_cents),
        clamped=clamped,
    )
