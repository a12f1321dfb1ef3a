"""
Order pricing.

All amounts are integer cents. The total is rounded once, half-up, from the
unrounded ``subtotal + tax + service``. Tax and service charge are stored
rounded to the cent for display, so their sum with the subtotal may differ
from the total by a cent.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

BPS_DIVISOR = Decimal(10000)


def round_half_up_cents(amount: Decimal) -> int:
    """Round a cent amount to the nearest whole cent, ties away from zero."""
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def rate_from_bps(bps: int) -> Decimal:
    """1000 basis points -> Decimal('0.1')."""
    return Decimal(bps) / BPS_DIVISOR


@dataclass(frozen=True)
class PricedLine:
    unit_price_cents: int
    modifier_prices_cents: tuple[int, ...]
    quantity: int

    @property
    def unit_total_cents(self) -> int:
        """Price of one unit including its modifiers."""
        return self.unit_price_cents + sum(self.modifier_prices_cents)

    @property
    def line_total_cents(self) -> int:
        return self.unit_total_cents * self.quantity


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    tax_cents: int
    service_charge_cents: int
    total_cents: int


def price_order(lines: list[PricedLine], tax_rate: Decimal, service_rate: Decimal) -> OrderTotals:
    """
    Compute order totals.

    Modifiers apply per unit: ``line = (unit + sum(modifiers)) * quantity``.

    >>> price_order([PricedLine(9500, (500,), 2)], Decimal("0.10"), Decimal("0.05"))
    OrderTotals(subtotal_cents=20000, tax_cents=2000, service_charge_cents=1000, total_cents=23000)
    """
    if tax_rate < 0 or service_rate < 0:
        raise ValueError("rates must be non-negative")

    subtotal = Decimal(sum(line.line_total_cents for line in lines))
    tax = subtotal * tax_rate
    service = subtotal * service_rate
    return OrderTotals(
        subtotal_cents=int(subtotal),
        tax_cents=round_half_up_cents(tax),
        service_charge_cents=round_half_up_cents(service),
        total_cents=round_half_up_cents(subtotal + tax + service),
    )
