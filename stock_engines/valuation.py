"""
Module: stock_engines.valuation
Responsibility:
    Value returned stock: per-unit credit from the sale price and the applied
    return percentage, the line total, and the totals for a whole return.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - unit_value == sale_price * percentage / 100
    - line_total == unit_value * quantity
    - total_value == sum(line_total)
    All arithmetic is exact Decimal; nothing is rounded before storage.
    Rounding happens only when a value is rendered for display.

Failure modes:
    - ValueError on negative quantity, price or percentage.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from stock_engines.tracer import traced_engine

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineValuation:
    quantity: Decimal
    sale_price: Decimal
    percentage: Decimal
    unit_value: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class ReturnTotals:
    total_value: Decimal
    total_quantity: Decimal
    total_batches: int


def value_line(*, quantity: Decimal, sale_price: Decimal, percentage: Decimal) -> LineValuation:
    """Credit for returning ``quantity`` units at ``percentage`` of ``sale_price``."""
    if quantity < 0:
        raise ValueError(f"quantity cannot be negative: {quantity}")
    if sale_price < 0:
        raise ValueError(f"sale_price cannot be negative: {sale_price}")
    if percentage < 0:
        raise ValueError(f"percentage cannot be negative: {percentage}")

    unit_value = sale_price * percentage / HUNDRED
    return LineValuation(
        quantity=quantity,
        sale_price=sale_price,
        percentage=percentage,
        unit_value=unit_value,
        line_total=unit_value * quantity,
    )


@traced_engine("return_valuation", "1.0")
def summarize(lines: Iterable[LineValuation]) -> ReturnTotals:
    """Totals for a return made of ``lines``."""
    lines = tuple(lines)
    return ReturnTotals(
        total_value=sum((line.line_total for line in lines), Decimal("0")),
        total_quantity=sum((line.quantity for line in lines), Decimal("0")),
        total_batches=len(lines),
    )
