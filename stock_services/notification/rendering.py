"""
Plain-text rendering of a return summary.

The body carries who processed the return, when, the totals, and one line
per returned batch.  Money is shown as ``<label> 0.00`` rounded half-up.
Rendering reads only the immutable snapshot, never live catalog data.
"""

from __future__ import annotations

from decimal import Decimal

from stock_kernel.db.types import round_money
from stock_kernel.domain.dtos import ReturnDetail


def format_money(amount: Decimal, currency_label: str = "Rs.") -> str:
    return f"{currency_label} {round_money(amount):.2f}"


def _format_quantity(quantity: Decimal) -> str:
    normalized = quantity.normalize()
    # normalize() turns 100 into 1E+2
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal("1")))
    return format(normalized, "f")


def render_subject(detail: ReturnDetail) -> str:
    summary = detail.summary
    return (
        f"Stock return {summary.return_date.isoformat()}: "
        f"{summary.total_batches} batch(es) returned"
    )


def render_return_summary(detail: ReturnDetail, currency_label: str = "Rs.") -> str:
    """Full message body for one return."""
    summary = detail.summary
    lines = [
        "Stock return processed",
        "",
        f"Return ID:     {summary.id}",
        f"Processed by:  {summary.processed_by}",
        f"Return date:   {summary.return_date.isoformat()}",
        f"Processed at:  {summary.processed_at.isoformat()}",
        f"Batches:       {summary.total_batches}",
        f"Total units:   {_format_quantity(summary.total_quantity)}",
        f"Total value:   {format_money(summary.total_value, currency_label)}",
        "",
        "Items:",
    ]
    for item in detail.items:
        lines.append(
            f"  - {item.product_name}: {_format_quantity(item.quantity)} unit(s), "
            f"{item.age_at_return} day(s) old, "
            f"{item.return_percentage.normalize():f}% of "
            f"{format_money(item.sale_price, currency_label)} = "
            f"{format_money(item.line_return_value, currency_label)}"
        )
    if summary.is_reversed:
        lines.extend(["", f"NOTE: this return was reversed by {summary.reversed_by}."])
    return "\n".join(lines)
