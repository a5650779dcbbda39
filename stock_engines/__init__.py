"""
Module: stock_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: batch
    aging, FIFO ordering/allocation planning, and return valuation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain and stock_kernel.logging_config.
    MUST NOT import stock_services.

Invariants enforced:
    - Purity: engines never read the system clock; ``now`` is a parameter.
    - Decimal-only arithmetic for quantities and money.
    - Determinism: identical inputs always produce identical outputs.
"""

from stock_engines.aging import (
    FRESHNESS_BANDS,
    AgeCategory,
    FreshnessBand,
    age_category,
    age_in_days,
    suggest_return_percentage,
)
from stock_engines.fifo import AllocationPlan, plan_deduction, sort_oldest_first
from stock_engines.valuation import LineValuation, ReturnTotals, summarize, value_line

__all__ = [
    "FRESHNESS_BANDS",
    "AgeCategory",
    "AllocationPlan",
    "FreshnessBand",
    "LineValuation",
    "ReturnTotals",
    "age_category",
    "age_in_days",
    "plan_deduction",
    "sort_oldest_first",
    "suggest_return_percentage",
    "summarize",
    "value_line",
]
