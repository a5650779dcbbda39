"""
Module: stock_engines.aging
Responsibility:
    Compute batch age in whole days and classify it into freshness bands
    (fresh / medium / old) for display and for the default suggestion on the
    return screen.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``now`` is always passed
    in by the caller; nothing here reads the system clock.

Invariants enforced:
    - Age is the difference between calendar dates in UTC; time of day is
      truncated, so a batch received at 23:59 is one day old at 00:01.
    - Age is never negative.  Timestamps in the future yield 0.
    - Age is monotonic non-decreasing as ``now`` advances.
    - Bands are inclusive: fresh 0-2, medium 3-7, old 8+.

Failure modes:
    - ValueError if a naive datetime is passed.

Usage:
    from stock_engines.aging import age_in_days, age_category, AgeCategory

    age = age_in_days(batch.created_at, clock.now())  # 9
    age_category(age)                                  # AgeCategory.OLD
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from stock_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


class AgeCategory(str, Enum):
    FRESH = "fresh"
    MEDIUM = "medium"
    OLD = "old"


@dataclass(frozen=True)
class FreshnessBand:
    """
    Contiguous range of ages mapped to one category.

    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    category: AgeCategory
    min_days: int
    max_days: int | None  # None = unbounded (8+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days


FRESHNESS_BANDS: tuple[FreshnessBand, ...] = (
    FreshnessBand(AgeCategory.FRESH, 0, 2),
    FreshnessBand(AgeCategory.MEDIUM, 3, 7),
    FreshnessBand(AgeCategory.OLD, 8, None),
)


def _utc_date(ts: datetime):
    if ts.tzinfo is None:
        raise ValueError(f"Naive datetime not allowed: {ts!r}")
    return ts.astimezone(timezone.utc).date()


def age_in_days(created_at: datetime, now: datetime) -> int:
    """Whole days between intake and ``now``, clamped to zero."""
    days = (_utc_date(now) - _utc_date(created_at)).days
    return max(days, 0)


def age_category(
    age: int,
    bands: Sequence[FreshnessBand] = FRESHNESS_BANDS,
) -> AgeCategory:
    """
    Map an age in days to its freshness category.

    Negative ages are treated as 0.

    Raises:
        ValueError: If ``bands`` leave the age uncovered.
    """
    age = max(age, 0)
    for band in bands:
        if band.contains(age):
            return band.category
    logger.warning("age_classification_no_band", extra={"age_days": age})
    raise ValueError(f"Age {age} does not fit any freshness band")


def suggest_return_percentage(
    category: AgeCategory,
    default_percentage: Decimal,
    allowed: Iterable[Decimal],
) -> Decimal:
    """
    Pre-selected percentage for a batch on the return screen.

    Old stock suggests the lowest allowed percentage; anything younger keeps
    the product default.  A suggestion only, the operator can override it.
    """
    allowed = sorted(allowed)
    if category == AgeCategory.OLD and allowed:
        return allowed[0]
    return default_percentage
