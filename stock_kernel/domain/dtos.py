"""
Data Transfer Objects -- immutable records crossing the kernel boundary.

Responsibility:
    Defines the plain records that services accept and return and that
    selectors produce.  Callers never receive ORM instances, so nothing
    they hold can lazily load or accidentally flush.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  MUST NOT import from db/, models/,
    services/ or selectors/.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - Quantities, prices and percentages are Decimal; timestamps are aware.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class Disposition(str, Enum):
    """Per-batch decision on the return screen."""

    RETURN = "return"
    KEEP = "keep"


class ShortfallPolicy(str, Enum):
    """What a sale does when stock cannot cover the requested amount."""

    BACKORDER = "backorder"  # deduct what exists, report the rest
    REJECT = "reject"  # deduct nothing, raise InsufficientStockError


# ---------------------------------------------------------------------------
# Catalog and batches
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductInfo:
    """Read-only view of a catalog product."""

    id: UUID
    name: str
    original_price: Decimal
    sale_price: Decimal
    default_return_percentage: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class BatchSnapshot:
    """Point-in-time view of one inventory batch."""

    id: UUID
    product_id: UUID
    quantity: Decimal
    created_at: datetime
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# FIFO allocation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Allocation:
    """Amount taken from one batch, and what the batch holds afterwards."""

    batch_id: UUID
    take: Decimal
    remaining_after: Decimal

    @property
    def drains_batch(self) -> bool:
        return self.remaining_after == 0


@dataclass(frozen=True)
class DeductionResult:
    """Outcome of FifoAllocator.deduct().

    ``deducted + shortfall == requested`` always holds.
    """

    product_id: UUID
    requested: Decimal
    deducted: Decimal
    shortfall: Decimal
    allocations: tuple[Allocation, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReturnSelection:
    """One batch on the return screen.

    ``expected_product_id`` / ``expected_quantity`` are what the caller saw
    when building the selection; if given, they must still match the live
    batch or the whole request is rejected as stale.
    """

    batch_id: UUID
    disposition: Disposition = Disposition.RETURN
    return_percentage: Decimal | None = None
    expected_product_id: UUID | None = None
    expected_quantity: Decimal | None = None


@dataclass(frozen=True)
class ReturnRequest:
    """A complete return submission."""

    selections: tuple[ReturnSelection, ...]
    actor_id: str
    return_date: date | None = None

    @property
    def returned(self) -> tuple[ReturnSelection, ...]:
        return tuple(s for s in self.selections if s.disposition == Disposition.RETURN)

    @property
    def kept(self) -> tuple[ReturnSelection, ...]:
        return tuple(s for s in self.selections if s.disposition == Disposition.KEEP)


@dataclass(frozen=True)
class ReturnItemSnapshot:
    """Denormalized, immutable record of one returned batch."""

    id: UUID
    return_id: UUID
    product_id: UUID
    source_batch_id: UUID
    product_name: str
    quantity: Decimal
    age_at_return: int
    batch_created_at: datetime
    original_price: Decimal
    sale_price: Decimal
    return_percentage: Decimal
    unit_return_value: Decimal
    line_return_value: Decimal


@dataclass(frozen=True)
class ReturnSummary:
    """Header-level view of a processed return."""

    id: UUID
    return_date: date
    processed_by: str
    processed_at: datetime
    total_value: Decimal
    total_quantity: Decimal
    total_batches: int
    notification_sent: bool
    is_reversed: bool = False
    reversed_at: datetime | None = None
    reversed_by: str | None = None


@dataclass(frozen=True)
class ReturnDetail:
    """A return with all of its item snapshots."""

    summary: ReturnSummary
    items: tuple[ReturnItemSnapshot, ...]


@dataclass(frozen=True)
class ReturnResult:
    """Outcome of ReturnProcessor.process()."""

    return_id: UUID
    return_date: date
    processed_at: datetime
    total_value: Decimal
    total_quantity: Decimal
    total_batches: int
    items: tuple[ReturnItemSnapshot, ...]
    kept_batch_ids: tuple[UUID, ...] = ()

    @property
    def returned_batch_ids(self) -> tuple[UUID, ...]:
        return tuple(item.source_batch_id for item in self.items)


@dataclass(frozen=True)
class UndoResult:
    """Outcome of ReturnReversalService.undo()."""

    return_id: UUID
    restored_batch_ids: tuple[UUID, ...]
    restored_quantity: Decimal
    reversed_at: datetime
    reversed_by: str


# ---------------------------------------------------------------------------
# History queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReturnFilter:
    """History filters.

    Archived returns (older than the retention window) and reversed returns
    can be hidden independently.
    """

    product_name: str | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    include_archived: bool = False
    include_reversed: bool = True


@dataclass(frozen=True)
class DailyReturnTotals:
    """All returns processed on one calendar day."""

    day: date
    return_count: int
    total_value: Decimal
    total_quantity: Decimal
    return_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class ProductReturnFrequency:
    """How often a product shows up in returns."""

    product_name: str
    times_returned: int
    total_quantity: Decimal
    total_value: Decimal


@dataclass(frozen=True)
class ReturnAnalytics:
    """Aggregates over a filtered set of returns."""

    return_count: int
    total_value: Decimal
    average_value: Decimal
    average_age_at_return: Decimal
    daily_trend: tuple[DailyReturnTotals, ...] = ()
    top_products: tuple[ProductReturnFrequency, ...] = field(default_factory=tuple)
