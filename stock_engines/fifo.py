"""
Module: stock_engines.fifo
Responsibility:
    Oldest-first ordering of batches and the pure plan for deducting an
    amount across them.  The kernel's FifoAllocator locks rows, asks this
    module what to take from where, and applies the plan.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Ordering is a total order on (created_at, id): two calls on the same
      input always return the same sequence.
    - A plan never takes more from a batch than it holds, so no batch is
      ever driven negative.
    - sum(take) + shortfall == amount.

Failure modes:
    - ValueError if amount is not positive.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import Allocation, BatchSnapshot


def sort_oldest_first(batches: Iterable[BatchSnapshot]) -> list[BatchSnapshot]:
    """Ascending by intake timestamp, ties broken by batch id."""
    return sorted(batches, key=lambda b: (b.created_at, b.id))


@dataclass(frozen=True)
class AllocationPlan:
    """What to take from each batch, oldest first."""

    amount: Decimal
    allocations: tuple[Allocation, ...]
    shortfall: Decimal

    @property
    def deducted(self) -> Decimal:
        return sum((a.take for a in self.allocations), Decimal("0"))


@traced_engine("fifo", "1.0", fingerprint_fields=("amount",))
def plan_deduction(*, batches: Iterable[BatchSnapshot], amount: Decimal) -> AllocationPlan:
    """
    Walk batches oldest-first, taking up to each batch's quantity until
    ``amount`` is covered or batches run out.

    Empty batches are skipped.  The unmet remainder is returned as
    ``shortfall``; what to do about it is the caller's policy.
    """
    if amount <= 0:
        raise ValueError(f"Deduction amount must be positive, got {amount}")

    remaining = amount
    allocations: list[Allocation] = []
    for batch in sort_oldest_first(batches):
        if remaining <= 0:
            break
        if batch.quantity <= 0:
            continue
        take = min(remaining, batch.quantity)
        allocations.append(
            Allocation(
                batch_id=batch.id,
                take=take,
                remaining_after=batch.quantity - take,
            )
        )
        remaining -= take

    return AllocationPlan(
        amount=amount,
        allocations=tuple(allocations),
        shortfall=remaining,
    )
