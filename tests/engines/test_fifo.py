"""
Tests for FIFO ordering and deduction planning.

Covers:
- Oldest-first ordering with id tie-break
- Allocation across batches, partial and exact drains
- Shortfall reporting
- Conservation properties (hypothesis)
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from stock_engines.fifo import plan_deduction, sort_oldest_first
from stock_kernel.domain.dtos import BatchSnapshot

NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)
PRODUCT = uuid4()


def _batch(quantity, days_old=0, batch_id: UUID | None = None) -> BatchSnapshot:
    return BatchSnapshot(
        id=batch_id or uuid4(),
        product_id=PRODUCT,
        quantity=Decimal(str(quantity)),
        created_at=NOW - timedelta(days=days_old),
    )


class TestSortOldestFirst:
    def test_orders_by_created_at(self):
        young, old, middle = _batch(1, 0), _batch(1, 9), _batch(1, 4)

        assert sort_oldest_first([young, old, middle]) == [old, middle, young]

    def test_ties_broken_by_id(self):
        low = _batch(1, 2, UUID("00000000-0000-0000-0000-000000000001"))
        high = _batch(1, 2, UUID("00000000-0000-0000-0000-000000000002"))

        assert sort_oldest_first([high, low]) == [low, high]


class TestPlanDeduction:
    def test_deducts_oldest_batch_first(self):
        """Selling 7 from 5 (day 5) + 5 (today) drains the older and leaves 3."""
        older = _batch(5, days_old=5)
        newer = _batch(5, days_old=0)

        plan = plan_deduction(batches=[newer, older], amount=Decimal("7"))

        assert [a.batch_id for a in plan.allocations] == [older.id, newer.id]
        assert plan.allocations[0].take == Decimal("5")
        assert plan.allocations[0].remaining_after == Decimal("0")
        assert plan.allocations[0].drains_batch
        assert plan.allocations[1].take == Decimal("2")
        assert plan.allocations[1].remaining_after == Decimal("3")
        assert plan.shortfall == Decimal("0")
        assert plan.deducted == Decimal("7")

    def test_exact_amount_drains_single_batch(self):
        batch = _batch(4)

        plan = plan_deduction(batches=[batch], amount=Decimal("4"))

        assert len(plan.allocations) == 1
        assert plan.allocations[0].drains_batch

    def test_untouched_batches_are_not_allocated(self):
        older, newer = _batch(10, 3), _batch(10, 1)

        plan = plan_deduction(batches=[older, newer], amount=Decimal("3"))

        assert [a.batch_id for a in plan.allocations] == [older.id]

    def test_shortfall_reported_when_stock_runs_out(self):
        plan = plan_deduction(batches=[_batch(2, 1), _batch(1, 0)], amount=Decimal("5"))

        assert plan.deducted == Decimal("3")
        assert plan.shortfall == Decimal("2")

    def test_no_batches_is_all_shortfall(self):
        plan = plan_deduction(batches=[], amount=Decimal("1.5"))

        assert plan.allocations == ()
        assert plan.shortfall == Decimal("1.5")

    def test_empty_batches_are_skipped(self):
        empty, full = _batch(0, 5), _batch(3, 1)

        plan = plan_deduction(batches=[empty, full], amount=Decimal("1"))

        assert [a.batch_id for a in plan.allocations] == [full.id]

    def test_fractional_quantities(self):
        plan = plan_deduction(batches=[_batch("0.25", 2), _batch("1.5", 1)], amount=Decimal("1"))

        assert [a.take for a in plan.allocations] == [Decimal("0.25"), Decimal("0.75")]

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValueError, match="positive"):
            plan_deduction(batches=[_batch(1)], amount=amount)


_quantities = st.decimals(min_value=0, max_value=1000, places=3, allow_nan=False, allow_infinity=False)


class TestPlanDeductionProperties:
    @settings(max_examples=200, deadline=None)
    @given(
        quantities=st.lists(_quantities, max_size=8),
        amount=st.decimals(min_value="0.001", max_value=5000, places=3),
    )
    def test_deducted_plus_shortfall_equals_requested(self, quantities, amount):
        batches = [_batch(q, days_old=i) for i, q in enumerate(quantities)]

        plan = plan_deduction(batches=batches, amount=amount)

        assert plan.deducted + plan.shortfall == amount
        assert plan.shortfall >= 0
        total = sum((b.quantity for b in batches), Decimal("0"))
        assert plan.shortfall == max(amount - total, Decimal("0"))

    @settings(max_examples=200, deadline=None)
    @given(
        quantities=st.lists(_quantities, min_size=1, max_size=8),
        amount=st.decimals(min_value="0.001", max_value=5000, places=3),
    )
    def test_only_the_last_allocation_can_be_partial(self, quantities, amount):
        batches = [_batch(q, days_old=i) for i, q in enumerate(quantities)]

        plan = plan_deduction(batches=batches, amount=amount)

        for allocation in plan.allocations[:-1]:
            assert allocation.drains_batch
        for allocation in plan.allocations:
            assert allocation.take > 0
            assert allocation.remaining_after >= 0
