"""
Return history immutability.

ReturnItem snapshots can never change or disappear.  A Return may only
flip its notification latch to true and record a reversal once.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from stock_kernel.domain.dtos import ReturnRequest, ReturnSelection
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.models.returns import Return, ReturnItem
from stock_kernel.services.return_processor import ReturnProcessor


@pytest.fixture
def processed(session, deterministic_clock, products, make_batch):
    batch_id = make_batch(products["milk"], 4, days_old=9)
    result = ReturnProcessor(session, deterministic_clock).process(
        ReturnRequest(selections=(ReturnSelection(batch_id),), actor_id="clerk-001")
    )
    session.commit()
    return result


class TestReturnItemImmutability:
    def test_item_update_blocked(self, session, processed):
        item = session.get(ReturnItem, processed.items[0].id)
        item.quantity = Decimal("40")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_item_delete_blocked(self, session, processed):
        session.delete(session.get(ReturnItem, processed.items[0].id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestReturnImmutability:
    def test_totals_cannot_change(self, session, processed):
        record = session.get(Return, processed.return_id)
        record.total_value = Decimal("1")

        with pytest.raises(ImmutabilityViolationError, match="total_value"):
            session.flush()

    def test_return_delete_blocked(self, session, processed):
        session.delete(session.get(Return, processed.return_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_latch_can_be_set(self, session, processed):
        record = session.get(Return, processed.return_id)
        record.notification_sent = True

        session.flush()

        assert record.notification_sent is True

    def test_latch_cannot_be_cleared(self, session, processed):
        record = session.get(Return, processed.return_id)
        record.notification_sent = True
        session.flush()

        record.notification_sent = False
        with pytest.raises(ImmutabilityViolationError, match="notification_sent"):
            session.flush()

    def test_reversal_fields_set_once(self, session, processed, deterministic_clock):
        record = session.get(Return, processed.return_id)
        record.is_reversed = True
        record.reversed_at = deterministic_clock.now()
        record.reversed_by = "supervisor-7"
        session.flush()

        record.reversed_at = deterministic_clock.now() + timedelta(hours=1)
        with pytest.raises(ImmutabilityViolationError, match="reversed_at"):
            session.flush()

    def test_violation_logged(self, session, processed, captured_logs):
        record = session.get(Return, processed.return_id)
        record.processed_by = "someone-else"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_type"] == "Return"
        assert blocked[0]["field"] == "processed_by"
