"""
Tests for ReturnProcessor.

Covers:
- Valuation and totals of a committed return
- Snapshot contents of ReturnItem rows
- Keep leaves batches untouched
- Validation failures write nothing
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_kernel.domain.dtos import Disposition, ReturnRequest, ReturnSelection
from stock_kernel.exceptions import (
    BatchNotFoundError,
    InvalidPercentageError,
    NoBatchesSelectedError,
    StaleSelectionError,
)
from stock_kernel.models.returns import Return, ReturnItem
from stock_kernel.services.batch_store import BatchStore
from stock_kernel.services.return_processor import ReturnProcessor

ACTOR = "clerk-001"


@pytest.fixture
def processor(session, deterministic_clock):
    return ReturnProcessor(session, deterministic_clock)


@pytest.fixture
def store(session, deterministic_clock):
    return BatchStore(session, deterministic_clock)


def _request(*selections, return_date=None) -> ReturnRequest:
    return ReturnRequest(selections=tuple(selections), actor_id=ACTOR, return_date=return_date)


def _count(session, model) -> int:
    return session.execute(select(func.count(model.id))).scalar_one()


class TestProcess:
    def test_four_units_at_twenty_percent(self, processor, session, store, products, make_batch):
        batch_id = make_batch(products["milk"], 4, days_old=9)

        result = processor.process(
            _request(ReturnSelection(batch_id, Disposition.RETURN, Decimal("20")))
        )

        assert result.total_value == Decimal("80")
        assert result.total_quantity == Decimal("4")
        assert result.total_batches == 1
        assert result.returned_batch_ids == (batch_id,)
        with pytest.raises(BatchNotFoundError):
            store.get(batch_id)

    def test_return_row_is_recorded(self, processor, session, products, make_batch, deterministic_clock):
        batch_id = make_batch(products["milk"], 4, days_old=9)

        result = processor.process(_request(ReturnSelection(batch_id)))

        record = session.get(Return, result.return_id)
        assert record.processed_by == ACTOR
        assert record.processed_at == deterministic_clock.now()
        assert record.return_date == date(2024, 1, 10)
        assert record.notification_sent is False
        assert record.is_reversed is False

    def test_item_snapshot(self, processor, products, make_batch, deterministic_clock):
        batch_id = make_batch(products["milk"], 4, days_old=9)

        result = processor.process(_request(ReturnSelection(batch_id)))

        (item,) = result.items
        assert item.source_batch_id == batch_id
        assert item.product_id == products["milk"].id
        assert item.product_name == "Milk"
        assert item.quantity == Decimal("4")
        assert item.age_at_return == 9
        assert item.original_price == Decimal("120")
        assert item.sale_price == Decimal("100")
        assert item.return_percentage == Decimal("20")
        assert item.unit_return_value == Decimal("20")
        assert item.line_return_value == Decimal("80")

    def test_product_default_percentage_used(self, processor, products, make_batch):
        batch_id = make_batch(products["cheese"], 2, days_old=1)

        result = processor.process(_request(ReturnSelection(batch_id)))

        assert result.items[0].return_percentage == Decimal("100")
        assert result.total_value == Decimal("500")

    def test_override_percentage_wins(self, processor, products, make_batch):
        batch_id = make_batch(products["cheese"], 2, days_old=1)

        result = processor.process(_request(ReturnSelection(batch_id, return_percentage=Decimal("20"))))

        assert result.total_value == Decimal("100")

    def test_multiple_batches_totals(self, processor, products, make_batch):
        milk_id = make_batch(products["milk"], 4, days_old=9)
        bread_id = make_batch(products["bread"], "1.5", days_old=3)

        result = processor.process(
            _request(
                ReturnSelection(milk_id),
                ReturnSelection(bread_id, return_percentage=Decimal("100")),
            )
        )

        assert result.total_value == Decimal("155")
        assert result.total_quantity == Decimal("5.5")
        assert result.total_batches == 2

    def test_keep_leaves_batch_untouched(self, processor, store, products, make_batch):
        returned_id = make_batch(products["milk"], 4, days_old=9)
        kept_id = make_batch(products["bread"], 6, days_old=8)
        kept_before = store.get(kept_id)

        result = processor.process(
            _request(
                ReturnSelection(returned_id),
                ReturnSelection(kept_id, Disposition.KEEP),
            )
        )

        assert result.kept_batch_ids == (kept_id,)
        kept_after = store.get(kept_id)
        assert kept_after.quantity == kept_before.quantity
        assert kept_after.created_at == kept_before.created_at
        assert result.total_batches == 1

    def test_explicit_return_date(self, processor, products, make_batch):
        batch_id = make_batch(products["milk"], 1)

        result = processor.process(_request(ReturnSelection(batch_id), return_date=date(2024, 1, 9)))

        assert result.return_date == date(2024, 1, 9)

    def test_matching_expectations_pass(self, processor, products, make_batch):
        batch_id = make_batch(products["milk"], 4)

        result = processor.process(
            _request(
                ReturnSelection(
                    batch_id,
                    expected_product_id=products["milk"].id,
                    expected_quantity=Decimal("4"),
                )
            )
        )

        assert result.total_batches == 1

    def test_processed_event_logged(self, processor, products, make_batch, captured_logs):
        batch_id = make_batch(products["milk"], 4, days_old=9)

        processor.process(_request(ReturnSelection(batch_id)))

        events = [r for r in captured_logs() if r["message"] == "return_processed"]
        assert len(events) == 1
        assert Decimal(events[0]["total_value"]) == Decimal("80")


class TestValidation:
    def test_empty_selection_writes_nothing(self, processor, session, products, make_batch):
        make_batch(products["milk"], 4)

        with pytest.raises(NoBatchesSelectedError) as exc_info:
            processor.process(_request())

        assert exc_info.value.code == "NO_BATCHES_SELECTED"
        assert _count(session, Return) == 0
        assert _count(session, ReturnItem) == 0

    def test_keep_only_selection_rejected(self, processor, session, store, products, make_batch):
        batch_id = make_batch(products["milk"], 4)

        with pytest.raises(NoBatchesSelectedError):
            processor.process(_request(ReturnSelection(batch_id, Disposition.KEEP)))

        assert store.get(batch_id).quantity == Decimal("4")
        assert _count(session, Return) == 0

    def test_unknown_batch_is_stale(self, processor, session, products):
        with pytest.raises(StaleSelectionError):
            processor.process(_request(ReturnSelection(uuid4())))

        assert _count(session, Return) == 0

    def test_duplicate_batch_is_stale(self, processor, products, make_batch):
        batch_id = make_batch(products["milk"], 4)

        with pytest.raises(StaleSelectionError, match="more than once"):
            processor.process(_request(ReturnSelection(batch_id), ReturnSelection(batch_id)))

    def test_changed_quantity_is_stale(self, processor, session, store, products, make_batch):
        batch_id = make_batch(products["milk"], 4)

        with pytest.raises(StaleSelectionError, match="quantity changed"):
            processor.process(_request(ReturnSelection(batch_id, expected_quantity=Decimal("5"))))

        assert store.get(batch_id).quantity == Decimal("4")
        assert _count(session, Return) == 0

    def test_changed_product_is_stale(self, processor, products, make_batch):
        batch_id = make_batch(products["milk"], 4)

        with pytest.raises(StaleSelectionError, match="product changed"):
            processor.process(
                _request(ReturnSelection(batch_id, expected_product_id=products["bread"].id))
            )

    def test_stale_keep_entry_rejects_whole_request(self, processor, session, store, products, make_batch):
        returned_id = make_batch(products["milk"], 4)

        with pytest.raises(StaleSelectionError):
            processor.process(
                _request(ReturnSelection(returned_id), ReturnSelection(uuid4(), Disposition.KEEP))
            )

        assert store.get(returned_id).quantity == Decimal("4")

    def test_disallowed_percentage(self, processor, session, store, products, make_batch):
        batch_id = make_batch(products["milk"], 4)

        with pytest.raises(InvalidPercentageError) as exc_info:
            processor.process(_request(ReturnSelection(batch_id, return_percentage=Decimal("50"))))

        assert exc_info.value.code == "INVALID_PERCENTAGE"
        assert store.get(batch_id).quantity == Decimal("4")
        assert _count(session, Return) == 0

    def test_configured_percentages(self, session, deterministic_clock, products, make_batch):
        processor = ReturnProcessor(
            session,
            deterministic_clock,
            allowed_percentages=(Decimal("50"),),
        )
        batch_id = make_batch(products["milk"], 2)

        result = processor.process(_request(ReturnSelection(batch_id, return_percentage=Decimal("50"))))

        assert result.total_value == Decimal("100")
        assert processor.allowed_percentages == (Decimal("50"),)
