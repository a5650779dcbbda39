"""
Exact storage of quantities and prices.

Values with more significant digits than a double can hold must come back
from the database digit for digit, on SQLite as well as PostgreSQL.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from stock_kernel.db.types import ExactDecimal
from stock_kernel.models.batch import InventoryBatch
from stock_kernel.models.product import Product
from stock_kernel.services.batch_store import BatchStore
from stock_kernel.services.fifo_allocator import FifoAllocator

LARGE = "12345678901234.123456789"


@pytest.fixture
def store(session, deterministic_clock):
    return BatchStore(session, deterministic_clock)


class TestQuantityRoundTrip:
    def test_smallest_unit_sold_from_large_batch(self, session, store, products, deterministic_clock):
        batch = store.create(products["milk"].id, LARGE)
        session.commit()

        FifoAllocator(session, deterministic_clock).deduct(products["milk"].id, "0.000000001")
        session.commit()
        session.expire_all()

        assert store.get(batch.id).quantity == Decimal("12345678901234.123456788")

    def test_totals_are_summed_exactly(self, session, store, products):
        store.create(products["bread"].id, "0.1")
        store.create(products["bread"].id, "0.2")
        session.commit()

        assert store.total_stock_by_product()[products["bread"].id] == Decimal("0.3")

    def test_prices_keep_nine_places(self, session, products):
        session.get(Product, products["milk"].id).sale_price = Decimal(
            "99999999999999999999.123456789"
        )
        session.commit()
        session.expire_all()

        milk = session.get(Product, products["milk"].id)
        assert milk.sale_price == Decimal("99999999999999999999.123456789")

    def test_negative_quantity_still_rejected(self, session, products, make_batch):
        batch_id = make_batch(products["milk"], 2)
        session.get(InventoryBatch, batch_id).quantity = Decimal("-1")

        with pytest.raises(IntegrityError):
            session.flush()


class TestSqliteRepresentation:
    @pytest.fixture(autouse=True)
    def _sqlite_only(self, session):
        if session.get_bind().dialect.name != "sqlite":
            pytest.skip("SQLite storage format")

    def test_stored_as_fixed_scale_text(self, session, store, products):
        store.create(products["milk"].id, "2.5")
        session.commit()

        raw = session.execute(text("SELECT quantity FROM inventory_batches")).scalar_one()

        assert raw == "2.500000000"

    def test_zero_has_no_sign(self, session):
        dialect = session.get_bind().dialect

        assert ExactDecimal(38, 9).process_bind_param(Decimal("-0"), dialect) == "0.000000000"
