"""
BatchStore -- CRUD over inventory batches.

Responsibility:
    The only code path that inserts, changes or deletes InventoryBatch rows.
    Intake creates batches here, the FIFO allocator and the return processor
    drain them through it, and undo recreates them through it.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - A batch is created with quantity > 0.
    - Quantity never goes below zero; a batch that reaches exactly zero is
      deleted in the same flush.
    - Batches are never merged: every create() is a new row with its own age.
    - Rows being changed are loaded with SELECT ... FOR UPDATE so concurrent
      units of work on the same batch serialize.

Failure modes:
    - InvalidQuantityError: create() with quantity <= 0.
    - ProductNotFoundError: create() for an unknown product.
    - NegativeQuantityError: adjust_quantity() below zero.
    - BatchNotFoundError: get/adjust/touch/remove of an unknown batch.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.dtos import BatchSnapshot
from stock_kernel.exceptions import (
    BatchNotFoundError,
    InvalidQuantityError,
    NegativeQuantityError,
    ProductNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import InventoryBatch
from stock_kernel.models.product import Product
from stock_kernel.services.base import BaseService

logger = get_logger("services.batch_store")


class BatchStore(BaseService):
    """
    Persistence operations for inventory batches.

    Guarantees:
        - Read methods only return batches with quantity > 0, unordered.
          Callers that need FIFO order sort with
          ``stock_engines.fifo.sort_oldest_first``.
        - Write methods flush before returning.
    """

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        product_id: UUID,
        quantity,
        created_at: datetime | None = None,
    ) -> BatchSnapshot:
        """
        Record one intake of ``quantity`` units of a product.

        Args:
            product_id: Catalog product.
            quantity: Units received, > 0 (fractional allowed).
            created_at: Aging anchor; defaults to the clock's now.  Undo
                passes the original intake timestamp here.

        Raises:
            InvalidQuantityError: quantity <= 0.
            ProductNotFoundError: unknown product.
        """
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise InvalidQuantityError(quantity, context="batch quantity")

        if created_at is not None and created_at.tzinfo is None:
            raise ValueError(f"created_at must be timezone-aware: {created_at!r}")

        if self.session.get(Product, product_id) is None:
            raise ProductNotFoundError(str(product_id))

        now = self.clock.now()
        batch = InventoryBatch(
            product_id=product_id,
            quantity=quantity,
            created_at=created_at or now,
            updated_at=now,
        )
        self.session.add(batch)
        self.session.flush()

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "product_id": str(product_id),
                "quantity": str(quantity),
                "created_at": batch.created_at.isoformat(),
            },
        )
        return batch.to_dto()

    def adjust_quantity(self, batch_id: UUID, delta) -> Decimal:
        """
        Apply ``delta`` to a batch's quantity.

        Returns:
            The new quantity.  Zero means the batch was deleted.

        Raises:
            BatchNotFoundError: unknown batch.
            NegativeQuantityError: the result would be below zero.
        """
        delta = to_decimal(delta)
        batch = self._load_for_update(batch_id)

        new_quantity = batch.quantity + delta
        if new_quantity < 0:
            raise NegativeQuantityError(
                batch_id=str(batch_id),
                current=str(batch.quantity),
                delta=str(delta),
            )

        if new_quantity == 0:
            self.session.delete(batch)
            self.session.flush()
            logger.info(
                "batch_drained",
                extra={"batch_id": str(batch_id), "delta": str(delta)},
            )
            return Decimal("0")

        batch.quantity = new_quantity
        batch.updated_at = self.clock.now()
        self.session.flush()
        logger.debug(
            "batch_adjusted",
            extra={
                "batch_id": str(batch_id),
                "delta": str(delta),
                "new_quantity": str(new_quantity),
            },
        )
        return new_quantity

    def touch_created_at(self, batch_id: UUID, ts: datetime) -> BatchSnapshot:
        """Rewrite a batch's aging anchor without changing its quantity."""
        batch = self._load_for_update(batch_id)
        previous = batch.created_at
        batch.created_at = ts
        batch.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "batch_age_anchor_rewritten",
            extra={
                "batch_id": str(batch_id),
                "previous_created_at": previous.isoformat(),
                "created_at": ts.isoformat(),
            },
        )
        return batch.to_dto()

    def remove(self, batch_id: UUID) -> BatchSnapshot:
        """Delete a batch outright (full return).  Returns its last state."""
        batch = self._load_for_update(batch_id)
        snapshot = batch.to_dto()
        self.session.delete(batch)
        self.session.flush()
        logger.info(
            "batch_removed",
            extra={"batch_id": str(batch_id), "quantity": str(snapshot.quantity)},
        )
        return snapshot

    # ------------------------------------------------------------------
    # Locking reads (for writers in the same transaction)
    # ------------------------------------------------------------------

    def lock_batches(self, batch_ids: Iterable[UUID]) -> dict[UUID, InventoryBatch]:
        """
        Load and row-lock the given batches.

        Locks are taken in id order so two writers touching overlapping sets
        cannot deadlock.  Unknown ids are simply absent from the result.
        """
        ids = sorted(set(batch_ids))
        if not ids:
            return {}
        rows = self.session.execute(
            select(InventoryBatch)
            .where(InventoryBatch.id.in_(ids))
            .order_by(InventoryBatch.id)
            .with_for_update()
        ).scalars().all()
        return {row.id: row for row in rows}

    def lock_product_batches(self, product_id: UUID) -> list[InventoryBatch]:
        """Load and row-lock every non-empty batch of a product."""
        rows = self.session.execute(
            select(InventoryBatch)
            .where(InventoryBatch.product_id == product_id)
            .order_by(InventoryBatch.id)
            .with_for_update()
        ).scalars().all()
        return [row for row in rows if row.quantity > 0]

    # ------------------------------------------------------------------
    # Plain reads
    # ------------------------------------------------------------------

    def get(self, batch_id: UUID) -> BatchSnapshot:
        batch = self.session.get(InventoryBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch.to_dto()

    def list_by_product(self, product_id: UUID) -> list[BatchSnapshot]:
        rows = self.session.execute(
            select(InventoryBatch).where(InventoryBatch.product_id == product_id)
        ).scalars().all()
        return [row.to_dto() for row in rows if row.quantity > 0]

    def list_all_nonzero(self) -> list[BatchSnapshot]:
        rows = self.session.execute(select(InventoryBatch)).scalars().all()
        return [row.to_dto() for row in rows if row.quantity > 0]

    def total_stock_by_product(self) -> dict[UUID, Decimal]:
        """
        Summed quantity of all non-empty batches, per product.

        Summed in Python so the total is exact on every backend.
        """
        totals: dict[UUID, Decimal] = {}
        rows = self.session.execute(
            select(InventoryBatch.product_id, InventoryBatch.quantity)
        ).all()
        for product_id, quantity in rows:
            if quantity > 0:
                totals[product_id] = totals.get(product_id, Decimal("0")) + quantity
        return totals

    def _load_for_update(self, batch_id: UUID) -> InventoryBatch:
        batch = self.session.execute(
            select(InventoryBatch)
            .where(InventoryBatch.id == batch_id)
            .with_for_update()
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch
