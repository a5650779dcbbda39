"""
ReturnReversalService -- compensating undo of a processed return.

Responsibility:
    Rebuilds the inventory a return removed, from the return's own item
    snapshots, and flags the return reversed.  History is never deleted.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Recreates batches
    through BatchStore.

Invariants enforced:
    - Each ReturnItem becomes a new batch of the same product with the same
      quantity and created_at = the item's batch_created_at, so restored stock
      has its true age, not "today".
    - All-or-nothing: every product is checked before the first batch is
      created.  A return whose product has since been deleted cannot be
      undone and nothing is written.
    - At most one undo per return.  The Return row is locked FOR UPDATE so two
      concurrent undos serialize and the second sees is_reversed = True.
    - Return and ReturnItem rows are not deleted; only the one-time reversal
      fields change (enforced by db/immutability.py).

Failure modes:
    - ReturnNotFoundError: unknown return id.
    - ReturnAlreadyReversedError: undo requested twice.
    - ProductNotFoundError: an item's product no longer exists.

Design principles:
    1. Compensate, never delete.  The audit trail shows the return and its
       reversal side by side.
    2. Restored batches are new rows; the original batch ids are gone and
       are kept only as source_batch_id on the snapshots.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import UndoResult
from stock_kernel.exceptions import (
    ProductNotFoundError,
    ReturnAlreadyReversedError,
    ReturnNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.product import Product
from stock_kernel.models.returns import Return
from stock_kernel.services.base import BaseService
from stock_kernel.services.batch_store import BatchStore

logger = get_logger("services.return_reversal")


class ReturnReversalService(BaseService):
    """
    Undo for processed returns.

    Contract:
        ``undo()`` flushes the recreated batches and the reversal flag into
        the caller's transaction.

    Non-goals:
        - Does NOT call session.commit().
        - Does NOT reverse part of a return; undo is whole-return only.
        - Does NOT retract a notification that was already sent.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        batch_store: BatchStore | None = None,
    ):
        super().__init__(session, clock)
        self._batch_store = batch_store or BatchStore(session, self.clock)

    def undo(self, return_id: UUID, actor_id: str) -> UndoResult:
        """
        Reverse a processed return.

        Postconditions:
            - One new batch per ReturnItem, with the item's quantity and
              original created_at.
            - Return.is_reversed is True, reversed_at/reversed_by are set.

        Raises:
            ReturnNotFoundError, ReturnAlreadyReversedError,
            ProductNotFoundError.
        """
        record = self._load_and_validate(return_id)
        items = list(record.items)

        logger.info(
            "return_undo_started",
            extra={"return_id": str(return_id), "item_count": len(items)},
        )

        restored: list[UUID] = []
        restored_quantity = Decimal("0")
        for item in items:
            batch = self._batch_store.create(
                item.product_id,
                item.quantity,
                created_at=item.batch_created_at,
            )
            restored.append(batch.id)
            restored_quantity += item.quantity

        now = self.clock.now()
        record.is_reversed = True
        record.reversed_at = now
        record.reversed_by = actor_id
        self.session.flush()

        logger.info(
            "return_undo_completed",
            extra={
                "return_id": str(return_id),
                "actor_id": actor_id,
                "restored_batches": len(restored),
                "restored_quantity": str(restored_quantity),
            },
        )

        return UndoResult(
            return_id=record.id,
            restored_batch_ids=tuple(restored),
            restored_quantity=restored_quantity,
            reversed_at=now,
            reversed_by=actor_id,
        )

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _load_and_validate(self, return_id: UUID) -> Return:
        # Row lock serializes concurrent undos of the same return
        record = self.session.execute(
            select(Return).where(Return.id == return_id).with_for_update()
        ).scalar_one_or_none()

        if record is None:
            raise ReturnNotFoundError(str(return_id))

        if record.is_reversed:
            logger.warning("return_undo_rejected_already_reversed", extra={"return_id": str(return_id)})
            raise ReturnAlreadyReversedError(str(return_id))

        product_ids = {item.product_id for item in record.items}
        existing = set(
            self.session.execute(
                select(Product.id).where(Product.id.in_(product_ids))
            ).scalars().all()
        ) if product_ids else set()
        missing = sorted(product_ids - existing)
        if missing:
            logger.warning(
                "return_undo_rejected_missing_product",
                extra={"return_id": str(return_id), "product_id": str(missing[0])},
            )
            raise ProductNotFoundError(str(missing[0]))

        return record
