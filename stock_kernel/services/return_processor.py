"""
ReturnProcessor -- validate, value and record a return in one pass.

Responsibility:
    Turns a ReturnRequest (batches tagged return/keep, optional percentage
    overrides) into a Return header, one immutable ReturnItem snapshot per
    returned batch, and the deletion of every returned batch.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Valuation comes from
    the pure ``stock_engines.valuation`` engine, ages from
    ``stock_engines.aging``.  Notification happens after commit and is the
    workflow's job, not this service's.

Invariants enforced:
    - All validation runs before the first write.  A rejected request leaves
      the database untouched.
    - unit_value == sale_price * pct / 100 and line_total == unit_value * qty,
      exact Decimal, copied into the snapshot and never recomputed.
    - Return.total_value == sum(line_total).
    - Every batch named in the request (returned or kept) is row-locked for
      the rest of the transaction.
    - Kept batches are not modified at all: quantity and created_at stay, so
      their age keeps running from the original intake.

Failure modes:
    - NoBatchesSelectedError: nothing tagged for return.
    - StaleSelectionError: duplicate, unknown or changed batch.
    - InvalidPercentageError: percentage outside the allowed set.
    - TransactionAbortedError: database error while flushing the writes.
      The caller must roll back; nothing of the return survives.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_engines.aging import age_in_days
from stock_engines.valuation import LineValuation, summarize, value_line
from stock_kernel.db.types import to_decimal
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import ReturnRequest, ReturnResult, ReturnSelection
from stock_kernel.exceptions import (
    InvalidPercentageError,
    NoBatchesSelectedError,
    StaleSelectionError,
    TransactionAbortedError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import InventoryBatch
from stock_kernel.models.product import Product
from stock_kernel.models.returns import Return, ReturnItem
from stock_kernel.services.base import BaseService
from stock_kernel.services.batch_store import BatchStore

logger = get_logger("services.return_processor")

DEFAULT_ALLOWED_PERCENTAGES: tuple[Decimal, ...] = (Decimal("20"), Decimal("100"))


@dataclass(frozen=True)
class _ValidatedLine:
    selection: ReturnSelection
    batch: InventoryBatch
    product: Product
    percentage: Decimal


class ReturnProcessor(BaseService):
    """
    Single-pass return processing.

    Contract:
        ``process()`` either raises before writing anything, or flushes the
        complete return (header, items, batch deletions) into the caller's
        transaction and returns a ReturnResult.

    Guarantees:
        - No persisted intermediate state: there is no "draft" return.
        - The Return row starts with notification_sent = False.

    Non-goals:
        - Does NOT commit, and does NOT send notifications.
        - Does NOT touch the product catalog.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        allowed_percentages: Iterable = DEFAULT_ALLOWED_PERCENTAGES,
        batch_store: BatchStore | None = None,
    ):
        super().__init__(session, clock)
        self._allowed = frozenset(to_decimal(p) for p in allowed_percentages)
        self._batch_store = batch_store or BatchStore(session, self.clock)

    @property
    def allowed_percentages(self) -> tuple[Decimal, ...]:
        return tuple(sorted(self._allowed))

    def process(self, request: ReturnRequest) -> ReturnResult:
        """
        Validate, value and record a return.

        Preconditions:
            - ``request.actor_id`` identifies the operator.

        Postconditions:
            - One Return row and one ReturnItem per returned batch are
              flushed; every returned batch is deleted; kept batches are
              unchanged.

        Raises:
            NoBatchesSelectedError, StaleSelectionError,
            InvalidPercentageError: before any write.
            TransactionAbortedError: if the database rejects the writes.
        """
        t0 = time.monotonic()

        # Step 1: validation (no writes)
        lines = self._validate(request)

        # Step 2: valuation (pure)
        valuations = [
            value_line(
                quantity=line.batch.quantity,
                sale_price=line.product.sale_price,
                percentage=line.percentage,
            )
            for line in lines
        ]
        totals = summarize(valuations)

        # Step 3: record
        now = self.clock.now()
        return_date = request.return_date or self.clock.today()
        try:
            record = self._record(request, lines, valuations, totals, now, return_date)
        except SQLAlchemyError as exc:
            logger.error(
                "return_commit_failed",
                extra={"actor_id": request.actor_id, "error": str(exc)},
                exc_info=True,
            )
            raise TransactionAbortedError(operation="process_return", detail=str(exc)) from exc

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "return_processed",
            extra={
                "return_id": str(record.id),
                "actor_id": request.actor_id,
                "return_date": return_date.isoformat(),
                "total_value": str(totals.total_value),
                "total_quantity": str(totals.total_quantity),
                "total_batches": totals.total_batches,
                "kept_batches": len(request.kept),
                "duration_ms": duration_ms,
            },
        )

        return ReturnResult(
            return_id=record.id,
            return_date=return_date,
            processed_at=now,
            total_value=totals.total_value,
            total_quantity=totals.total_quantity,
            total_batches=totals.total_batches,
            items=tuple(item.to_dto() for item in record.items),
            kept_batch_ids=tuple(s.batch_id for s in request.kept),
        )

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _validate(self, request: ReturnRequest) -> list[_ValidatedLine]:
        if not request.selections or not request.returned:
            logger.info(
                "return_rejected_empty",
                extra={"selection_count": len(request.selections)},
            )
            raise NoBatchesSelectedError(selection_count=len(request.selections))

        seen: set[UUID] = set()
        for selection in request.selections:
            if selection.batch_id in seen:
                raise StaleSelectionError(str(selection.batch_id), "selected more than once")
            seen.add(selection.batch_id)

        rows = self._batch_store.lock_batches(seen)

        for selection in request.selections:
            batch = rows.get(selection.batch_id)
            if batch is None:
                raise StaleSelectionError(str(selection.batch_id), "batch no longer exists")
            if (
                selection.expected_product_id is not None
                and batch.product_id != selection.expected_product_id
            ):
                raise StaleSelectionError(
                    str(selection.batch_id),
                    f"product changed to {batch.product_id}",
                )
            if (
                selection.expected_quantity is not None
                and batch.quantity != to_decimal(selection.expected_quantity)
            ):
                raise StaleSelectionError(
                    str(selection.batch_id),
                    f"quantity changed from {selection.expected_quantity} to {batch.quantity}",
                )

        lines: list[_ValidatedLine] = []
        for selection in request.returned:
            batch = rows[selection.batch_id]
            product = self.session.get(Product, batch.product_id)
            if product is None:
                raise StaleSelectionError(str(selection.batch_id), "product no longer exists")

            raw = (
                selection.return_percentage
                if selection.return_percentage is not None
                else product.default_return_percentage
            )
            percentage = to_decimal(raw)
            if percentage not in self._allowed:
                raise InvalidPercentageError(
                    batch_id=str(selection.batch_id),
                    percentage=str(raw),
                    allowed=tuple(str(p) for p in self.allowed_percentages),
                )
            lines.append(_ValidatedLine(selection, batch, product, percentage))

        return lines

    def _record(self, request, lines, valuations: list[LineValuation], totals, now, return_date) -> Return:
        record = Return(
            id=uuid4(),
            return_date=return_date,
            processed_by=request.actor_id,
            processed_at=now,
            total_value=totals.total_value,
            total_quantity=totals.total_quantity,
            total_batches=totals.total_batches,
            notification_sent=False,
            is_reversed=False,
        )
        self.session.add(record)

        for line, valuation in zip(lines, valuations):
            item = ReturnItem(
                id=uuid4(),
                return_id=record.id,
                product_id=line.product.id,
                source_batch_id=line.batch.id,
                product_name=line.product.name,
                quantity=valuation.quantity,
                age_at_return=age_in_days(line.batch.created_at, now),
                batch_created_at=line.batch.created_at,
                original_price=line.product.original_price,
                sale_price=valuation.sale_price,
                return_percentage=valuation.percentage,
                unit_return_value=valuation.unit_value,
                line_return_value=valuation.line_total,
            )
            record.items.append(item)
        self.session.flush()

        for line in lines:
            self._batch_store.remove(line.batch.id)

        return record
