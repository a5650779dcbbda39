"""
FifoAllocator -- oldest-first stock deduction for sales.

Responsibility:
    Deduct a sold amount of a product across its batches, oldest intake
    first, inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Planning is delegated to the
    pure ``stock_engines.fifo`` engine; mutation goes through BatchStore.

Invariants enforced:
    - The product's batches are row-locked before they are read, so two
      concurrent sales of the same product cannot both take the same unit.
    - Exactly ``min(amount, available)`` units are removed, oldest first,
      and no batch goes negative.
    - Under ShortfallPolicy.REJECT a shortfall raises before any batch is
      touched, so nothing partial can be committed.

Failure modes:
    - InvalidQuantityError: amount <= 0.
    - InsufficientStockError: shortfall under ShortfallPolicy.REJECT.
"""

from __future__ import annotations

import time
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_engines.fifo import plan_deduction
from stock_kernel.db.types import to_decimal
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import DeductionResult, ShortfallPolicy
from stock_kernel.exceptions import InsufficientStockError, InvalidQuantityError
from stock_kernel.logging_config import get_logger
from stock_kernel.services.base import BaseService
from stock_kernel.services.batch_store import BatchStore

logger = get_logger("services.fifo_allocator")


class FifoAllocator(BaseService):
    """
    Deducts sold quantities oldest-first.

    Contract:
        ``deduct()`` returns a DeductionResult describing exactly what was
        taken from which batch and how much could not be covered.

    Non-goals:
        - Does NOT decide what a shortfall means for the order; the checkout
          flow picks the policy.
        - Does NOT call session.commit().
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        batch_store: BatchStore | None = None,
    ):
        super().__init__(session, clock)
        self._batch_store = batch_store or BatchStore(session, self.clock)

    def deduct(
        self,
        product_id: UUID,
        amount,
        policy: ShortfallPolicy = ShortfallPolicy.BACKORDER,
    ) -> DeductionResult:
        """
        Remove ``amount`` units of a product, oldest batch first.

        Args:
            product_id: Product being sold.
            amount: Units sold, > 0.
            policy: BACKORDER deducts what exists and reports the rest as
                shortfall; REJECT deducts nothing when stock is short.

        Raises:
            InvalidQuantityError: amount <= 0.
            InsufficientStockError: shortfall under REJECT.
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise InvalidQuantityError(amount, context="deduction amount")

        t0 = time.monotonic()
        rows = self._batch_store.lock_product_batches(product_id)
        plan = plan_deduction(batches=[row.to_dto() for row in rows], amount=amount)

        if plan.shortfall > 0 and policy == ShortfallPolicy.REJECT:
            available = sum((row.quantity for row in rows), Decimal("0"))
            logger.warning(
                "fifo_deduction_rejected",
                extra={
                    "product_id": str(product_id),
                    "requested": str(amount),
                    "available": str(available),
                },
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                requested=str(amount),
                available=str(available),
            )

        for allocation in plan.allocations:
            self._batch_store.adjust_quantity(allocation.batch_id, -allocation.take)

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        log = logger.warning if plan.shortfall > 0 else logger.info
        log(
            "fifo_deduction_completed",
            extra={
                "product_id": str(product_id),
                "requested": str(amount),
                "deducted": str(plan.deducted),
                "shortfall": str(plan.shortfall),
                "batches_touched": len(plan.allocations),
                "policy": policy.value,
                "duration_ms": duration_ms,
            },
        )

        return DeductionResult(
            product_id=product_id,
            requested=amount,
            deducted=plan.deducted,
            shortfall=plan.shortfall,
            allocations=plan.allocations,
        )
