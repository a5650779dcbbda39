"""
StockWorkflow -- transaction owner for every stock operation.

Responsibility:
    The one place that opens sessions, commits and rolls back.  Each public
    method is a single unit of work: open a session, run one flush-only
    kernel service, commit, close.  After a return commits, its id is
    handed to the notifier; the notifier's outcome never touches the
    committed return.

Architecture position:
    Services -- stateful orchestration over kernel services and engines.
    Kernel services never commit; this class never computes business rules.

Invariants enforced:
    - All-or-nothing: domain errors roll back and propagate unchanged,
      SQLAlchemy errors roll back and surface as TransactionAbortedError
      (via ``transaction_scope``).
    - Notification runs only after a successful commit.
    - Every call binds ``operation`` and ``actor_id`` into LogContext.

Failure modes:
    - Any StockKernelError subclass from the underlying service.
    - TransactionAbortedError on database failure (safe to resubmit).

Usage:
    settings = get_active_settings()
    workflow = StockWorkflow.from_settings(settings)
    result = workflow.submit_return(request)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from stock_config.schema import StockSettings
from stock_engines.aging import (
    AgeCategory,
    age_category,
    age_in_days,
    suggest_return_percentage,
)
from stock_engines.fifo import sort_oldest_first
from stock_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    transaction_scope,
)
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    BatchSnapshot,
    DailyReturnTotals,
    DeductionResult,
    ProductInfo,
    ReturnAnalytics,
    ReturnDetail,
    ReturnFilter,
    ReturnRequest,
    ReturnResult,
    ReturnSummary,
    ShortfallPolicy,
    UndoResult,
)
from stock_kernel.logging_config import LogContext, configure_logging, get_logger
from stock_kernel.selectors.product_selector import ProductSelector
from stock_kernel.selectors.return_selector import (
    DEFAULT_ARCHIVE_AFTER_DAYS,
    DEFAULT_TOP_PRODUCTS,
    ReturnSelector,
)
from stock_kernel.services.batch_store import BatchStore
from stock_kernel.services.fifo_allocator import FifoAllocator
from stock_kernel.services.return_processor import (
    DEFAULT_ALLOWED_PERCENTAGES,
    ReturnProcessor,
)
from stock_kernel.services.return_reversal import ReturnReversalService
from stock_services.notification.channels import build_channel
from stock_services.notification.dispatcher import DispatchResult, NotificationDispatcher
from stock_services.notification.notifier import BackgroundNotifier, InlineNotifier
from stock_services.notification.recipients import StaticRecipientDirectory

logger = get_logger("services.stock_workflow")


@dataclass(frozen=True)
class AgedBatch:
    """A batch as shown on the return screen."""

    batch: BatchSnapshot
    product_name: str
    age_days: int
    category: AgeCategory
    suggested_percentage: Decimal


class StockWorkflow:
    """
    Entry point for intake, sales, returns, undo and history.

    Contract:
        Write methods commit on success.  Read methods open a session, read,
        and close it without writing.

    Non-goals:
        - Does NOT own the product catalog.
        - Does NOT retry failed transactions.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        allowed_percentages=DEFAULT_ALLOWED_PERCENTAGES,
        archive_after_days: int = DEFAULT_ARCHIVE_AFTER_DAYS,
        dispatcher: NotificationDispatcher | None = None,
        notifier: InlineNotifier | BackgroundNotifier | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._allowed_percentages = tuple(allowed_percentages)
        self._archive_after_days = archive_after_days
        self._dispatcher = dispatcher
        if notifier is None and dispatcher is not None:
            notifier = InlineNotifier(dispatcher)
        self._notifier = notifier

    @classmethod
    def from_settings(
        cls,
        settings: StockSettings,
        clock: Clock | None = None,
        session_factory: Callable[[], Session] | None = None,
    ) -> StockWorkflow:
        """Wire a workflow, dispatcher and notifier from settings.

        Without an explicit ``session_factory`` the module engine is
        initialized from ``settings.database_url`` and tables are created.
        """
        configure_logging(level=settings.log_level)
        if session_factory is None:
            init_engine_from_url(settings.database_url, echo=settings.echo_sql)
            create_tables()
            session_factory = get_session_factory()
        register_immutability_listeners()

        clock = clock or SystemClock()
        notification = settings.notification
        dispatcher = NotificationDispatcher(
            session_factory=session_factory,
            channel=build_channel(notification),
            directory=StaticRecipientDirectory(notification.recipients),
            clock=clock,
            max_attempts=notification.max_attempts,
            backoff_seconds=notification.backoff_seconds,
            max_backoff_seconds=notification.max_backoff_seconds,
            currency_label=notification.currency_label,
        )
        notifier = (
            BackgroundNotifier(dispatcher)
            if notification.background
            else InlineNotifier(dispatcher)
        )
        return cls(
            session_factory=session_factory,
            clock=clock,
            allowed_percentages=settings.returns.allowed_percentages,
            archive_after_days=settings.returns.archive_after_days,
            dispatcher=dispatcher,
            notifier=notifier,
        )

    @property
    def dispatcher(self) -> NotificationDispatcher | None:
        return self._dispatcher

    def close(self) -> None:
        """Let queued notifications finish."""
        if self._notifier is not None:
            self._notifier.shutdown(wait=True)

    # -------------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------------

    def receive_stock(
        self,
        product_id: UUID,
        quantity,
        actor_id: str,
        created_at: datetime | None = None,
    ) -> BatchSnapshot:
        """Record an intake as a new batch."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="receive_stock",
            actor_id=actor_id,
            product_id=str(product_id),
        ):
            with transaction_scope(self._session_factory, "receive_stock") as session:
                return BatchStore(session, self._clock).create(
                    product_id, quantity, created_at=created_at,
                )

    def sell(
        self,
        product_id: UUID,
        amount,
        actor_id: str,
        policy: ShortfallPolicy = ShortfallPolicy.BACKORDER,
    ) -> DeductionResult:
        """Deduct sold units oldest batch first."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="sell",
            actor_id=actor_id,
            product_id=str(product_id),
        ):
            with transaction_scope(self._session_factory, "sell") as session:
                return FifoAllocator(session, self._clock).deduct(
                    product_id, amount, policy=policy,
                )

    def stock_levels(self) -> dict[UUID, Decimal]:
        """Units on hand per product, over non-empty batches."""
        return self._read(lambda s: BatchStore(s, self._clock).total_stock_by_product())

    def review_batches(self, product_id: UUID | None = None) -> list[AgedBatch]:
        """
        Batches on hand with age, freshness category and suggested return
        percentage, oldest first.
        """
        def _review(session: Session) -> list[AgedBatch]:
            store = BatchStore(session, self._clock)
            batches = (
                store.list_by_product(product_id)
                if product_id is not None
                else store.list_all_nonzero()
            )
            products: dict[UUID, ProductInfo] = {}
            selector = ProductSelector(session)
            now = self._clock.now()
            aged = []
            for batch in sort_oldest_first(batches):
                if batch.product_id not in products:
                    products[batch.product_id] = selector.get(batch.product_id)
                product = products[batch.product_id]
                age = age_in_days(batch.created_at, now)
                category = age_category(age)
                aged.append(
                    AgedBatch(
                        batch=batch,
                        product_name=product.name,
                        age_days=age,
                        category=category,
                        suggested_percentage=suggest_return_percentage(
                            category,
                            product.default_return_percentage,
                            self._allowed_percentages,
                        ),
                    )
                )
            return aged

        return self._read(_review)

    # -------------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------------

    def submit_return(self, request: ReturnRequest) -> ReturnResult:
        """Commit a return, then hand it to the notifier."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="submit_return",
            actor_id=request.actor_id,
        ):
            with transaction_scope(self._session_factory, "submit_return") as session:
                result = ReturnProcessor(
                    session,
                    self._clock,
                    allowed_percentages=self._allowed_percentages,
                ).process(request)

            if self._notifier is not None:
                with LogContext.bind(return_id=str(result.return_id)):
                    self._notifier.notify(result.return_id)
            return result

    def undo_return(self, return_id: UUID, actor_id: str) -> UndoResult:
        """Reverse a committed return by rebuilding its batches."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="undo_return",
            actor_id=actor_id,
            return_id=str(return_id),
        ):
            with transaction_scope(self._session_factory, "undo_return") as session:
                return ReturnReversalService(session, self._clock).undo(return_id, actor_id)

    def resend_notification(self, return_id: UUID) -> DispatchResult:
        """Dispatch synchronously; a no-op for returns already notified."""
        if self._dispatcher is None:
            raise RuntimeError("No notification dispatcher configured")
        with LogContext.bind(operation="resend_notification", return_id=str(return_id)):
            return self._dispatcher.dispatch(return_id)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def list_returns(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        filters: ReturnFilter | None = None,
    ) -> list[ReturnSummary]:
        return self._read(lambda s: self._selector(s).list_returns(start_date, end_date, filters))

    def get_return_detail(self, return_id: UUID) -> ReturnDetail:
        return self._read(lambda s: self._selector(s).get_return_detail(return_id))

    def returns_by_day(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        filters: ReturnFilter | None = None,
    ) -> list[DailyReturnTotals]:
        return self._read(lambda s: self._selector(s).returns_by_day(start_date, end_date, filters))

    def return_analytics(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        filters: ReturnFilter | None = None,
        top_n: int = DEFAULT_TOP_PRODUCTS,
    ) -> ReturnAnalytics:
        return self._read(
            lambda s: self._selector(s).return_analytics(start_date, end_date, filters, top_n)
        )

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _selector(self, session: Session) -> ReturnSelector:
        return ReturnSelector(session, self._clock, self._archive_after_days)

    def _read(self, fn):
        session = self._session_factory()
        try:
            return fn(session)
        finally:
            session.rollback()
            session.close()
