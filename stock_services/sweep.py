"""
MaintenanceSweep -- periodic retry of unsent return notifications.

Contract:
    Each ``tick()`` finds returns whose notification was never sent (not
    reversed, not archived) and dispatches them again, oldest first.  It
    also reports how many returns currently fall outside the retention
    window.

Architecture: stock_services.  Uses ReturnSelector for the read and
    NotificationDispatcher for delivery.  The dispatcher's conditional
    latch update makes a sweep racing a live notifier harmless.

Invariants enforced:
    - All timestamps from the injected Clock.
    - Graceful shutdown: the stop signal is checked between returns.
    - A failing tick is logged and never kills the loop.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from stock_config.schema import StockSettings
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.return_selector import (
    DEFAULT_ARCHIVE_AFTER_DAYS,
    ReturnSelector,
)
from stock_services.notification.dispatcher import NotificationDispatcher

logger = get_logger("services.sweep")


@dataclass(frozen=True)
class SweepReport:
    """What one tick did."""

    examined: int = 0
    sent: int = 0
    failed: int = 0
    archived: int = 0


class MaintenanceSweep:
    """In-process polling loop over unsent notifications.

    Contract:
        - ``tick()`` runs one pass (public for testing).
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT distributed; run one sweep per database.
        - Does NOT move or delete archived returns.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        clock: Clock | None = None,
        archive_after_days: int = DEFAULT_ARCHIVE_AFTER_DAYS,
        batch_limit: int = 50,
        interval_seconds: int = 300,
    ):
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()
        self._archive_after_days = archive_after_days
        self._batch_limit = batch_limit
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(
        cls,
        settings: StockSettings,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        clock: Clock | None = None,
    ) -> MaintenanceSweep | None:
        """Sweep configured from settings, or None when disabled."""
        if not settings.sweep.enabled:
            return None
        return cls(
            session_factory=session_factory,
            dispatcher=dispatcher,
            clock=clock,
            archive_after_days=settings.returns.archive_after_days,
            batch_limit=settings.sweep.batch_limit,
            interval_seconds=settings.sweep.interval_seconds,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> SweepReport:
        """One sweep pass.  Returns an empty report if the pass failed."""
        try:
            return self._sweep()
        except Exception:
            logger.exception("sweep_tick_failed")
            return SweepReport()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="stock-maintenance-sweep",
            daemon=True,
        )
        self._thread.start()
        logger.info("sweep_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current pass to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("sweep_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)

    def _sweep(self) -> SweepReport:
        session = self._session_factory()
        try:
            selector = ReturnSelector(session, self._clock, self._archive_after_days)
            pending = selector.pending_notification_ids(limit=self._batch_limit)
            archived = selector.count_archived()
        finally:
            session.close()

        sent = failed = examined = 0
        with LogContext.bind(operation="maintenance_sweep"):
            for return_id in pending:
                if self._stop_event.is_set():
                    break
                examined += 1
                try:
                    result = self._dispatcher.dispatch(return_id)
                except Exception:
                    logger.exception(
                        "sweep_dispatch_failed",
                        extra={"return_id": str(return_id)},
                    )
                    failed += 1
                    continue
                if result.sent:
                    sent += 1
                elif not result.skipped:
                    failed += 1

            report = SweepReport(examined=examined, sent=sent, failed=failed, archived=archived)
            logger.info(
                "sweep_completed",
                extra={
                    "examined": examined,
                    "sent": sent,
                    "failed": failed,
                    "archived_returns": archived,
                },
            )
        return report
