"""
Notifiers -- when a committed return gets dispatched.

``InlineNotifier`` dispatches in the caller's thread right after commit.
``BackgroundNotifier`` hands the dispatch to a single worker thread so a
slow channel never holds up the caller.  Neither lets a dispatcher error
reach the code that submitted the return: errors are logged and the return
stays unsent for a later sweep.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from uuid import UUID

from stock_kernel.logging_config import LogContext, get_logger
from stock_services.notification.dispatcher import DispatchResult, NotificationDispatcher

logger = get_logger("services.notification.notifier")


class InlineNotifier:
    """Dispatches synchronously."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self._dispatcher = dispatcher

    def notify(self, return_id: UUID) -> DispatchResult | None:
        try:
            return self._dispatcher.dispatch(return_id)
        except Exception:
            logger.exception("notification_dispatch_failed", extra={"return_id": str(return_id)})
            return None

    def shutdown(self, wait: bool = True) -> None:
        pass


class BackgroundNotifier:
    """
    Dispatches on a single worker thread.

    Contract:
        ``notify()`` returns immediately with a Future resolving to the
        DispatchResult (or None if the dispatcher failed).  The caller's
        LogContext is carried onto the worker thread.
        ``shutdown()`` waits for queued dispatches by default.
    """

    def __init__(self, dispatcher: NotificationDispatcher, max_workers: int = 1):
        self._dispatcher = dispatcher
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="return-notifier",
        )

    def notify(self, return_id: UUID) -> Future:
        context = LogContext.get_all()
        logger.debug("notification_queued", extra={"return_id": str(return_id)})
        return self._executor.submit(self._run, return_id, context)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("notifier_stopped")

    def _run(self, return_id: UUID, context: dict[str, str]) -> DispatchResult | None:
        with LogContext.bind(**context):
            try:
                return self._dispatcher.dispatch(return_id)
            except Exception:
                logger.exception(
                    "notification_dispatch_failed",
                    extra={"return_id": str(return_id)},
                )
                return None
