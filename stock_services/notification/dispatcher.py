"""
NotificationDispatcher -- bounded, idempotent delivery of return alerts.

Responsibility:
    After a return has committed, tell the configured recipients about it
    exactly once.  Delivery is retried a fixed number of times with a capped
    backoff; the first fully successful attempt sets the return's
    ``notification_sent`` latch.

Architecture position:
    Services > notification.  Runs outside the transaction that recorded
    the return.  Uses its own short sessions: one to read the snapshot, one
    to flip the latch.  No database transaction is held open while the
    channel is talking to the outside world.

Invariants enforced:
    - ``notification_sent`` goes false -> true at most once, via a
      conditional UPDATE, so two concurrent dispatchers cannot both claim
      the send.
    - A return already marked sent is skipped with zero attempts.
    - At most ``max_attempts`` attempts; every delay is capped at
      ``max_backoff_seconds``.
    - Only recipients that have not yet accepted are retried.

Failure modes:
    - ReturnNotFoundError propagates for an unknown return id.
    - Exhausted retries never raise: the result carries a
      NotificationUndeliverableError and the latch stays false so a later
      sweep or an explicit resend can try again.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from stock_kernel.db.engine import transaction_scope
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import NotificationError, NotificationUndeliverableError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.returns import Return
from stock_kernel.selectors.return_selector import ReturnSelector
from stock_services.notification.channels import MessageChannel
from stock_services.notification.recipients import RecipientDirectory
from stock_services.notification.rendering import render_return_summary, render_subject

logger = get_logger("services.notification.dispatcher")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = (1.0, 2.0)
DEFAULT_MAX_BACKOFF_SECONDS = 10.0


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one ``dispatch()`` call.

    ``sent`` is true when the return's latch is set after the call, either
    by this call or by an earlier one (``skipped`` distinguishes the two).
    """

    return_id: UUID
    sent: bool
    attempts: int
    skipped: bool = False
    error: NotificationError | None = None
    delivered_to: tuple[str, ...] = ()


class NotificationDispatcher:
    """
    Sends the summary of one return through a channel, with retries.

    Contract:
        ``dispatch(return_id)`` -> DispatchResult.  Never raises for a
        delivery failure.

    Non-goals:
        - Does NOT decide when to dispatch (see InlineNotifier,
          BackgroundNotifier and MaintenanceSweep).
        - Does NOT persist per-attempt history; attempts are logged.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        channel: MessageChannel,
        directory: RecipientDirectory,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: Sequence[float] = DEFAULT_BACKOFF_SECONDS,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
        currency_label: str = "Rs.",
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._session_factory = session_factory
        self._channel = channel
        self._directory = directory
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts
        self._backoff = tuple(backoff_seconds)
        self._max_backoff = max_backoff_seconds
        self._currency_label = currency_label
        self._sleep = sleep

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based).

        The last configured delay repeats when attempts outnumber the
        schedule.  Never more than ``max_backoff_seconds``.
        """
        if not self._backoff:
            return 0.0
        delay = self._backoff[min(attempt - 1, len(self._backoff) - 1)]
        return min(delay, self._max_backoff)

    def dispatch(self, return_id: UUID) -> DispatchResult:
        with LogContext.bind(return_id=str(return_id)):
            session = self._session_factory()
            try:
                detail = ReturnSelector(session, self._clock).get_return_detail(return_id)
            finally:
                session.close()

            if detail.summary.notification_sent:
                logger.info("notification_already_sent")
                return DispatchResult(return_id=return_id, sent=True, attempts=0, skipped=True)

            recipients = tuple(self._directory.recipients_for(detail))
            if not recipients:
                logger.warning("notification_skipped_no_recipients")
                return DispatchResult(return_id=return_id, sent=False, attempts=0, skipped=True)

            subject = render_subject(detail)
            body = render_return_summary(detail, self._currency_label)

            pending = list(recipients)
            attempts = 0
            while pending and attempts < self._max_attempts:
                attempts += 1
                pending = self._attempt(attempts, pending, subject, body)
                if pending and attempts < self._max_attempts:
                    delay = self.backoff_for(attempts)
                    logger.info(
                        "notification_retry_scheduled",
                        extra={"attempt": attempts, "delay_seconds": delay},
                    )
                    self._sleep(delay)

            delivered = tuple(r for r in recipients if r not in pending)

            if pending:
                error = NotificationUndeliverableError(
                    return_id=str(return_id),
                    attempts=attempts,
                    pending_recipients=tuple(pending),
                )
                logger.warning(
                    "notification_undeliverable",
                    extra={
                        "attempts": attempts,
                        "pending_recipients": list(pending),
                        "delivered_recipients": list(delivered),
                    },
                )
                return DispatchResult(
                    return_id=return_id,
                    sent=False,
                    attempts=attempts,
                    error=error,
                    delivered_to=delivered,
                )

            claimed = self._mark_sent(return_id)
            logger.info(
                "notification_sent",
                extra={
                    "attempts": attempts,
                    "recipients": list(recipients),
                    "latch_claimed": claimed,
                },
            )
            return DispatchResult(
                return_id=return_id,
                sent=True,
                attempts=attempts,
                delivered_to=delivered,
            )

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _attempt(self, attempt: int, pending: list[str], subject: str, body: str) -> list[str]:
        """One pass over the pending recipients.  Returns those still pending."""
        still_pending: list[str] = []
        for recipient in pending:
            try:
                accepted = bool(self._channel.send(recipient, subject, body))
            except Exception:
                logger.exception(
                    "notification_channel_error",
                    extra={"attempt": attempt, "recipient": recipient},
                )
                accepted = False
            if not accepted:
                still_pending.append(recipient)

        logger.info(
            "notification_attempt",
            extra={
                "attempt": attempt,
                "max_attempts": self._max_attempts,
                "channel": getattr(self._channel, "name", type(self._channel).__name__),
                "succeeded": not still_pending,
                "pending_recipients": still_pending,
            },
        )
        return still_pending

    def _mark_sent(self, return_id: UUID) -> bool:
        """Flip the latch if nobody else has.  True when this call flipped it."""
        with transaction_scope(self._session_factory, "mark_notification_sent") as session:
            result = session.execute(
                update(Return)
                .where(Return.id == return_id)
                .where(Return.notification_sent.is_(False))
                .values(notification_sent=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
