"""
Module: stock_kernel.selectors.return_selector
Responsibility: Read model for return history -- filtered listing, full
    detail, per-day grouping and aggregate analytics.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - History is served from the denormalized Return/ReturnItem snapshots
      only.  Nothing here joins to the live products or batches tables, so a
      deleted product never breaks or alters a historical view.
    - Listing order is reverse-chronological by processed_at, ties broken by
      id, so paging is stable.
    - "Archived" means return_date is older than the retention window
      (``archive_after_days``, default 30) measured from the injected
      clock's current UTC date.  Archiving is a query-time filter; rows are
      never moved or deleted.

Failure modes:
    - ReturnNotFoundError from get_return_detail() for an unknown id.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    DailyReturnTotals,
    ProductReturnFrequency,
    ReturnAnalytics,
    ReturnDetail,
    ReturnFilter,
    ReturnSummary,
)
from stock_kernel.exceptions import ReturnNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.returns import Return, ReturnItem
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.returns")

DEFAULT_ARCHIVE_AFTER_DAYS = 30
DEFAULT_TOP_PRODUCTS = 10


class ReturnSelector(BaseSelector):
    """
    Queries over processed returns.

    Contract:
        All methods accept optional inclusive ``start_date``/``end_date``
        bounds on return_date and a ReturnFilter.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        archive_after_days: int = DEFAULT_ARCHIVE_AFTER_DAYS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._archive_after_days = archive_after_days

    def archive_cutoff(self) -> date:
        """Returns dated before this day are archived."""
        return self._clock.today() - timedelta(days=self._archive_after_days)

    # ------------------------------------------------------------------
    # Listing and detail
    # ------------------------------------------------------------------

    def list_returns(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        filters: ReturnFilter | None = None,
    ) -> list[ReturnSummary]:
        """Returns matching the range and filters, newest first."""
        rows = self._query_returns(start_date, end_date, filters or ReturnFilter())
        return [row.to_dto() for row in rows]

    def get_return_detail(self, return_id: UUID) -> ReturnDetail:
        """Full snapshot of one return, items ordered by product name."""
        record = self.session.get(Return, return_id)
        if record is None:
            raise ReturnNotFoundError(str(return_id))
        return ReturnDetail(
            summary=record.to_dto(),
            items=tuple(item.to_dto() for item in record.items),
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def returns_by_day(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        filters: ReturnFilter | None = None,
    ) -> list[DailyReturnTotals]:
        """Per-day totals, newest day first."""
        summaries = self.list_returns(start_date, end_date, filters)
        return sorted(_group_by_day(summaries), key=lambda d: d.day, reverse=True)

    def return_analytics(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        filters: ReturnFilter | None = None,
        top_n: int = DEFAULT_TOP_PRODUCTS,
    ) -> ReturnAnalytics:
        """
        Aggregates over the filtered returns.

        Averages are zero when nothing matches.  Top products are ranked by
        how many times they were returned, then by name.
        """
        summaries = self.list_returns(start_date, end_date, filters)
        count = len(summaries)
        total_value = sum((s.total_value for s in summaries), Decimal("0"))

        items: list[ReturnItem] = []
        if summaries:
            items = list(
                self.session.execute(
                    select(ReturnItem).where(
                        ReturnItem.return_id.in_([s.id for s in summaries])
                    )
                ).scalars().all()
            )

        ages = [Decimal(item.age_at_return) for item in items]
        average_age = sum(ages, Decimal("0")) / len(ages) if ages else Decimal("0")

        by_product: dict[str, list[ReturnItem]] = defaultdict(list)
        for item in items:
            by_product[item.product_name].append(item)
        frequencies = [
            ProductReturnFrequency(
                product_name=name,
                times_returned=len(group),
                total_quantity=sum((i.quantity for i in group), Decimal("0")),
                total_value=sum((i.line_return_value for i in group), Decimal("0")),
            )
            for name, group in by_product.items()
        ]
        frequencies.sort(key=lambda f: (-f.times_returned, f.product_name))

        analytics = ReturnAnalytics(
            return_count=count,
            total_value=total_value,
            average_value=total_value / count if count else Decimal("0"),
            average_age_at_return=average_age,
            daily_trend=tuple(sorted(_group_by_day(summaries), key=lambda d: d.day)),
            top_products=tuple(frequencies[:top_n]),
        )
        logger.debug(
            "return_analytics_computed",
            extra={"return_count": count, "total_value": str(total_value)},
        )
        return analytics

    # ------------------------------------------------------------------
    # Maintenance queries
    # ------------------------------------------------------------------

    def pending_notification_ids(self, limit: int | None = None) -> list[UUID]:
        """Unarchived, unreversed returns whose notification was never sent, oldest first."""
        stmt = (
            select(Return.id)
            .where(Return.notification_sent.is_(False))
            .where(Return.is_reversed.is_(False))
            .where(Return.return_date >= self.archive_cutoff())
            .order_by(Return.processed_at.asc(), Return.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def count_archived(self) -> int:
        return self.session.execute(
            select(func.count(Return.id)).where(Return.return_date < self.archive_cutoff())
        ).scalar_one()

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _query_returns(self, start_date, end_date, filters: ReturnFilter) -> list[Return]:
        stmt = select(Return)

        if start_date is not None:
            stmt = stmt.where(Return.return_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Return.return_date <= end_date)
        if not filters.include_archived:
            stmt = stmt.where(Return.return_date >= self.archive_cutoff())
        if not filters.include_reversed:
            stmt = stmt.where(Return.is_reversed.is_(False))
        if filters.product_name:
            needle = (
                filters.product_name.strip()
                .replace("\\", "\\\\")
                .replace("%", "\\%")
                .replace("_", "\\_")
            )
            stmt = stmt.where(
                Return.id.in_(
                    select(ReturnItem.return_id).where(
                        ReturnItem.product_name.ilike(f"%{needle}%", escape="\\")
                    )
                )
            )

        stmt = stmt.order_by(Return.processed_at.desc(), Return.id.desc())
        rows = self.session.execute(stmt).scalars().all()
        # Value bounds compare Decimals in Python; SQLite stores them as text.
        return [
            row
            for row in rows
            if (filters.min_value is None or row.total_value >= filters.min_value)
            and (filters.max_value is None or row.total_value <= filters.max_value)
        ]


def _group_by_day(summaries: list[ReturnSummary]) -> list[DailyReturnTotals]:
    grouped: dict[date, list[ReturnSummary]] = defaultdict(list)
    for summary in summaries:
        grouped[summary.return_date].append(summary)
    return [
        DailyReturnTotals(
            day=day,
            return_count=len(group),
            total_value=sum((s.total_value for s in group), Decimal("0")),
            total_quantity=sum((s.total_quantity for s in group), Decimal("0")),
            return_ids=tuple(s.id for s in group),
        )
        for day, group in grouped.items()
    ]
