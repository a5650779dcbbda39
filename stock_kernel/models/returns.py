"""
Module: stock_kernel.models.returns
Responsibility: ORM persistence for processed returns and their item
    snapshots -- the historical record of stock sent back.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Return header and items are written in the same transaction as the
      deletion of the returned batches (ReturnProcessor).
    - ReturnItem is a denormalized snapshot: product name, prices, percentage
      and values are copied at commit time and never recomputed.  product_id
      and source_batch_id are soft references with no foreign key, so history
      survives product and batch deletion.
    - Immutability (ORM listeners in db/immutability.py):
        * ReturnItem: no UPDATE, no DELETE.
        * Return: no DELETE; UPDATE limited to the notification latch
          (false -> true only) and the one-time reversal fields.

Failure modes:
    - ImmutabilityViolationError on any other modification.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, UTCDateTime, UUIDString
from stock_kernel.db.types import ActorRef, Money, Percentage, ProductName, Quantity


class Return(Base):
    """
    Header of one processed return.

    Contract:
        Append-only after commit except for ``notification_sent`` and the
        reversal fields ``is_reversed``/``reversed_at``/``reversed_by``.

    Guarantees:
        - total_value equals the sum of its items' line_return_value.
        - total_quantity equals the sum of its items' quantity.
        - total_batches equals the number of items.
    """

    __tablename__ = "returns"

    __table_args__ = (
        Index("idx_return_processed_at", "processed_at"),
        Index("idx_return_date", "return_date"),
        # Query: pending notifications for the sweep
        Index("idx_return_notification_pending", "notification_sent", "is_reversed"),
    )

    return_date: Mapped[date] = mapped_column(Date, nullable=False)

    processed_by: Mapped[ActorRef] = mapped_column(nullable=False)

    processed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    total_value: Mapped[Money] = mapped_column(nullable=False)

    total_quantity: Mapped[Quantity] = mapped_column(nullable=False)

    total_batches: Mapped[int] = mapped_column(Integer, nullable=False)

    # Latch: false -> true only
    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_reversed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reversed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    reversed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    items: Mapped[list["ReturnItem"]] = relationship(
        back_populates="parent",
        order_by="ReturnItem.product_name",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Return {self.id} {self.return_date} value={self.total_value}>"

    def to_dto(self) -> "ReturnSummary":
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import ReturnSummary

        return ReturnSummary(
            id=self.id,
            return_date=self.return_date,
            processed_by=self.processed_by,
            processed_at=self.processed_at,
            total_value=self.total_value,
            total_quantity=self.total_quantity,
            total_batches=self.total_batches,
            notification_sent=self.notification_sent,
            is_reversed=self.is_reversed,
            reversed_at=self.reversed_at,
            reversed_by=self.reversed_by,
        )


class ReturnItem(Base):
    """
    Immutable snapshot of one returned batch.

    Non-goals:
        - Never joined back to the live products table for display.
    """

    __tablename__ = "return_items"

    __table_args__ = (
        Index("idx_return_item_return", "return_id"),
        Index("idx_return_item_product", "product_id"),
    )

    return_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("returns.id"),
        nullable=False,
    )

    # Soft references (no FK)
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    source_batch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    product_name: Mapped[ProductName] = mapped_column(nullable=False)

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    age_at_return: Mapped[int] = mapped_column(Integer, nullable=False)

    batch_created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    original_price: Mapped[Money] = mapped_column(nullable=False)

    sale_price: Mapped[Money] = mapped_column(nullable=False)

    return_percentage: Mapped[Percentage] = mapped_column(nullable=False)

    unit_return_value: Mapped[Money] = mapped_column(nullable=False)

    line_return_value: Mapped[Money] = mapped_column(nullable=False)

    parent: Mapped[Return] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<ReturnItem {self.product_name} x{self.quantity} = {self.line_return_value}>"

    def to_dto(self) -> "ReturnItemSnapshot":
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import ReturnItemSnapshot

        return ReturnItemSnapshot(
            id=self.id,
            return_id=self.return_id,
            product_id=self.product_id,
            source_batch_id=self.source_batch_id,
            product_name=self.product_name,
            quantity=self.quantity,
            age_at_return=self.age_at_return,
            batch_created_at=self.batch_created_at,
            original_price=self.original_price,
            sale_price=self.sale_price,
            return_percentage=self.return_percentage,
            unit_return_value=self.unit_return_value,
            line_return_value=self.line_return_value,
        )
