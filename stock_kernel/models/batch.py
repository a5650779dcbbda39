"""
Module: stock_kernel.models.batch
Responsibility: ORM persistence for inventory batches.  Each batch is one
    intake event: a quantity of a single product with its own timestamp,
    which is the anchor for aging and for FIFO ordering.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - quantity >= 0 (CHECK constraint; BatchStore additionally deletes a
      batch the moment it reaches exactly zero).
    - Batches are never merged.  Two intakes of the same product are two rows
      with two ages.
    - (product_id, created_at) index supports oldest-first scans.
    - Every UPDATE or DELETE is guarded by the row version it was loaded
      with.  A concurrent writer that changed the row first makes the flush
      fail with StaleDataError instead of silently overwriting the quantity.

Failure modes:
    - IntegrityError on a negative quantity reaching the database.
    - IntegrityError on an unknown product_id (FK).
    - StaleDataError when the row changed since it was loaded.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UTCDateTime, UUIDString
from stock_kernel.db.types import Quantity


class InventoryBatch(Base):
    """
    One dated intake of a product.

    Contract:
        Created by intake or by undo reconstruction.  Quantity is only changed
        through BatchStore.adjust_quantity(); a batch that reaches zero is
        deleted rather than kept as an empty row.

    Guarantees:
        - created_at is timezone-aware UTC.
        - quantity is never negative.
    """

    __tablename__ = "inventory_batches"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_batch_quantity_nonnegative"),
        # Query: all batches of a product, oldest first
        Index("idx_inventory_batch_product_created", "product_id", "created_at"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    # Aging anchor
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Optimistic guard: every UPDATE/DELETE matches on the version it read
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<InventoryBatch {self.id} product={self.product_id} qty={self.quantity}>"

    def to_dto(self) -> "BatchSnapshot":
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import BatchSnapshot

        return BatchSnapshot(
            id=self.id,
            product_id=self.product_id,
            quantity=self.quantity,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
