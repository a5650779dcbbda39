"""
Module: stock_kernel.models.product
Responsibility: ORM mapping of the product catalog table.  The catalog is
    owned by an external system; the kernel only reads names, prices and the
    default return percentage from it.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Prices are Decimal (Money: 38 digits, 9 places), never floats.
    - Deleting a product cascades to its inventory batches at the database
      level (FK ON DELETE CASCADE on inventory_batches.product_id).  Return
      history keeps only a soft reference and survives the deletion.
"""

from decimal import Decimal

from sqlalchemy import Boolean
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.db.types import Money, Percentage, ProductName


class Product(Base):
    """
    Catalog product.

    Non-goals:
        - No catalog CRUD lives in the kernel.  Intake systems and tests
          insert rows directly.
    """

    __tablename__ = "products"

    name: Mapped[ProductName] = mapped_column(nullable=False)

    original_price: Mapped[Money] = mapped_column(nullable=False)

    sale_price: Mapped[Money] = mapped_column(nullable=False)

    default_return_percentage: Mapped[Percentage] = mapped_column(
        nullable=False,
        default=Decimal("20"),
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product {self.name} sale={self.sale_price}>"

    def to_dto(self) -> "ProductInfo":
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import ProductInfo

        return ProductInfo(
            id=self.id,
            name=self.name,
            original_price=self.original_price,
            sale_price=self.sale_price,
            default_return_percentage=self.default_return_percentage,
            is_active=self.is_active,
        )
