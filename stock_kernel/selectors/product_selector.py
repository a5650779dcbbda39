"""Read access to the externally owned product catalog."""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import ProductInfo
from stock_kernel.exceptions import ProductNotFoundError
from stock_kernel.models.product import Product
from stock_kernel.selectors.base import BaseSelector


class ProductSelector(BaseSelector):
    """Catalog lookups used for valuation inputs and display names."""

    def get(self, product_id: UUID) -> ProductInfo:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product.to_dto()

    def list_active(self) -> list[ProductInfo]:
        rows = self.session.execute(
            select(Product).where(Product.is_active.is_(True)).order_by(Product.name)
        ).scalars().all()
        return [row.to_dto() for row in rows]
