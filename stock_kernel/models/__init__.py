"""ORM models. Importing this package registers every table on Base.metadata."""

from stock_kernel.models.batch import InventoryBatch
from stock_kernel.models.product import Product
from stock_kernel.models.returns import Return, ReturnItem

__all__ = [
    "InventoryBatch",
    "Product",
    "Return",
    "ReturnItem",
]
