"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.product_selector import ProductSelector
from stock_kernel.selectors.return_selector import ReturnSelector

__all__ = [
    "ProductSelector",
    "ReturnSelector",
]
