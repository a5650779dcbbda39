"""Services for the stock kernel (write side, flush-only)."""

from stock_kernel.services.batch_store import BatchStore
from stock_kernel.services.fifo_allocator import FifoAllocator
from stock_kernel.services.return_processor import (
    DEFAULT_ALLOWED_PERCENTAGES,
    ReturnProcessor,
)
from stock_kernel.services.return_reversal import ReturnReversalService

__all__ = [
    "DEFAULT_ALLOWED_PERCENTAGES",
    "BatchStore",
    "FifoAllocator",
    "ReturnProcessor",
    "ReturnReversalService",
]
