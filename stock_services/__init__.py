"""
stock_services -- orchestration over the stock kernel.

Owns transactions (StockWorkflow), post-commit notification and the
optional maintenance sweep.  Kernel services below this layer only flush.
"""

from stock_services.notification import (
    BackgroundNotifier,
    DispatchResult,
    InlineNotifier,
    NotificationDispatcher,
)
from stock_services.stock_workflow import AgedBatch, StockWorkflow
from stock_services.sweep import MaintenanceSweep, SweepReport

__all__ = [
    "AgedBatch",
    "BackgroundNotifier",
    "DispatchResult",
    "InlineNotifier",
    "MaintenanceSweep",
    "NotificationDispatcher",
    "StockWorkflow",
    "SweepReport",
]
