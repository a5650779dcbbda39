"""
Stock Kernel

Batch-level perishable inventory with:
- Deterministic day-granularity aging
- Oldest-first (FIFO) allocation under row locks
- Atomic return processing with immutable item snapshots
- Compensating undo that restores original batch ages
"""

__version__ = "0.1.0"
