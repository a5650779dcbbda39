"""Database layer - engine, base classes, types, and immutability guards."""

from stock_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from stock_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
    transaction_scope,
)
from stock_kernel.db.types import (
    ExactDecimal,
    Money,
    Percentage,
    Quantity,
    round_money,
    to_decimal,
)

__all__ = [
    "Base",
    "build_engine",
    "ExactDecimal",
    "Money",
    "Percentage",
    "Quantity",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "round_money",
    "session_scope",
    "to_decimal",
    "transaction_scope",
]
