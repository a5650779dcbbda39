"""
Module: stock_kernel.db.types
Responsibility: Exact decimal column type, annotated column aliases and
    Decimal helpers shared by models, engines and services so that
    quantities, prices and percentages use one precision everywhere.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    - No floats.  Quantities may be fractional (e.g. 2.5 kg) but are always
      Decimal; to_decimal() refuses float input outright.
    - Stored decimals round-trip exactly on every backend.  SQLite's NUMERIC
      affinity keeps values as 8-byte REAL, so ExactDecimal stores them there
      as fixed-scale text and does all arithmetic in Python.
"""

from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated, Any

from sqlalchemy import Numeric, String
from sqlalchemy.orm import mapped_column
from sqlalchemy.types import TypeDecorator


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an int, str or Decimal to Decimal.

    Raises:
        TypeError: On float input (binary floats cannot represent prices).
        ValueError: On non-numeric strings.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Refusing to convert {type(value).__name__} to Decimal: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def round_money(amount: Decimal, places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a monetary amount for display.  Stored values are never rounded."""
    quantum = Decimal(1).scaleb(-places)
    return amount.quantize(quantum, rounding=DEFAULT_ROUNDING)


class ExactDecimal(TypeDecorator):
    """
    Numeric(precision, scale) that never passes through a float.

    PostgreSQL gets a native NUMERIC column.  SQLite gets VARCHAR holding the
    value quantized to ``scale`` places in plain notation ("5.000000000"),
    which also keeps text comparison against zero correct for the
    non-negative CHECK constraint.

    Raises:
        decimal.InvalidOperation: When a bound value needs more than
            ``precision`` digits at ``scale`` places.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int = 38, scale: int = 9):
        super().__init__(precision=precision, scale=scale, asdecimal=True)
        self.precision = precision
        self.scale = scale

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        exact = to_decimal(value).quantize(
            Decimal(1).scaleb(-self.scale), context=Context(prec=self.precision)
        )
        if not exact:
            exact = exact.copy_abs()
        return format(exact, "f")

    def process_result_value(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return Decimal(str(value))


# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, mapped_column(ExactDecimal(38, 9))]

# Stock quantity (fractional units allowed)
Quantity = Annotated[Decimal, mapped_column(ExactDecimal(38, 9))]

# Return percentage (0-100)
Percentage = Annotated[Decimal, mapped_column(ExactDecimal(7, 4))]

# Product display name
ProductName = Annotated[str, mapped_column(String(255))]

# Actor identifier as supplied by the caller's auth layer
ActorRef = Annotated[str, mapped_column(String(100))]
