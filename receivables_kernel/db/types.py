"""
Module: receivables_kernel.db.types
Responsibility: Column types and helpers for storing money without binary
    floating point. Amounts are persisted as integer minor units (cents),
    which every relational backend stores exactly.
Architecture position: Kernel > DB. May be imported by module ORM files.

Invariants enforced:
    - No floats: MinorUnits rejects float binds and returns Decimal.
    - round_money() is the single rounding helper for persisted values
      (ROUND_HALF_UP to the currency's decimal places).

Failure modes:
    - TypeError when a float is bound to a MinorUnits column.
    - ValueError when a value carries more precision than the column scale.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, String
from sqlalchemy.types import TypeDecorator

# ISO 4217 currency code (e.g., "USD", "KES")
Currency = Annotated[str, String(3)]

# Short identifier strings (invoice / receipt numbers, payment method ids)
ShortCode = Annotated[str, String(50)]

# Long text for notes
LongText = Annotated[str, String(4000)]

DEFAULT_ROUNDING = ROUND_HALF_UP

# Scale for stored amounts; covers every registered currency (BHD, KWD have 3)
AMOUNT_SCALE = 3


def money_from_int(value: int, decimal_places: int = 2) -> Decimal:
    """
    Create a Decimal amount from integer minor units.

    Example:
        money_from_int(1050, 2) -> Decimal("10.50")
    """
    return Decimal(value).scaleb(-decimal_places)


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places`` (ROUND_HALF_UP by default)."""
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def to_minor_units(value: Decimal, decimal_places: int = 2) -> int:
    """
    Convert a Decimal amount to integer minor units.

    Raises:
        ValueError: If the value has sub-minor-unit precision; persisted
            amounts must already be rounded.
    """
    rounded = round_money(value, decimal_places)
    if rounded != value:
        raise ValueError(
            f"Amount {value} has more than {decimal_places} decimal places"
        )
    return int(rounded.scaleb(decimal_places))


class MinorUnits(TypeDecorator):
    """
    Decimal amount stored as a BIGINT count of minor units.

    Contract:
        ``MinorUnits(decimal_places=2)`` stores Decimal("12.34") as 1234 and
        loads it back as Decimal("12.34").
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, decimal_places: int = 2, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.decimal_places = decimal_places

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError(f"MinorUnits refuses float amount {value!r}")
        return to_minor_units(Decimal(value), self.decimal_places)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return money_from_int(int(value), self.decimal_places)
