"""Database layer - engine, base classes and money column types."""

from receivables_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from receivables_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from receivables_kernel.db.types import (
    AMOUNT_SCALE,
    MinorUnits,
    money_from_int,
    round_money,
    to_minor_units,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "AMOUNT_SCALE",
    "MinorUnits",
    "money_from_int",
    "round_money",
    "to_minor_units",
]
