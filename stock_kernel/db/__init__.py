"""Database layer - engine, base classes, types, and ledger protection."""

from stock_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from stock_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from stock_kernel.db.types import Money, Quantity, UTCDateTime

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "UTCDateTime",
]
