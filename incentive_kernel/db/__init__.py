"""Database layer - engine, base classes and types."""

from incentive_kernel.db.base import Base, CurrencyCode, MonthYear, TrackedBase, UUIDString
from incentive_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "MonthYear",
    "CurrencyCode",
]
