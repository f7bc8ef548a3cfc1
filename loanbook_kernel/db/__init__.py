"""Database layer - engine, base classes and column types."""

from loanbook_kernel.db.base import Base, TimestampedBase, UUIDString
from loanbook_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from loanbook_kernel.db.types import ZERO

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "ZERO",
]
