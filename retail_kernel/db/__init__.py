"""Database layer - engine, base classes and types."""

from retail_kernel.db.base import UUID, Base, JSONBag, TrackedBase, UUIDString
from retail_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
)

__all__ = [
    "create_engine_from_url",
    "make_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "JSONBag",
]
