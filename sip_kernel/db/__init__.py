"""Database layer - engine, base classes and session scopes."""

from sip_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from sip_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    session_scope,
)

__all__ = [
    "build_engine",
    "create_tables",
    "drop_tables",
    "session_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
