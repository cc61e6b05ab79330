"""Database layer: declarative base, engine/session management, column types."""

from erp_kernel.db.base import Base, SoftDeleteMixin, TrackedBase, UUIDString
from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from erp_kernel.db.types import Money, Quantity, round_money

__all__ = [
    "Base",
    "Money",
    "Quantity",
    "SoftDeleteMixin",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "round_money",
    "session_scope",
]
