"""SQLAlchemy adapter package for replaceable."""

from __future__ import annotations

from .lock_backend import SqlAlchemyLockBackend
from .mappings import create_all_tables, lock_counter_table, metadata
from .store import RecordNotFoundError, SqlAlchemyStore
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    build_engine,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "RecordNotFoundError",
    "SqlAlchemyLockBackend",
    "SqlAlchemyStore",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "build_engine",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "lock_counter_table",
    "metadata",
    "shutdown",
    "startup",
]
