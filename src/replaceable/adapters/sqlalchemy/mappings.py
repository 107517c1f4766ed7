"""SQLAlchemy table metadata owned by replaceable."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import Column, Float, Integer, MetaData, String, Table

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

# expires_at is a wall-clock epoch so every process sharing the database agrees on it.
lock_counter_table = Table(
    "replaceable_lock_counter",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Integer, nullable=False, default=0),
    Column("expires_at", Float, nullable=True),
)


def create_all_tables(engine: Engine) -> None:
    """Create the tables replaceable needs (currently only the lock counters)."""

    log.info("Creating replaceable tables")
    metadata.create_all(engine)
