"""Lock counters stored in a database table.

Each operation runs in its own short transaction on the engine, independent of
any session the caller holds, so lock state is visible to other processes as
soon as the call returns.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, case, null, select
from sqlalchemy.dialects import postgresql, sqlite

from replaceable.domain.errors import LockingUnavailable

from .mappings import lock_counter_table

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

# Dialects offering INSERT .. ON CONFLICT DO UPDATE .. RETURNING, which makes the
# increment a single atomic statement.
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class SqlAlchemyLockBackend:
    def __init__(self, engine: Engine, *, clock: Callable[[], float] = time.time) -> None:
        insert_fn = _UPSERT_INSERTS.get(engine.dialect.name)
        if insert_fn is None:
            raise LockingUnavailable(
                f"Database dialect {engine.dialect.name!r} has no atomic increment support"
            )
        self.engine = engine
        self._insert = insert_fn
        self._clock = clock

    def increment(self, key: str) -> int:
        table = lock_counter_table
        expired = and_(table.c.expires_at.is_not(None), table.c.expires_at <= self._clock())
        stmt = self._insert(table).values(key=key, value=1, expires_at=None)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.key],
            set_={
                "value": case((expired, 1), else_=table.c.value + 1),
                "expires_at": case((expired, null()), else_=table.c.expires_at),
            },
        ).returning(table.c.value)
        with self.engine.begin() as connection:
            return int(connection.execute(stmt).scalar_one())

    def write_raw(self, key: str, value: int, expires_in: float | None = None) -> None:
        table = lock_counter_table
        expires_at = None if expires_in is None else self._clock() + expires_in
        stmt = self._insert(table).values(key=key, value=value, expires_at=expires_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.key],
            set_={"value": value, "expires_at": expires_at},
        )
        with self.engine.begin() as connection:
            connection.execute(stmt)

    def read(self, key: str) -> int:
        """Current counter value, with expired keys reading as 0."""

        table = lock_counter_table
        stmt = select(table.c.value, table.c.expires_at).where(table.c.key == key)
        with self.engine.connect() as connection:
            row = connection.execute(stmt).one_or_none()
        if row is None:
            return 0
        value, expires_at = row
        if expires_at is not None and expires_at <= self._clock():
            return 0
        return int(value)
