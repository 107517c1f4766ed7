"""Process-local adapters for the store and lock ports.

Both are safe to share between threads. ``InMemoryLockBackend`` is a working
lock backend for single-process deployments; ``InMemoryStore`` is mostly useful
in tests and for embedding layers that keep records in memory.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import defaultdict
from typing import TYPE_CHECKING

from replaceable.domain.conditions import fold_case
from replaceable.domain.locking import check_deadline
from replaceable.domain.model import DEFAULT_PRIMARY_KEY, Record

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Mapping, Sequence

    from replaceable.domain.conditions import Predicate
    from replaceable.domain.match import MatchSpec

log = logging.getLogger(__name__)


class UnknownColumnError(KeyError):
    """Raised when a record carries a field the store has no column for."""


class InMemoryStore:
    def __init__(self, columns: Collection[str], *, primary_key: str = DEFAULT_PRIMARY_KEY) -> None:
        self.primary_key = primary_key
        self._columns = frozenset(columns) | {primary_key}
        self._rows: dict[int, dict[str, object]] = {}
        self._ids = itertools.count(1)
        self._mutex = threading.Lock()

    def columns(self) -> frozenset[str]:
        return self._columns

    def column_exists(self, name: str) -> bool:
        return name in self._columns

    def query(self, predicate: Predicate) -> list[Record]:
        with self._mutex:
            rows = [row for _, row in sorted(self._rows.items()) if predicate.matches(row)]
        return [self._to_record(row) for row in rows]

    def create(self, record: Record) -> Record:
        values = self._checked(record)
        with self._mutex:
            check_deadline("creating")
            row_id = next(self._ids)
            values[self.primary_key] = row_id
            self._rows[row_id] = values
        record.id = row_id
        record.is_new = False
        return record

    def update(self, record: Record) -> Record:
        values = self._checked(record)
        row_id = record.id
        with self._mutex:
            check_deadline("updating")
            if row_id not in self._rows:
                raise KeyError(f"No stored record with {self.primary_key}={row_id!r}")
            self._rows[row_id] = {**self._rows[row_id], **values}
        record.is_new = False
        return record

    def duplicates(self, spec: MatchSpec, order_by: Sequence[str] = ()) -> list[Record]:
        groups: defaultdict[tuple[object, ...], list[dict[str, object]]] = defaultdict(list)
        with self._mutex:
            for _, row in sorted(self._rows.items()):
                key = tuple(row.get(name) for name in spec.match_fields) + tuple(
                    fold_case(row.get(name)) for name in spec.insensitive_match_fields
                )
                groups[key].append(row)
        rows = [row for members in groups.values() if len(members) > 1 for row in members]
        ordering = tuple(order_by) or (self.primary_key,)
        rows.sort(key=lambda row: tuple(_sort_key(row.get(name)) for name in ordering))
        return [self._to_record(row) for row in rows]

    def all(self) -> list[Record]:
        with self._mutex:
            rows = [row for _, row in sorted(self._rows.items())]
        return [self._to_record(row) for row in rows]

    def __len__(self) -> int:
        return len(self._rows)

    def _checked(self, record: Mapping[str, object]) -> dict[str, object]:
        unknown = sorted(set(record) - self._columns)
        if unknown:
            raise UnknownColumnError(f"Unknown columns: {', '.join(unknown)}")
        return dict(record)

    def _to_record(self, row: Mapping[str, object]) -> Record:
        return Record(row, primary_key=self.primary_key, is_new=False)


def _sort_key(value: object) -> tuple[bool, object]:
    # NULLs sort last, as in PostgreSQL's default ascending order.
    return (value is None, "" if value is None else value)


class InMemoryLockBackend:
    """Thread-safe counters with lazy expiry."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, tuple[int, float | None]] = {}
        self._mutex = threading.Lock()

    def increment(self, key: str) -> int:
        with self._mutex:
            value, expires_at = self._live(key)
            value += 1
            self._values[key] = (value, expires_at)
            return value

    def write_raw(self, key: str, value: int, expires_in: float | None = None) -> None:
        expires_at = None if expires_in is None else self._clock() + expires_in
        with self._mutex:
            self._values[key] = (value, expires_at)

    def read(self, key: str) -> int:
        with self._mutex:
            return self._live(key)[0]

    def _live(self, key: str) -> tuple[int, float | None]:
        value, expires_at = self._values.get(key, (0, None))
        if expires_at is not None and expires_at <= self._clock():
            log.debug("Lock counter %s expired", key)
            del self._values[key]
            return 0, None
        return value, expires_at
