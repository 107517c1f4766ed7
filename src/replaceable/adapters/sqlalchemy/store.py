"""Table-backed store for the upsert coordinator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from sqlalchemy import and_, func, insert, select, update

from replaceable.domain.conditions import Equals, InsensitiveEquals, IsNull
from replaceable.domain.locking import check_deadline
from replaceable.domain.model import Record

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy import ColumnElement, Table
    from sqlalchemy.orm import Session

    from replaceable.domain.conditions import Predicate, Term
    from replaceable.domain.match import MatchSpec

log = logging.getLogger(__name__)


class RecordNotFoundError(LookupError):
    """Raised when an update targets a primary key that is not stored."""


class SqlAlchemyStore:
    """Store over a single ``Table`` with a one-column primary key.

    Writes are flushed through the session; with ``autocommit`` they are also
    committed, which is what a locked critical section needs so the next lock
    holder sees them.
    """

    def __init__(self, session: Session, table: Table, *, autocommit: bool = False) -> None:
        pk_columns = list(table.primary_key.columns)
        if len(pk_columns) != 1:
            raise ValueError(f"Table {table.name} must have exactly one primary key column")
        self.session = session
        self.table = table
        self.autocommit = autocommit
        self.primary_key = pk_columns[0].name

    def columns(self) -> frozenset[str]:
        return frozenset(column.name for column in self.table.columns)

    def column_exists(self, name: str) -> bool:
        return name in self.table.columns

    def query(self, predicate: Predicate) -> list[Record]:
        if predicate.matches_nothing:
            return []
        pk = self.table.c[self.primary_key]
        stmt = select(self.table).where(and_(*self._clauses(predicate))).order_by(pk)
        return [self._to_record(row) for row in self.session.execute(stmt).mappings()]

    def create(self, record: Record) -> Record:
        values = dict(record)
        if values.get(self.primary_key) is None:
            values.pop(self.primary_key, None)
        check_deadline("creating")
        result = self.session.execute(insert(self.table).values(**values))
        record.id = result.inserted_primary_key[0]
        record.is_new = False
        self._finish_write()
        return record

    def update(self, record: Record) -> Record:
        pk = self.table.c[self.primary_key]
        values = {name: value for name, value in record.items() if name != self.primary_key}
        stmt = update(self.table).where(pk == record.id).values(**values)
        check_deadline("updating")
        result = self.session.execute(stmt)
        if result.rowcount == 0:
            raise RecordNotFoundError(
                f"No {self.table.name} row with {self.primary_key}={record.id!r}"
            )
        record.is_new = False
        self._finish_write()
        return record

    def duplicates(self, spec: MatchSpec, order_by: Sequence[str] = ()) -> list[Record]:
        """Rows whose identity (exact fields, lower-cased insensitive fields) repeats."""

        exact = [self.table.c[name] for name in spec.match_fields]
        lowered = [func.lower(self.table.c[name]) for name in spec.insensitive_match_fields]
        dup_data = (
            select(
                *exact,
                *(
                    expr.label(name)
                    for expr, name in zip(lowered, spec.insensitive_match_fields, strict=True)
                ),
            )
            .group_by(*exact, *lowered)
            .having(func.count() > 1)
            .subquery("dup_data")
        )
        join_condition = and_(
            *(column.is_not_distinct_from(dup_data.c[column.name]) for column in exact),
            *(
                expr.is_not_distinct_from(dup_data.c[name])
                for expr, name in zip(lowered, spec.insensitive_match_fields, strict=True)
            ),
        )
        ordering = [self.table.c[name] for name in order_by] or [self.table.c[self.primary_key]]
        stmt = select(self.table).join(dup_data, join_condition).order_by(*ordering)
        return [self._to_record(row) for row in self.session.execute(stmt).mappings()]

    def _clauses(self, predicate: Predicate) -> list[ColumnElement[bool]]:
        return [self._clause(term) for term in predicate.terms]

    def _clause(self, term: Term) -> ColumnElement[bool]:
        column = self.table.c[term.field]
        if isinstance(term, IsNull):
            return column.is_(None)
        if isinstance(term, InsensitiveEquals):
            return func.lower(column) == term.value
        if isinstance(term, Equals):
            return column == term.value
        raise TypeError(f"Unsupported predicate term: {term!r}")

    def _finish_write(self) -> None:
        if self.autocommit:
            self.session.commit()
        else:
            self.session.flush()

    def _to_record(self, row: Mapping[str, object]) -> Record:
        return Record(row, primary_key=self.primary_key, is_new=False)


if TYPE_CHECKING:
    from replaceable.domain.ports import AuditableStore

    _store_check: AuditableStore = SqlAlchemyStore(
        cast("Session", object()), cast("Table", object())
    )
