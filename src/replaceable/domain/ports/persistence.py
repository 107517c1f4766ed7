"""Ports for the record store the upsert flow writes into."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from replaceable.domain.conditions import Predicate
    from replaceable.domain.match import MatchSpec
    from replaceable.domain.model import Record


@runtime_checkable
class Store(Protocol):
    """Minimal persistence contract consumed by the upsert coordinator."""

    primary_key: str

    def query(self, predicate: Predicate) -> Sequence[Record]: ...

    def create(self, record: Record) -> Record: ...

    def update(self, record: Record) -> Record: ...

    def column_exists(self, name: str) -> bool: ...

    def columns(self) -> frozenset[str]: ...


@runtime_checkable
class AuditableStore(Store, Protocol):
    """Store that can list every record belonging to a duplicate group."""

    def duplicates(self, spec: MatchSpec, order_by: Sequence[str] = ()) -> Sequence[Record]: ...
