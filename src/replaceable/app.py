"""Application entry points wiring the domain to the SQLAlchemy adapters."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import MetaData, Table

from replaceable.adapters.sqlalchemy import (
    SqlAlchemyLockBackend,
    SqlAlchemyUnitOfWork,
    configured_engine,
    startup,
)
from replaceable.config.locking import get_lock_config
from replaceable.domain import UpsertCoordinator, duplicates, register

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from sqlalchemy.engine import Engine

    from replaceable.config.locking import LockConfig
    from replaceable.domain import Record, UpsertOutcome
    from replaceable.domain.match import FieldNames

UnitOfWorkFactory = Callable[[], SqlAlchemyUnitOfWork]

log = getLogger(__name__)


def ensure_engine(database_uri: str | None = None) -> Engine:
    engine = configured_engine()
    if engine is None:
        engine = startup(database_uri=database_uri)
    return engine


def reflect_table(table_name: str, *, engine: Engine) -> Table:
    return Table(table_name, MetaData(), autoload_with=engine)


def primary_key_name(table: Table) -> str:
    columns = list(table.primary_key.columns)
    if len(columns) != 1:
        raise ValueError(f"Table {table.name} must have exactly one primary key column")
    return columns[0].name


def upsert_records(
    table: Table,
    candidates: Iterable[Mapping[str, object]],
    *,
    match: FieldNames = None,
    insensitive_match: FieldNames = None,
    inherit: FieldNames = None,
    lock_config: LockConfig | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[UpsertOutcome]:
    """Create-or-merge each candidate into ``table``, committing after every write."""

    engine = ensure_engine()
    config = lock_config or get_lock_config()
    backend = SqlAlchemyLockBackend(engine) if config.concurrency else None
    primary_key = primary_key_name(table)
    rtype = register(
        table.name,
        [column.name for column in table.columns],
        match=match,
        insensitive_match=insensitive_match,
        inherit=inherit,
        primary_key=primary_key,
        lock_config=config,
        lock_backend=backend,
    )
    effective_uow = unit_of_work_factory or SqlAlchemyUnitOfWork

    with effective_uow() as uow:
        coordinator = UpsertCoordinator(uow.store(table, autocommit=True), rtype)
        outcomes = [coordinator.upsert(candidate) for candidate in candidates]

    counts = {result: 0 for result in ("created", "updated", "unchanged")}
    for outcome in outcomes:
        counts[outcome.result.value] += 1
    log.info(
        "Finished upserting into %s: created=%s, updated=%s, unchanged=%s",
        table.name,
        counts["created"],
        counts["updated"],
        counts["unchanged"],
    )
    return outcomes


def audit_duplicates(
    table_name: str,
    *,
    match: FieldNames = None,
    insensitive_match: FieldNames = None,
    order_by: Sequence[str] = (),
    database_uri: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[Record]:
    """List every row of ``table_name`` that shares its identity with another row."""

    engine = ensure_engine(database_uri)
    table = reflect_table(table_name, engine=engine)
    rtype = register(
        table_name,
        [column.name for column in table.columns],
        match=match,
        insensitive_match=insensitive_match,
        primary_key=primary_key_name(table),
    )
    effective_uow = unit_of_work_factory or SqlAlchemyUnitOfWork
    log.info(
        "Auditing %s for duplicates: match=%s, insensitive_match=%s",
        table_name,
        rtype.spec.match_fields,
        rtype.spec.insensitive_match_fields,
    )
    with effective_uow() as uow:
        return duplicates(uow.store(table), rtype.spec, order_by=order_by)
