"""Create-or-merge orchestration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .conditions import build_conditions
from .finder import find_duplicate
from .locking import check_deadline, lock_if, lock_key
from .merge import merge
from .model import Record, UpsertOutcome, UpsertResult
from .registration import ReplaceableType, register

if TYPE_CHECKING:
    from collections.abc import Mapping

    from replaceable.config.locking import LockConfig

    from .conditions import Predicate
    from .match import MatchSpec
    from .ports import LockBackend, Store

log = logging.getLogger(__name__)


class UpsertCoordinator:
    """Persist candidates of one registered type without creating duplicates.

    Each call queries for an equivalent record and then creates, updates or
    leaves it alone. With concurrency enabled the query and the write run
    inside an advisory lock keyed on the match predicate, so two writers
    racing on the same identity are serialised.
    """

    def __init__(
        self,
        store: Store,
        replaceable_type: ReplaceableType,
        *,
        lock_backend: LockBackend | None = None,
    ) -> None:
        self.store = store
        self.replaceable_type = replaceable_type
        self.lock_backend = lock_backend or replaceable_type.lock_backend
        if replaceable_type.locking and getattr(store, "autocommit", True) is False:
            log.warning(
                "%s upserts are locked but %s does not commit its writes; other "
                "processes will not see them when the lock is released",
                replaceable_type.name,
                type(store).__name__,
            )

    def upsert(self, candidate: Record | Mapping[str, object]) -> UpsertOutcome:
        record = self._as_record(candidate)
        rtype = self.replaceable_type
        predicate = build_conditions(record, rtype.spec, type_name=rtype.name)
        config = rtype.lock_config
        return lock_if(
            config.concurrency,
            self.lock_backend,
            lock_key(predicate),
            lambda: self._find_and_replace(record, predicate),
            timeout=config.timeout,
            grace=config.grace,
            poll_interval=config.poll_interval,
        )

    def _find_and_replace(self, record: Record, predicate: Predicate) -> UpsertOutcome:
        existing = find_duplicate(self.store, predicate)
        if existing is None:
            check_deadline("creating")
            created = self.store.create(record)
            created.is_new = False
            self._log_outcome("Created", created)
            return UpsertOutcome(result=UpsertResult.CREATED, record=created)

        outcome = merge(
            record, existing, self.replaceable_type.spec, columns=self.replaceable_type.schema
        )
        if not outcome.changed:
            self._log_outcome("Found unchanged", outcome.record)
            return UpsertOutcome(result=UpsertResult.UNCHANGED, record=outcome.record)

        check_deadline("updating")
        updated = self.store.update(outcome.record)
        self._log_outcome("Updated existing", updated)
        return UpsertOutcome(
            result=UpsertResult.UPDATED, record=updated, changes=outcome.changes
        )

    def _as_record(self, candidate: Record | Mapping[str, object]) -> Record:
        if isinstance(candidate, Record):
            return candidate
        return Record(candidate, primary_key=self.replaceable_type.primary_key)

    def _log_outcome(self, verb: str, record: Record) -> None:
        name = record.get("name")
        suffix = f" - Name: {name}" if "name" in self.replaceable_type.schema else ""
        log.info("%s %s #%s%s", verb, self.replaceable_type.name, record.id, suffix)


def upsert(
    store: Store,
    candidate: Record | Mapping[str, object],
    spec: MatchSpec,
    lock_config: LockConfig | None = None,
    *,
    lock_backend: LockBackend | None = None,
    type_name: str = "",
) -> UpsertOutcome:
    """One-shot create-or-merge; the spec is re-sanitised against the store's columns."""

    rtype = register(
        type_name,
        store.columns(),
        match=spec.match_fields,
        insensitive_match=spec.insensitive_match_fields,
        inherit=spec.inherit_fields,
        primary_key=store.primary_key,
        lock_config=lock_config,
        lock_backend=lock_backend,
    )
    return UpsertCoordinator(store, rtype).upsert(candidate)
