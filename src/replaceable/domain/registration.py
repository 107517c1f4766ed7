"""Per-record-type registration of match options and lock settings."""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass, field

from replaceable.config.locking import LockConfig

from .locking import require_increment
from .match import FieldNames, MatchSpec
from .model import DEFAULT_PRIMARY_KEY
from .ports import LockBackend

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReplaceableType:
    """Immutable registration shared by every upsert of one record type."""

    name: str
    schema: frozenset[str]
    spec: MatchSpec
    primary_key: str = DEFAULT_PRIMARY_KEY
    lock_config: LockConfig = field(default_factory=LockConfig)
    lock_backend: LockBackend | None = None

    @property
    def locking(self) -> bool:
        return self.lock_config.concurrency


def register(
    name: str,
    schema: Collection[str],
    *,
    match: FieldNames = None,
    insensitive_match: FieldNames = None,
    inherit: FieldNames = None,
    primary_key: str = DEFAULT_PRIMARY_KEY,
    lock_config: LockConfig | None = None,
    lock_backend: LockBackend | None = None,
) -> ReplaceableType:
    """Register a record type for create-or-merge writes.

    ``schema`` is the set of field names the store knows for this type; option
    names outside it are dropped. Raises ``LockingUnavailable`` straight away
    when concurrency is on and ``lock_backend`` cannot increment.
    """

    config = lock_config or LockConfig()
    if config.concurrency:
        require_increment(lock_backend)

    known = frozenset(schema)
    spec = MatchSpec.from_options(
        known,
        match=match,
        insensitive_match=insensitive_match,
        inherit=inherit,
        primary_key=primary_key,
    )
    log.debug(
        "Registered %s: match=%s insensitive_match=%s inherit=%s concurrency=%s",
        name,
        spec.match_fields,
        spec.insensitive_match_fields,
        spec.inherit_fields,
        config.concurrency,
    )
    return ReplaceableType(
        name=name,
        schema=known,
        spec=spec,
        primary_key=primary_key,
        lock_config=config,
        lock_backend=lock_backend,
    )
