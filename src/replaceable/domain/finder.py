"""Look up stored records equivalent to a candidate."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import DuplicateConflict

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .conditions import Predicate
    from .match import MatchSpec
    from .model import Record
    from .ports import AuditableStore, Store

log = logging.getLogger(__name__)


def find_duplicates(store: Store, predicate: Predicate) -> list[Record]:
    if predicate.matches_nothing:
        return []
    log.debug("Querying duplicates where %s", predicate)
    return list(store.query(predicate))


def find_duplicate(store: Store, predicate: Predicate) -> Record | None:
    """Return the single stored duplicate, if any.

    Raises ``DuplicateConflict`` when the store already holds several; picking
    one of them would hide a data-integrity problem.
    """

    existing = find_duplicates(store, predicate)
    if len(existing) > 1:
        raise DuplicateConflict(count=len(existing), predicate=predicate)
    return existing[0] if existing else None


def duplicates(
    store: AuditableStore,
    spec: MatchSpec,
    *,
    order_by: Sequence[str] = (),
) -> list[Record]:
    """Every stored record sharing its identity with at least one other record."""

    if not spec.is_deduplicating:
        return []
    return list(store.duplicates(spec, order_by))
