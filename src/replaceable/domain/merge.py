"""Reconcile a candidate with the duplicate it replaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Collection

    from .match import MatchSpec
    from .model import Record


@dataclass(frozen=True, slots=True)
class MergeOutcome:
    record: Record
    changes: frozenset[str]

    @property
    def changed(self) -> bool:
        return bool(self.changes)


def merge(
    candidate: Record,
    duplicate: Record,
    spec: MatchSpec,
    *,
    columns: Collection[str] = (),
) -> MergeOutcome:
    """Fold ``candidate`` into ``duplicate`` and report which fields would change.

    Inherited fields are taken from the duplicate before anything else is
    copied, so they never show up as changes. Every other field, whether in
    ``columns`` or held by either record, takes the candidate's value; a field
    the candidate leaves out is written as ``None``. The candidate is updated
    in place to hold the merged values and the duplicate's identity;
    ``duplicate`` itself is left untouched.
    """

    for name in spec.inherit_fields:
        candidate[name] = duplicate.get(name)

    working = duplicate.as_dict()
    inherited = {*spec.inherit_fields, duplicate.primary_key}
    for name in {*columns, *duplicate, *candidate}:
        if name in inherited:
            continue
        working[name] = candidate.get(name)

    changes = frozenset(name for name, value in working.items() if value != duplicate.get(name))

    candidate.replace_values(working)
    candidate.id = duplicate.id
    candidate.is_new = False
    candidate.has_been_replaced = True
    return MergeOutcome(record=candidate, changes=changes)
