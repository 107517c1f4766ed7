"""Declarative description of which fields identify a record."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from typing import Final, TypeAlias

from .model import DEFAULT_PRIMARY_KEY

log = logging.getLogger(__name__)

TIMESTAMP_FIELDS: Final[tuple[str, ...]] = ("created_at", "updated_at")

FieldNames: TypeAlias = str | Sequence[str] | None


def _flatten(names: FieldNames) -> list[str]:
    if names is None:
        return []
    if isinstance(names, str):
        return [names]
    return [str(name) for name in names if name is not None]


def sanitize_field_names(schema: Collection[str], *groups: FieldNames) -> tuple[str, ...]:
    """Keep the requested names that exist in ``schema``, in request order, once each.

    Unknown names are dropped rather than rejected so a record type can share
    options with schemas lacking optional columns (e.g. timestamps).
    """

    kept: list[str] = []
    for group in groups:
        for name in _flatten(group):
            if name in kept:
                continue
            if name not in schema:
                log.debug("Dropping unknown field %r from match specification", name)
                continue
            kept.append(name)
    return tuple(kept)


@dataclass(frozen=True, slots=True)
class MatchSpec:
    match_fields: tuple[str, ...] = ()
    insensitive_match_fields: tuple[str, ...] = ()
    inherit_fields: tuple[str, ...] = ()

    @classmethod
    def from_options(
        cls,
        schema: Collection[str],
        *,
        match: FieldNames = None,
        insensitive_match: FieldNames = None,
        inherit: FieldNames = None,
        primary_key: str = DEFAULT_PRIMARY_KEY,
    ) -> MatchSpec:
        """Build a spec from registration options, sanitised against ``schema``.

        The existing record always keeps its primary key, its timestamps and
        the stored spelling of its case-insensitive identity, so those are
        folded into the inherited fields whether or not they were requested.
        """

        return cls(
            match_fields=sanitize_field_names(schema, match),
            insensitive_match_fields=sanitize_field_names(schema, insensitive_match),
            inherit_fields=sanitize_field_names(
                schema, inherit, insensitive_match, primary_key, TIMESTAMP_FIELDS
            ),
        )

    @property
    def identity_fields(self) -> tuple[str, ...]:
        return self.match_fields + self.insensitive_match_fields

    @property
    def is_deduplicating(self) -> bool:
        return bool(self.match_fields or self.insensitive_match_fields)
