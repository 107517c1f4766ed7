"""Translate a candidate record and a match spec into a store predicate."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, TypeAlias

if TYPE_CHECKING:
    from .match import MatchSpec


def fold_case(value: object) -> object:
    return value.lower() if isinstance(value, str) else value


@dataclass(frozen=True, slots=True)
class Equals:
    field: str
    value: object
    op: Literal["eq"] = "eq"

    def matches(self, values: Mapping[str, object]) -> bool:
        current = values.get(self.field)
        return current is not None and current == self.value

    def __str__(self) -> str:
        return f"{self.field} = {self.value!r}"


@dataclass(frozen=True, slots=True)
class InsensitiveEquals:
    """Case-insensitive equality; ``value`` is stored already folded."""

    field: str
    value: object
    op: Literal["ieq"] = "ieq"

    def matches(self, values: Mapping[str, object]) -> bool:
        current = values.get(self.field)
        return current is not None and fold_case(current) == self.value

    def __str__(self) -> str:
        return f"LOWER({self.field}) = {self.value!r}"


@dataclass(frozen=True, slots=True)
class IsNull:
    field: str
    op: Literal["null"] = "null"

    @property
    def value(self) -> None:
        return None

    def matches(self, values: Mapping[str, object]) -> bool:
        return values.get(self.field) is None

    def __str__(self) -> str:
        return f"{self.field} IS NULL"


Term: TypeAlias = Equals | InsensitiveEquals | IsNull


@dataclass(frozen=True, slots=True)
class Predicate:
    """Conjunction of per-field terms.

    A predicate with ``matches_nothing`` set never selects a record; it is what
    record types without identity fields produce.
    """

    terms: tuple[Term, ...] = ()
    type_name: str = ""
    matches_nothing: bool = False

    @classmethod
    def nothing(cls, type_name: str = "") -> Predicate:
        return cls(terms=(), type_name=type_name, matches_nothing=True)

    def matches(self, values: Mapping[str, object]) -> bool:
        if self.matches_nothing:
            return False
        return all(term.matches(values) for term in self.terms)

    def serialize(self) -> str:
        payload = {
            "type": self.type_name,
            "nothing": self.matches_nothing,
            "terms": [[term.op, term.field, term.value] for term in self.terms],
        }
        return json.dumps(payload, default=str, sort_keys=True, separators=(",", ":"))

    def __str__(self) -> str:
        if self.matches_nothing:
            return "<nothing>"
        return " AND ".join(str(term) for term in self.terms)


def build_conditions(
    candidate: Mapping[str, object],
    spec: MatchSpec,
    *,
    type_name: str = "",
) -> Predicate:
    """Build the predicate selecting stored records equivalent to ``candidate``."""

    if not spec.is_deduplicating:
        return Predicate.nothing(type_name)

    terms: list[Term] = []
    for name in spec.match_fields:
        value = candidate.get(name)
        terms.append(IsNull(name) if value is None else Equals(name, value))
    for name in spec.insensitive_match_fields:
        value = candidate.get(name)
        terms.append(IsNull(name) if value is None else InsensitiveEquals(name, fold_case(value)))
    return Predicate(terms=tuple(terms), type_name=type_name)
