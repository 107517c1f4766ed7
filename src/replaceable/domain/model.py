"""Record container and upsert result types."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

DEFAULT_PRIMARY_KEY: Final[str] = "id"


class Record(MutableMapping[str, object]):
    """Field values of a single stored (or about to be stored) row.

    An absent field and a field holding ``None`` are equivalent; the empty
    string is a present value.
    """

    __slots__ = ("_values", "has_been_replaced", "is_new", "primary_key")

    def __init__(
        self,
        values: Mapping[str, object] | None = None,
        *,
        primary_key: str = DEFAULT_PRIMARY_KEY,
        is_new: bool = True,
    ) -> None:
        self._values: dict[str, object] = dict(values or {})
        self.primary_key = primary_key
        self.is_new = is_new
        self.has_been_replaced = False

    def __getitem__(self, key: str) -> object:
        return self._values[key]

    def __setitem__(self, key: str, value: object) -> None:
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        state = "new" if self.is_new else "persisted"
        return f"Record({self._values!r}, {state})"

    @property
    def id(self) -> object:
        return self._values.get(self.primary_key)

    @id.setter
    def id(self, value: object) -> None:
        self._values[self.primary_key] = value

    @property
    def persisted(self) -> bool:
        return not self.is_new

    def copy(self) -> Record:
        clone = Record(self._values, primary_key=self.primary_key, is_new=self.is_new)
        clone.has_been_replaced = self.has_been_replaced
        return clone

    def replace_values(self, values: Mapping[str, object]) -> None:
        self._values = dict(values)

    def as_dict(self) -> dict[str, object]:
        return dict(self._values)


class UpsertResult(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class UpsertOutcome:
    """Tagged result of a single create-or-merge call."""

    result: UpsertResult
    record: Record
    changes: frozenset[str] = field(default_factory=frozenset[str])

    @property
    def created(self) -> bool:
        return self.result is UpsertResult.CREATED

    @property
    def wrote(self) -> bool:
        return self.result is not UpsertResult.UNCHANGED
