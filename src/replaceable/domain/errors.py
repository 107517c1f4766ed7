"""Errors raised by the create-or-merge flow."""

from __future__ import annotations

from typing import TYPE_CHECKING

from replaceable.config.errors import ConfigurationError

if TYPE_CHECKING:
    from .conditions import Predicate


class ReplaceableError(RuntimeError):
    """Base class for failures surfaced by replaceable."""


class DuplicateConflict(ReplaceableError):
    """More than one stored record satisfies a match predicate.

    Never resolved automatically: either the match specification is not
    selective enough or the store already holds corrupt duplicates.
    """

    def __init__(self, *, count: int, predicate: Predicate) -> None:
        self.count = count
        self.predicate = predicate
        self.type_name = predicate.type_name
        label = self.type_name or "record"
        super().__init__(
            f"{count} duplicate {label} records present in store matching {predicate}"
        )

    @property
    def identity(self) -> dict[str, object]:
        """Match field values of the candidate that triggered the conflict."""

        return predicate_identity(self.predicate)


class LockingUnavailable(ReplaceableError, ConfigurationError):
    """Concurrency was requested but the lock backend cannot increment atomically."""


class LockTimeout(ReplaceableError):
    """A locked critical section did not finish within its timeout."""

    def __init__(self, *, key: str, timeout: float, phase: str) -> None:
        self.key = key
        self.timeout = timeout
        self.phase = phase
        super().__init__(f"Lock {key} timed out after {timeout:g}s while {phase}")


def predicate_identity(predicate: Predicate) -> dict[str, object]:
    return {term.field: term.value for term in predicate.terms}
