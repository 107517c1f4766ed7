"""Domain layer: match specifications, merging, locking and the upsert flow."""

from __future__ import annotations

from .conditions import Equals, InsensitiveEquals, IsNull, Predicate, Term, build_conditions
from .errors import DuplicateConflict, LockingUnavailable, LockTimeout, ReplaceableError
from .finder import duplicates, find_duplicate, find_duplicates
from .locking import (
    AdvisoryLock,
    LockDeadline,
    LockTicket,
    check_deadline,
    current_deadline,
    lock_if,
    lock_key,
    require_increment,
    with_lock,
)
from .match import MatchSpec, sanitize_field_names
from .merge import MergeOutcome, merge
from .model import Record, UpsertOutcome, UpsertResult
from .registration import ReplaceableType, register
from .upsert import UpsertCoordinator, upsert

__all__ = [
    "AdvisoryLock",
    "DuplicateConflict",
    "Equals",
    "InsensitiveEquals",
    "IsNull",
    "LockDeadline",
    "LockTicket",
    "LockTimeout",
    "LockingUnavailable",
    "MatchSpec",
    "MergeOutcome",
    "Predicate",
    "Record",
    "ReplaceableError",
    "ReplaceableType",
    "Term",
    "UpsertCoordinator",
    "UpsertOutcome",
    "UpsertResult",
    "build_conditions",
    "check_deadline",
    "current_deadline",
    "duplicates",
    "find_duplicate",
    "find_duplicates",
    "lock_if",
    "lock_key",
    "merge",
    "register",
    "require_increment",
    "sanitize_field_names",
    "upsert",
    "with_lock",
]
