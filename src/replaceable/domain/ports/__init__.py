"""Domain port definitions for adapters."""

from __future__ import annotations

from .locking import LockBackend
from .persistence import AuditableStore, Store

__all__ = [
    "AuditableStore",
    "LockBackend",
    "Store",
]
