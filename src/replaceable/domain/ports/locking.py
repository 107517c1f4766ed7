"""Port for the shared counter backend behind the advisory lock."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class LockBackend(Protocol):
    """Key-value counters shared by every process taking part in locking."""

    def increment(self, key: str) -> int:
        """Atomically add one to ``key`` and return the new value (absent counts as 0)."""
        ...

    def write_raw(self, key: str, value: int, expires_in: float | None = None) -> None:
        """Overwrite ``key``; with ``expires_in`` the key reads as absent afterwards."""
        ...
