"""Advisory lock configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import env_flag, env_float
from .errors import ConfigurationError

DEFAULT_LOCK_TIMEOUT: Final[float] = 20.0
DEFAULT_LOCK_GRACE: Final[float] = 10.0
DEFAULT_POLL_INTERVAL: Final[float] = 0.25
LOCK_KEY_NAMESPACE: Final[str] = "replaceable:lock"


@dataclass(frozen=True, slots=True)
class LockConfig:
    """Per-registration switches for the advisory lock.

    ``grace`` is added to ``timeout`` when the held sentinel is written, so a
    crashed holder's key expires a little after its critical section would have
    been aborted anyway.
    """

    concurrency: bool = False
    timeout: float = DEFAULT_LOCK_TIMEOUT
    grace: float = DEFAULT_LOCK_GRACE
    poll_interval: float = DEFAULT_POLL_INTERVAL

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ConfigurationError(f"Lock timeout must be positive, got {self.timeout}")
        if self.grace < 0:
            raise ConfigurationError(f"Lock grace must be non-negative, got {self.grace}")
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"Lock poll interval must be positive, got {self.poll_interval}"
            )

    @property
    def ttl(self) -> float:
        return self.timeout + self.grace

    @classmethod
    def from_environment(cls) -> LockConfig:
        return cls(
            concurrency=env_flag("REPLACEABLE_CONCURRENCY"),
            timeout=env_float("REPLACEABLE_LOCK_TIMEOUT", default=DEFAULT_LOCK_TIMEOUT),
            grace=env_float("REPLACEABLE_LOCK_GRACE", default=DEFAULT_LOCK_GRACE),
            poll_interval=env_float(
                "REPLACEABLE_LOCK_POLL_INTERVAL", default=DEFAULT_POLL_INTERVAL
            ),
        )


def get_lock_config() -> LockConfig:
    return LockConfig.from_environment()
