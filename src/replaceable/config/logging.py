"""Logging setup for the replaceable entry points."""

from __future__ import annotations

import logging
import os

from .errors import ConfigurationError

LOG_LEVEL_ENV = "REPLACEABLE_LOG_LEVEL"


def log_level_from_env(*, default: int) -> int:
    """Level named by ``REPLACEABLE_LOG_LEVEL`` (e.g. ``debug``), or ``default``."""

    raw = os.getenv(LOG_LEVEL_ENV)
    if raw is None or not raw.strip():
        return default
    level = logging.getLevelNamesMapping().get(raw.strip().upper())
    if level is None:
        raise ConfigurationError(f"Invalid log level for {LOG_LEVEL_ENV}: {raw!r}")
    return level


def configure_logging(
    *,
    level: int | None = None,
    default: int = logging.INFO,
    force: bool = False,
) -> None:
    """Initialise the root logger with a terse CLI format.

    Library code never calls this. An explicit ``level`` wins over
    ``REPLACEABLE_LOG_LEVEL``, which wins over ``default``. Pass ``force=True``
    to reconfigure an already configured root logger.
    """

    logging.basicConfig(
        level=level if level is not None else log_level_from_env(default=default),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
