"""Logging setup for **SiteFetch**.

All modules log through children of one named logger, ``"SiteFetch"``:

* ``SiteFetch.crawler`` for fetches, robots.txt and sitemap discovery
* ``SiteFetch.cache`` for hits, misses, eviction and absorbed faults
* ``SiteFetch.engine`` for orchestration

Library use stays silent (a ``NullHandler`` is attached) until an application,
usually the CLI, calls :func:`init_logging`::

    from site_fetch.logger import get_logger
    log = get_logger("cache")
    log.debug("miss for %s", key)
"""
from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, List, Optional, Union

# --------------------------------------------------------------------------- #
# Constants                                                                   #
# --------------------------------------------------------------------------- #

DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
ROOT_LOGGER: Final[str] = "SiteFetch"
LEVEL_ENV_VAR: Final[str] = "SITE_FETCH_LOG_LEVEL"
LOG_FILE_MAX_BYTES: Final[int] = 5 * 1024 * 1024
LOG_FILE_BACKUPS: Final[int] = 3

# third-party loggers that are chatty at INFO
_QUIET_LIBRARIES: Final[tuple] = ("aiohttp.access", "aiohttp.client", "aiohttp.internal")

LevelT = Union[int, str]


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #


def _handlers(log_file: Optional[Union[str, Path]], fmt: str) -> List[logging.Handler]:
    # stdout carries command output (JSON reports), logs go to stderr
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=str(log_file),
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )
    formatter = logging.Formatter(fmt)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def _resolve_level(level: LevelT) -> LevelT:
    override = os.environ.get(LEVEL_ENV_VAR)
    if override:
        return override.upper()
    return level.upper() if isinstance(level, str) else level


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #


def configure(
    *,
    level: LevelT = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Re)configure the project logger.

    Parameters
    ----------
    level
        Numeric or textual level; ``$SITE_FETCH_LOG_LEVEL`` takes precedence.
    log_file
        Optional path of a rotating logfile, written in addition to stderr.
    log_format
        Format string for :class:`logging.Formatter`.
    replace_handlers
        Drop previously attached handlers first.
    """
    root = logging.getLogger(ROOT_LOGGER)
    resolved = _resolve_level(level)
    root.setLevel(resolved)
    if replace_handlers:
        root.handlers.clear()
    for handler in _handlers(log_file, log_format):
        root.addHandler(handler)
    root.propagate = False

    # aiohttp only matters when we are debugging ourselves
    library_level = logging.DEBUG if root.getEffectiveLevel() <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)
    return root


def init_logging(
    level: LevelT = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    log_format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """CLI entry: replace handlers and apply *level*."""
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """``SiteFetch`` or its ``SiteFetch.<component>`` child."""
    return logging.getLogger(f"{ROOT_LOGGER}.{component}" if component else ROOT_LOGGER)


logging.getLogger(ROOT_LOGGER).addHandler(logging.NullHandler())

__all__ = ["DEFAULT_FORMAT", "ROOT_LOGGER", "configure", "get_logger", "init_logging"]
