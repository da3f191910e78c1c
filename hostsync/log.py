"""Logging configuration for hostsync."""
from __future__ import annotations

import logging

from .errors import ConfigError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}


def parse_level(name: str) -> int:
    try:
        return _LEVELS[name.strip().lower()]
    except KeyError:
        raise ConfigError(f"invalid log level: {name!r}") from None


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    lvl = parse_level(level)
    logging.basicConfig(level=lvl, format=LOG_FORMAT)
    logging.getLogger().setLevel(lvl)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(max(lvl, logging.WARNING))
