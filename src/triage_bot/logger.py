"""Logging setup shared by all triage_bot modules.

Modules obtain loggers via ``get_logger(__name__)``. Only the project root
logger ("triage_bot") owns a handler; child loggers propagate to it. The
console level comes from ``TRIAGE_BOT_LOG_LEVEL`` (name or number,
default INFO).
"""

import logging
import os
import sys

_ROOT_LOGGER_NAME = "triage_bot"
_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_configured = False


def parse_level(value: str | None, default: int = logging.INFO) -> int:
    """Parse a level name ("DEBUG") or number ("10"); fall back to ``default``."""
    if value is None or not value.strip():
        return default
    value = value.strip()
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


def configure_logging(level: int | str | None = None) -> logging.Logger:
    """Attach the console handler to the project root logger once.

    Calling again only adjusts the level.
    """
    global _configured
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    if isinstance(level, str) or level is None:
        level = parse_level(level or os.getenv("TRIAGE_BOT_LOG_LEVEL"))
    root.setLevel(level)
    if not _configured:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.propagate = False
        _configured = True
    return root


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the project root, e.g. ``triage_bot.pipeline.graph``."""
    if not name or name == _ROOT_LOGGER_NAME:
        return logging.getLogger(_ROOT_LOGGER_NAME)
    if not name.startswith(_ROOT_LOGGER_NAME + "."):
        name = f"{_ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
