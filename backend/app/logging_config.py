"""Logging configuration for the creator payments service."""
import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Chatty third-party loggers; the stripe SDK logs every API request at INFO
QUIET_LOGGERS = ("sqlalchemy", "stripe", "apscheduler")

# One line per webhook delivery, kept even when the app level is WARNING
AUDIT_LOGGER = "app.audit"


def resolve_level(level: Union[str, int, None]) -> int:
    """Turn ``"debug"``, ``"INFO"``, ``10`` or None into a logging level."""
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level name, case-insensitive. Defaults to INFO.
    """
    log_level = resolve_level(level)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
    logging.getLogger(AUDIT_LOGGER).setLevel(min(log_level, logging.INFO))
