from __future__ import annotations
import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def setup_logging(level: Optional[str] = "WARNING", name: str = "chatbridge") -> logging.Logger:
    """
    Configure the package logger with a single stderr handler.
    Module loggers (logging.getLogger(__name__)) propagate to it.
    """
    logger = logging.getLogger(name)
    log_level = getattr(logging, str(level or "WARNING").upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level '{level}'")
    logger.setLevel(log_level)

    # Avoid duplicate handlers when called more than once
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(handler)
    return logger
