"""Logging setup for the rho runtime.

Modules log through `logging.getLogger(__name__)`, so everything lives under
the "rho" logger. Frame and promise tracing is at DEBUG.
"""
import logging
import os
import sys
from typing import Optional

from rho.config import get_log_level

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Send rho's records to stdout, or to `log_file` when given.

    `level` is a level name and falls back to RHO_LOG_LEVEL.
    """
    level = (level or get_log_level()).upper()
    numeric_level = getattr(logging, level, logging.WARNING)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        target = {"filename": log_file}
    else:
        target = {"stream": sys.stdout}

    logging.basicConfig(level=numeric_level, format=_FORMAT, **target)
    logging.getLogger("rho").setLevel(numeric_level)
    logging.getLogger(__name__).debug("rho logging at %s", level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
