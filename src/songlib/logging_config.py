"""Logging configuration for songlib."""

import logging
import sys

from . import config


def setup_logging(level: str | None = None, verbose: bool = False) -> logging.Logger:
    """Set up the ``songlib`` logger for command-line use."""
    logger = logging.getLogger("songlib")
    logger.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper()))

    # Clear existing handlers
    logger.handlers.clear()

    if verbose:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    else:
        formatter = logging.Formatter("%(levelname)s: %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger
