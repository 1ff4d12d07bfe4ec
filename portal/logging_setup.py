"""
Logging configuration for the API server and CLI.
"""

import logging
import sys

from portal.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Send ``portal.*`` records to stderr. Safe to call more than once."""
    logger = logging.getLogger("portal")
    logger.setLevel(level.upper())

    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
