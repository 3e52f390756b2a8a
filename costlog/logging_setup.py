"""Logging configuration for CostLog."""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Send ``costlog`` logs to stderr, INFO when verbose and WARNING otherwise."""
    logger = logging.getLogger("costlog")
    logger.setLevel(logging.INFO if verbose else logging.WARNING)

    # Clear any existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
