"""Centralized logging configuration."""

import logging
import sys


def setup_logging(level: int = logging.WARNING) -> None:
    """Configure application-wide logging on stderr.

    Build console output is written to stdout, so diagnostics must not be.
    """
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=level,
        stream=sys.stderr,
        force=True,
    )
    if level > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
