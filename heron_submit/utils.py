"""
Utility functions for heron_submit.

Logging is configured once per process, on the heron_submit logger, and
the configured logger is handed to the Submitter explicitly.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "heron_submit"


def setup_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """
    Set up logging for a submission.

    Args:
        verbose: Log at DEBUG instead of INFO
        console: Rich console to write to (defaults to stderr)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.handlers = []  # Clear existing handlers
    logger.propagate = False

    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_path=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    return logger
