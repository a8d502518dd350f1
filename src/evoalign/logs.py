"""
Logging helpers.

Every module logs through ``logging.getLogger(__name__)``, so all progress
text flows through the ``evoalign`` logger. Callers that want the text
attach their own handler to that logger.
"""

import logging


def configure_logger(
    logger: logging.Logger,
    *,
    verbose: bool = False,
    debug: bool = False,
    quiet_level: int = logging.WARNING,
) -> logging.Logger:
    """Force a logger and its handlers to respect verbose/debug controls."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = quiet_level

    logger.setLevel(level)
    for handler in getattr(logger, "handlers", ()):
        handler.setLevel(level)
    return logger


def plural(n: int, noun: str) -> str:
    """Format a count with a naively pluralized noun ("1 edge", "2 edges")."""
    return f"{n} {noun}" if n == 1 else f"{n} {noun}s"
