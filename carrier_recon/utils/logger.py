"""Centralized logging setup for the reconciliation engine.

Every module logs through a named logger obtained from :func:`get_logger`;
the root handler is installed once by the entry points (API server, CLI).
"""

import logging
import sys

_NOISY_LOGGERS = ("PIL", "urllib3", "pdf2image")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a standard format.

    Third-party libraries that log per page or per request are held at
    WARNING so document batches stay readable, even when another handler
    was installed first.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
