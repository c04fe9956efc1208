"""Logging setup for zero_models.

All modules obtain their logger through :func:`get_logger`; the CLI calls
:func:`configure_logging` once at startup to attach a rich handler.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "zero_models"

_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``zero_models``.

    Args:
        name: Usually ``__name__`` of the calling module.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Install a RichHandler on the package logger.

    Calling this more than once only adjusts the level.

    Args:
        verbose: Log DEBUG messages when True, otherwise INFO and above.
        console: Console to log to. Defaults to stderr.

    Returns:
        The configured package logger.
    """
    global _configured

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    if not _configured:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=verbose,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
        logger.propagate = False
        _configured = True

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger
