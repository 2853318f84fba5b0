"""Logging configuration."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Chatty third-party loggers kept at WARNING unless verbose
NOISY_LOGGERS = ("azure", "urllib3", "msal")


def setup_logging(level: str = "INFO", verbose: bool = False, console: Optional[Console] = None) -> None:
    """Configure root logging with a rich handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        verbose: Show timestamps, module paths and third-party debug output
        console: Console to log to (default: stderr)
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=verbose,
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)
