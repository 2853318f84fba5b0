"""Tests for logging setup."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from rgteardown.utils.logging import setup_logging


class TestSetupLogging:
    """Test suite for setup_logging."""

    def teardown_method(self) -> None:
        root = logging.getLogger()
        for handler in list(root.handlers):
            if isinstance(handler, RichHandler):
                root.removeHandler(handler)
        root.setLevel(logging.WARNING)

    def test_installs_single_rich_handler(self) -> None:
        """Test repeated setup leaves exactly one rich handler."""
        setup_logging("INFO")
        setup_logging("DEBUG")

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], RichHandler)
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_defaults_to_info(self) -> None:
        """Test an unknown level name falls back to INFO."""
        setup_logging("chatty")

        assert logging.getLogger().level == logging.INFO

    def test_noisy_loggers_quiet_unless_verbose(self) -> None:
        """Test third-party loggers follow the verbose flag."""
        setup_logging("DEBUG")
        assert logging.getLogger("urllib3").level == logging.WARNING

        setup_logging("DEBUG", verbose=True)
        assert logging.getLogger("urllib3").level == logging.DEBUG
