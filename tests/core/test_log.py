"""Tests for logging setup."""

from __future__ import annotations

import logging
from collections.abc import Generator
from pathlib import Path

import pytest

from docsync.core.log import setup_logging


@pytest.fixture(autouse=True)
def restore_logger() -> Generator[None, None, None]:
    logger = logging.getLogger("docsync")
    handlers, level = list(logger.handlers), logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)


class TestSetupLogging:
    def test_file_handler(self, tmp_path: Path) -> None:
        """Should write docsync records to the log file."""
        log_path = tmp_path / "logs" / "docsync.log"
        setup_logging(log_path, "DEBUG")

        logging.getLogger("docsync.transfer.client").debug("rsync upload: argv")
        for handler in logging.getLogger("docsync").handlers:
            handler.flush()

        content = log_path.read_text(encoding="utf-8")
        assert "docsync.transfer.client - DEBUG - rsync upload: argv" in content

    def test_idempotent(self, tmp_path: Path) -> None:
        """Calling twice should not duplicate handlers."""
        setup_logging(tmp_path / "a.log")
        setup_logging(tmp_path / "a.log")
        assert len(logging.getLogger("docsync").handlers) == 2

    def test_stdout_only(self) -> None:
        setup_logging(level=logging.WARNING)
        logger = logging.getLogger("docsync")
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
