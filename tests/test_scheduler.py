"""Tests for the periodic job ticker."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from docsync.scheduler import Ticker


class TestTicker:
    """Tests for Ticker class."""

    def test_init(self) -> None:
        """Should not start a scheduler on construction."""
        ticker = Ticker("cache sweep", 120, MagicMock())

        assert ticker._interval == 120
        assert ticker._scheduler is None
        assert not ticker.running

    def test_start_creates_scheduler(self) -> None:
        """Should create and start APScheduler on start()."""
        ticker = Ticker("cache sweep", 120, MagicMock())
        ticker.start()

        try:
            assert ticker._scheduler is not None
            assert ticker._scheduler.running
            assert ticker._scheduler.get_job("cache_sweep") is not None
        finally:
            ticker.stop()

    def test_stop_stops_scheduler(self) -> None:
        """Should drop the scheduler on stop()."""
        ticker = Ticker("cache sweep", 120, MagicMock())
        ticker.start()
        ticker.stop()

        assert ticker._scheduler is None
        assert not ticker.running

    def test_start_idempotent(self) -> None:
        """Should be safe to call start() multiple times."""
        ticker = Ticker("replication w1", 60, MagicMock())
        ticker.start()
        first = ticker._scheduler
        ticker.start()

        try:
            assert ticker._scheduler is first
        finally:
            ticker.stop()

    def test_stop_without_start(self) -> None:
        Ticker("idle", 60, MagicMock()).stop()

    def test_run_now(self) -> None:
        """Should call the job immediately and return its result."""
        func = MagicMock(return_value=3)
        ticker = Ticker("cache sweep", 120, func)

        assert ticker.run_now() == 3
        func.assert_called_once_with()

    def test_job_logs_exceptions(self, caplog: pytest.LogCaptureFixture) -> None:
        """Should log job failures instead of raising."""
        func = MagicMock(side_effect=RuntimeError("Test error"))
        ticker = Ticker("cache sweep", 120, func)

        with caplog.at_level(logging.ERROR, logger="docsync"):
            ticker._job()

        assert "Error during scheduled cache sweep" in caplog.text
        assert "Test error" in caplog.text
