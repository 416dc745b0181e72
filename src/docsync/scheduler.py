"""Periodic jobs for the replication worker and the download cache.

Each component owns one Ticker: an APScheduler background scheduler
with a single interval job. Tests call the job function directly and
never wait for the scheduler.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class Ticker:
    """Runs ``func`` every ``interval`` seconds in a background thread."""

    def __init__(self, name: str, interval: float, func: Callable[[], Any]) -> None:
        """Initialize the ticker.

        Args:
            name: Job name used in logs and as the job id.
            interval: Seconds between runs.
            func: Job function. Exceptions are logged, never propagated.
        """
        self._name = name
        self._interval = interval
        self._func = func
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def _job(self) -> None:
        """Job wrapper for the scheduled run."""
        try:
            self._func()
        except Exception:
            logger.exception("Error during scheduled %s", self._name)

    def start(self) -> None:
        """Start the ticker."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._job,
            trigger=IntervalTrigger(seconds=self._interval),
            id=self._name.replace(" ", "_"),
            name=self._name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("%s scheduler started (every %.0fs)", self._name, self._interval)

    def stop(self) -> None:
        """Stop the ticker."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("%s scheduler stopped", self._name)

    def run_now(self) -> Any:
        """Run the job immediately (manual trigger)."""
        return self._func()
