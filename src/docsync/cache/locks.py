"""Per-key transfer locks.

At most one TransferLock exists per key. The first caller owns the fetch;
everyone else waits on the lock and observes the owner's outcome.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from docsync.core.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class TransferLock:
    """Completion signal for one in-flight fetch."""

    def __init__(self, key: str) -> None:
        self.key = key
        self.created_at = time.monotonic()
        self.result: Path | None = None
        self.error: BaseException | None = None
        self._done = threading.Event()
        self._waiters = 0

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def waiters(self) -> int:
        return self._waiters

    def _resolve(self, result: Path | None, error: BaseException | None) -> None:
        self.result = result
        self.error = error
        self._done.set()


class LockManager:
    """Mutex-protected table of transfer locks."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._locks: dict[str, TransferLock] = {}

    def acquire(self, key: str) -> tuple[TransferLock, bool]:
        """Get the lock for ``key``.

        Returns:
            (lock, acquired). ``acquired`` is True when the caller created the
            lock and must release it; False when another fetch is in flight.
        """
        with self._mutex:
            lock = self._locks.get(key)
            if lock is not None:
                lock._waiters += 1
                return lock, False
            lock = TransferLock(key)
            self._locks[key] = lock
            return lock, True

    def release(
        self,
        lock: TransferLock,
        result: Path | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Remove the lock from the table and wake its waiters with the outcome."""
        with self._mutex:
            if self._locks.get(lock.key) is lock:
                del self._locks[lock.key]
        lock._resolve(result, error)
        if lock.waiters:
            logger.debug(
                "Released lock %s for %d waiter(s) (%s)",
                lock.key[:12],
                lock.waiters,
                "failed" if error else "ok",
            )

    def wait(self, lock: TransferLock, timeout: float) -> Path | None:
        """Wait for the owner of ``lock`` to finish.

        Returns:
            The path the owner produced.

        Raises:
            LockTimeoutError: If the owner did not finish within ``timeout``.
            Exception: The owner's failure, if it failed.
        """
        if not lock._done.wait(timeout):
            raise LockTimeoutError(f"Timed out after {timeout:.0f}s waiting for fetch of {lock.key}")
        if lock.error is not None:
            raise lock.error
        return lock.result

    def is_locked(self, key: str) -> bool:
        with self._mutex:
            return key in self._locks

    @property
    def active_count(self) -> int:
        with self._mutex:
            return len(self._locks)
