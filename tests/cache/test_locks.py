"""Tests for LockManager."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from docsync.cache.locks import LockManager
from docsync.core.errors import LockTimeoutError


class TestLockManager:
    def test_first_caller_owns(self) -> None:
        locks = LockManager()
        lock, acquired = locks.acquire("k")
        again, second = locks.acquire("k")

        assert acquired is True
        assert second is False
        assert again is lock
        assert lock.waiters == 1
        assert locks.is_locked("k")
        assert locks.active_count == 1

    def test_release_removes_and_resolves(self) -> None:
        locks = LockManager()
        lock, _ = locks.acquire("k")

        locks.release(lock, result=Path("/tmp/x"))

        assert not locks.is_locked("k")
        assert lock.done
        assert locks.wait(lock, timeout=0.1) == Path("/tmp/x")
        _, acquired = locks.acquire("k")
        assert acquired is True

    def test_waiter_sees_owner_error(self) -> None:
        locks = LockManager()
        lock, _ = locks.acquire("k")
        waiter, _ = locks.acquire("k")

        locks.release(lock, error=ConnectionError("remote down"))

        with pytest.raises(ConnectionError, match="remote down"):
            locks.wait(waiter, timeout=0.1)

    def test_wait_timeout(self) -> None:
        locks = LockManager()
        lock, _ = locks.acquire("k")
        with pytest.raises(LockTimeoutError):
            locks.wait(lock, timeout=0.05)

    def test_waiters_wake_on_release(self) -> None:
        locks = LockManager()
        lock, _ = locks.acquire("k")
        results: list[Path | None] = []

        def wait() -> None:
            waiter, _ = locks.acquire("k")
            results.append(locks.wait(waiter, timeout=5))

        threads = [threading.Thread(target=wait) for _ in range(4)]
        for t in threads:
            t.start()
        while lock.waiters < 4:
            threading.Event().wait(0.01)
        locks.release(lock, result=Path("/cache/file"))
        for t in threads:
            t.join(timeout=5)

        assert results == [Path("/cache/file")] * 4
