"""Tests for DownloadCache."""

from __future__ import annotations

import os
import threading
from collections.abc import Generator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from docsync.cache.cache import DownloadCache
from docsync.core.config import CacheConfig
from docsync.core.errors import IntegrityError
from docsync.core.hashing import cache_key

if TYPE_CHECKING:
    from tests.conftest import FakeTime


@pytest.fixture
def cache_config(tmp_path: Path) -> CacheConfig:
    return CacheConfig(directory=tmp_path / "cache", ttl=300.0, sweep_interval=120.0)


@pytest.fixture
def cache(cache_config: CacheConfig, fake_time: FakeTime) -> Generator[DownloadCache, None, None]:
    download_cache = DownloadCache(cache_config, clock=fake_time)
    yield download_cache
    download_cache.stop()


class Writer:
    """Loader that writes fixed bytes and records its calls."""

    def __init__(self, data: bytes, origin: str = "remote") -> None:
        self.data = data
        self.origin = origin
        self.calls: list[Path] = []

    def __call__(self, path: Path) -> str:
        self.calls.append(path)
        path.write_bytes(self.data)
        return self.origin


class TestFetch:
    """Tests for reads through the cache."""

    def test_miss_then_hit(self, cache: DownloadCache) -> None:
        load = Writer(b"payload")

        first = cache.fetch("f1", 1, load)
        second = cache.fetch("f1", 1, load)

        assert first.cache_hit is False
        assert first.origin == "remote"
        assert second.cache_hit is True
        assert second.path == first.path
        assert second.path.read_bytes() == b"payload"
        assert len(load.calls) == 1
        assert second.entry.hit_count == 1

    def test_key_includes_version(self, cache: DownloadCache) -> None:
        load = Writer(b"payload")
        cache.fetch("f1", 1, load)
        result = cache.fetch("f1", 2, load)
        assert result.cache_hit is False
        assert result.entry.key == cache_key("f1", 2)
        assert len(cache) == 2

    def test_file_name_carries_key(self, cache: DownloadCache) -> None:
        result = cache.fetch("f1", 3, Writer(b"x"))
        name = result.path.name
        assert name.startswith("download_")
        assert name.endswith(f"_cache_{cache_key('f1', 3)}_3")

    def test_empty_artifact_is_rejected(self, cache: DownloadCache) -> None:
        with pytest.raises(IntegrityError):
            cache.fetch("f1", 1, Writer(b""))
        assert len(cache) == 0
        assert list(cache.directory.iterdir()) == []

    def test_loader_failure_leaves_nothing(self, cache: DownloadCache) -> None:
        def broken(path: Path) -> str:
            path.write_bytes(b"half")
            raise ConnectionError("remote down")

        with pytest.raises(ConnectionError):
            cache.fetch("f1", 1, broken)
        assert list(cache.directory.iterdir()) == []
        assert cache.locks.active_count == 0

    def test_missing_file_is_a_miss(self, cache: DownloadCache) -> None:
        load = Writer(b"payload")
        first = cache.fetch("f1", 1, load)
        first.path.unlink()

        assert cache.lookup("f1", 1) is None
        second = cache.fetch("f1", 1, load)
        assert second.cache_hit is False
        assert len(load.calls) == 2


class TestConcurrency:
    """Tests for one fetch per key under concurrent readers."""

    def test_concurrent_readers_share_one_fetch(self, cache: DownloadCache) -> None:
        started = threading.Event()
        release = threading.Event()
        calls: list[int] = []

        def slow(path: Path) -> str:
            calls.append(1)
            started.set()
            release.wait(5)
            path.write_bytes(b"shared bytes")
            return "remote"

        results = []

        def read() -> None:
            results.append(cache.fetch("f1", 1, slow))

        owner = threading.Thread(target=read)
        owner.start()
        started.wait(5)
        waiters = [threading.Thread(target=read) for _ in range(5)]
        for t in waiters:
            t.start()
        lock_waiters = 0
        while lock_waiters < 5:
            threading.Event().wait(0.01)
            with cache.locks._mutex:
                lock = next(iter(cache.locks._locks.values()))
            lock_waiters = lock.waiters
        release.set()
        for t in [owner, *waiters]:
            t.join(timeout=5)

        assert len(calls) == 1
        assert len(results) == 6
        assert {r.path for r in results} == {results[0].path}
        assert all(r.path.read_bytes() == b"shared bytes" for r in results)
        assert sum(r.waited for r in results) == 5

    def test_waiters_observe_owner_failure(self, cache: DownloadCache) -> None:
        started = threading.Event()
        release = threading.Event()

        def failing(path: Path) -> str:
            started.set()
            release.wait(5)
            raise ConnectionError("remote down")

        errors: list[BaseException] = []

        def read() -> None:
            try:
                cache.fetch("f1", 1, failing)
            except ConnectionError as e:
                errors.append(e)

        owner = threading.Thread(target=read)
        owner.start()
        started.wait(5)
        waiter = threading.Thread(target=read)
        waiter.start()
        while not cache.locks._locks or next(iter(cache.locks._locks.values())).waiters < 1:
            threading.Event().wait(0.01)
        release.set()
        owner.join(timeout=5)
        waiter.join(timeout=5)

        assert len(errors) == 2

    def test_waiter_timeout_falls_back(self, tmp_path: Path, fake_time: FakeTime) -> None:
        config = CacheConfig(directory=tmp_path / "cache", ttl=300.0, lock_wait_timeout=0.1)
        cache = DownloadCache(config, clock=fake_time)
        started = threading.Event()
        release = threading.Event()

        def stuck(path: Path) -> str:
            started.set()
            release.wait(5)
            path.write_bytes(b"late")
            return "remote"

        owner = threading.Thread(target=cache.fetch, args=("f1", 1, stuck))
        owner.start()
        started.wait(5)

        result = cache.fetch("f1", 1, Writer(b"own copy", origin="local"))

        assert result.cache_hit is False
        assert result.path.read_bytes() == b"own copy"
        release.set()
        owner.join(timeout=5)
        # The first live entry is kept; the late duplicate is discarded
        assert len(cache) == 1
        assert cache.lookup("f1", 1).path == result.path
        assert len(list(config.directory.iterdir())) == 1


class TestExpiry:
    """Tests for the sliding TTL and the sweep."""

    def test_hit_extends_ttl(self, cache: DownloadCache, fake_time: FakeTime) -> None:
        load = Writer(b"payload")
        cache.fetch("f1", 1, load)
        fake_time.advance(200)
        assert cache.fetch("f1", 1, load).cache_hit is True
        fake_time.advance(200)
        # 400s after creation but only 200s after the last access
        assert cache.fetch("f1", 1, load).cache_hit is True
        assert len(load.calls) == 1

    def test_expired_entry_is_a_miss(self, cache: DownloadCache, fake_time: FakeTime) -> None:
        load = Writer(b"payload")
        first = cache.fetch("f1", 1, load)
        fake_time.advance(300)

        assert cache.lookup("f1", 1) is None
        assert not first.path.exists()

    def test_expired_entry_with_undeletable_file(
        self, cache: DownloadCache, fake_time: FakeTime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A stale file that cannot be deleted does not fail the read."""
        load = Writer(b"payload")
        first = cache.fetch("f1", 1, load)
        fake_time.advance(300)
        original_unlink = Path.unlink

        def locked_unlink(self: Path, missing_ok: bool = False) -> None:
            if self == first.path:
                raise PermissionError("locked")
            original_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", locked_unlink)

        assert cache.lookup("f1", 1) is None
        result = cache.fetch("f1", 1, load)
        assert result.cache_hit is False
        assert result.path.read_bytes() == b"payload"
        assert len(load.calls) == 2

    def test_sweep_removes_expired(self, cache: DownloadCache, fake_time: FakeTime) -> None:
        old = cache.fetch("old", 1, Writer(b"a"))
        fake_time.advance(200)
        fresh = cache.fetch("fresh", 1, Writer(b"b"))
        fake_time.advance(150)

        assert cache.sweep() == 1

        assert not old.path.exists()
        assert fresh.path.exists()
        assert len(cache) == 1

    def test_sweep_continues_past_failed_delete(
        self, cache: DownloadCache, fake_time: FakeTime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        first = cache.fetch("a", 1, Writer(b"a"))
        second = cache.fetch("b", 1, Writer(b"b"))
        fake_time.advance(301)
        original_unlink = Path.unlink

        def flaky_unlink(self: Path, missing_ok: bool = False) -> None:
            if self == first.path:
                raise PermissionError("busy")
            original_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", flaky_unlink)

        assert cache.sweep() == 2
        assert first.path.exists()
        assert not second.path.exists()
        assert len(cache) == 0

    def test_remove(self, cache: DownloadCache) -> None:
        result = cache.fetch("f1", 1, Writer(b"x"))
        assert cache.remove("f1", 1) is True
        assert not result.path.exists()
        assert cache.remove("f1", 1) is False


class TestReconcile:
    """Tests for rebuilding the table from the directory."""

    def test_restores_entries(
        self, cache_config: CacheConfig, fake_time: FakeTime
    ) -> None:
        first = DownloadCache(cache_config, clock=fake_time)
        result = first.fetch("f1", 4, Writer(b"payload"))
        os.utime(result.path, (fake_time(), fake_time()))
        partial = cache_config.directory / "download_1_ab_cache_x.part"
        partial.write_bytes(b"half")
        (cache_config.directory / "unrelated.txt").write_text("keep")

        second = DownloadCache(cache_config, clock=fake_time)
        assert second.reconcile() == 1

        entry = second.lookup("f1", 4)
        assert entry is not None
        assert entry.path == result.path
        assert entry.origin == "restored"
        assert not partial.exists()
        assert (cache_config.directory / "unrelated.txt").exists()

    def test_removes_transfer_temp_files(
        self, cache_config: CacheConfig, fake_time: FakeTime
    ) -> None:
        """Temp files left by an interrupted download are cleaned up."""
        cache = DownloadCache(cache_config, clock=fake_time)
        key = cache_key("f1", 1)
        leftover = cache_config.directory / f".download_1_ab_cache_{key}_1.part.1f2e3d4c.part"
        leftover.write_bytes(b"half")

        assert cache.reconcile() == 0
        assert not leftover.exists()

    def test_drops_expired_and_empty(
        self, cache_config: CacheConfig, fake_time: FakeTime
    ) -> None:
        cache = DownloadCache(cache_config, clock=fake_time)
        key = cache_key("f1", 1)
        expired = cache_config.directory / f"download_1_aa_cache_{key}_1"
        expired.write_bytes(b"old")
        stamp = fake_time() - 1000
        os.utime(expired, (stamp, stamp))
        empty = cache_config.directory / f"download_2_bb_cache_{cache_key('f2', 1)}_1"
        empty.write_bytes(b"")
        os.utime(empty, (fake_time(), fake_time()))

        assert cache.reconcile() == 0
        assert not expired.exists()
        assert not empty.exists()

    def test_keeps_newest_duplicate(
        self, cache_config: CacheConfig, fake_time: FakeTime
    ) -> None:
        cache = DownloadCache(cache_config, clock=fake_time)
        key = cache_key("f1", 1)
        older = cache_config.directory / f"download_1_aa_cache_{key}_1"
        newer = cache_config.directory / f"download_2_bb_cache_{key}_1"
        older.write_bytes(b"old")
        newer.write_bytes(b"new")
        os.utime(older, (fake_time() - 10, fake_time() - 10))
        os.utime(newer, (fake_time(), fake_time()))

        assert cache.reconcile() == 1
        assert cache.lookup("f1", 1).path == newer
        assert not older.exists()


class TestStats:
    def test_stats_and_clear(self, cache: DownloadCache) -> None:
        cache.fetch("f1", 1, Writer(b"abc"))
        cache.fetch("f2", 1, Writer(b"defg"))
        cache.fetch("f2", 1, Writer(b"defg"))

        stats = cache.stats()

        assert stats["total_files"] == 2
        assert stats["total_size"] == 7
        assert stats["active_locks"] == 0
        assert stats["entries"][0]["hit_count"] == 1

        assert cache.clear() == 2
        assert len(cache) == 0
        assert list(cache.directory.iterdir()) == []
