"""Download cache keyed by (file id, version).

This module provides:
- CacheEntry: metadata for one cached artifact
- DownloadCache: sliding-TTL cache with one fetch in flight per key,
  a periodic sweep and startup reconciliation from the cache directory

Cache files are named ``download_<ms>_<rand>_cache_<key>_<version>`` so the
directory alone is enough to rebuild the table after a restart.
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import os
import re
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from docsync.cache.locks import LockManager
from docsync.core.errors import IntegrityError, LockTimeoutError
from docsync.core.hashing import cache_key
from docsync.scheduler import Ticker

if TYPE_CHECKING:
    from docsync.core.config import CacheConfig

logger = logging.getLogger(__name__)

PART_SUFFIX = ".part"
CACHE_FILE_RE = re.compile(
    r"^download_(?P<ms>\d+)_(?P<rand>[0-9a-f]+)_cache_(?P<key>[0-9a-f]{32})_(?P<version>[^/]+)$"
)

# Writes the artifact to the given path and returns where it came from.
Loader = Callable[[Path], str]


def _is_partial(name: str) -> bool:
    """Partial cache file, or a transfer temp file written next to one."""
    return name.lstrip(".").startswith("download_") and name.endswith(PART_SUFFIX)


@dataclass
class CacheEntry:
    """One cached artifact. Times are epoch seconds."""

    key: str
    path: Path
    size: int
    created_at: float
    expires_at: float
    last_accessed: float
    hit_count: int = 0
    file_id: str | None = None
    version: str | None = None
    origin: str | None = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "path": str(self.path),
            "size": self.size,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "last_accessed": self.last_accessed,
            "hit_count": self.hit_count,
            "file_id": self.file_id,
            "version": self.version,
            "origin": self.origin,
        }


@dataclass
class CacheResult:
    """What a read through the cache returned."""

    path: Path
    entry: CacheEntry
    cache_hit: bool
    origin: str | None
    waited: bool = False


class DownloadCache:
    """Time-bounded local cache of fetched files."""

    def __init__(
        self,
        config: CacheConfig,
        clock: Callable[[], float] | None = None,
        locks: LockManager | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            config: Directory, TTL, sweep interval and lock wait timeout.
            clock: Returns epoch seconds (replaced in tests).
            locks: Lock table (a private one by default).
        """
        self._config = config
        self._clock = clock or time.time
        self._locks = locks or LockManager()
        self._mutex = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._directory = Path(config.directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._ticker = Ticker("cache sweep", config.sweep_interval, self.sweep)

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def locks(self) -> LockManager:
        return self._locks

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)

    # === Lifecycle ===

    def start(self) -> None:
        """Reconcile with the directory, then sweep every ``sweep_interval``."""
        self.reconcile()
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.stop()

    # === Lookup ===

    def lookup(self, file_id: str, version: int | str) -> CacheEntry | None:
        """Return a live entry for (file id, version), refreshing its TTL."""
        return self._lookup_key(cache_key(file_id, version))

    def _lookup_key(self, key: str) -> CacheEntry | None:
        now = self._clock()
        stale: CacheEntry | None = None
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now) or not entry.path.is_file():
                stale = self._entries.pop(key)
            else:
                entry.expires_at = now + self._config.ttl
                entry.last_accessed = now
                entry.hit_count += 1
                return dataclasses.replace(entry)
        self._discard_file(stale.path)
        return None

    # === Fetch ===

    def fetch(self, file_id: str, version: int | str, loader: Loader) -> CacheResult:
        """Read through the cache.

        A hit returns immediately. On a miss the first caller for the key runs
        ``loader`` while later callers wait up to ``lock_wait_timeout`` for its
        outcome; a waiter that times out runs its own fetch.

        Raises:
            IntegrityError: If the loader produced an empty artifact.
            Exception: Whatever the loader (or the owning fetch) raised.
        """
        key = cache_key(file_id, version)
        entry = self._lookup_key(key)
        if entry is not None:
            return CacheResult(path=entry.path, entry=entry, cache_hit=True, origin=entry.origin)

        lock, acquired = self._locks.acquire(key)
        if acquired:
            try:
                entry = self._load(key, file_id, version, loader)
            except BaseException as e:
                self._locks.release(lock, error=e)
                raise
            self._locks.release(lock, result=entry.path)
            return CacheResult(path=entry.path, entry=entry, cache_hit=False, origin=entry.origin)

        try:
            self._locks.wait(lock, self._config.lock_wait_timeout)
        except LockTimeoutError as e:
            logger.warning("%s; fetching %s v%s without the lock", e, file_id, version)
            entry = self._load(key, file_id, version, loader)
            return CacheResult(path=entry.path, entry=entry, cache_hit=False, origin=entry.origin)

        entry = self._lookup_key(key)
        if entry is None:
            # Evicted between the owner's release and our lookup
            entry = self._load(key, file_id, version, loader)
            return CacheResult(path=entry.path, entry=entry, cache_hit=False, origin=entry.origin)
        return CacheResult(
            path=entry.path, entry=entry, cache_hit=True, origin=entry.origin, waited=True
        )

    def _new_path(self, key: str, version: int | str) -> Path:
        stamp = int(self._clock() * 1000)
        return self._directory / f"download_{stamp}_{secrets.token_hex(4)}_cache_{key}_{version}"

    def _load(self, key: str, file_id: str, version: int | str, loader: Loader) -> CacheEntry:
        final_path = self._new_path(key, version)
        temp_path = final_path.with_name(final_path.name + PART_SUFFIX)
        try:
            origin = loader(temp_path)
            if not temp_path.is_file() or temp_path.stat().st_size == 0:
                raise IntegrityError(f"Fetched artifact for {file_id} v{version} is empty")
            os.replace(temp_path, final_path)
        finally:
            with contextlib.suppress(OSError):
                temp_path.unlink()
        return self._install(key, final_path, file_id, str(version), origin)

    def _install(
        self, key: str, path: Path, file_id: str | None, version: str | None, origin: str | None
    ) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            path=path,
            size=path.stat().st_size,
            created_at=now,
            expires_at=now + self._config.ttl,
            last_accessed=now,
            file_id=file_id,
            version=version,
            origin=origin,
        )
        with self._mutex:
            existing = self._entries.get(key)
            if existing is not None and not existing.is_expired(now) and existing.path.is_file():
                # A concurrent unlocked fetch got there first; keep its file
                duplicate, entry = path, existing
            else:
                duplicate = existing.path if existing is not None else None
                self._entries[key] = entry
            result = dataclasses.replace(entry)
        if duplicate is not None and duplicate != result.path:
            self._discard_file(duplicate)
        logger.debug("Cached %s v%s (%d bytes) from %s", file_id, version, result.size, origin)
        return result

    # === Eviction ===

    def _discard_file(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not delete cache file %s: %s", path, e)
            return False
        return True

    def remove(self, file_id: str, version: int | str) -> bool:
        """Drop the entry for (file id, version) and its file."""
        with self._mutex:
            entry = self._entries.pop(cache_key(file_id, version), None)
        if entry is None:
            return False
        self._discard_file(entry.path)
        return True

    def sweep(self) -> int:
        """Evict expired entries and delete their files.

        A file that cannot be deleted is logged and does not stop the sweep.

        Returns:
            Number of entries evicted.
        """
        now = self._clock()
        with self._mutex:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            evicted = [self._entries.pop(key) for key in expired]

        for entry in evicted:
            self._discard_file(entry.path)
        if evicted:
            logger.info("Cache sweep evicted %d entr%s", len(evicted), "y" if len(evicted) == 1 else "ies")
        return len(evicted)

    def clear(self) -> int:
        """Evict everything, including files not tracked in memory."""
        with self._mutex:
            entries = list(self._entries.values())
            self._entries.clear()
        removed = 0
        for entry in entries:
            if self._discard_file(entry.path):
                removed += 1
        for path in self._directory.glob("download_*"):
            with contextlib.suppress(OSError):
                path.unlink()
                removed += 1
        logger.info("Cache cleared (%d files removed)", removed)
        return removed

    def reconcile(self) -> int:
        """Rebuild the table from the cache directory.

        Each file's expiry is derived from its modification time. Partial
        downloads and files that are already expired are deleted; hit
        counters start over.

        Returns:
            Number of entries restored.
        """
        now = self._clock()
        restored: dict[str, CacheEntry] = {}
        stale: list[Path] = []
        for path in self._directory.iterdir():
            if not path.is_file():
                continue
            if _is_partial(path.name):
                stale.append(path)
                continue
            match = CACHE_FILE_RE.match(path.name)
            if match is None:
                continue
            stat = path.stat()
            expires_at = stat.st_mtime + self._config.ttl
            if stat.st_size == 0 or expires_at <= now:
                stale.append(path)
                continue
            key = match.group("key")
            previous = restored.get(key)
            if previous is not None:
                if previous.created_at >= stat.st_mtime:
                    stale.append(path)
                    continue
                stale.append(previous.path)
            restored[key] = CacheEntry(
                key=key,
                path=path,
                size=stat.st_size,
                created_at=stat.st_mtime,
                expires_at=expires_at,
                last_accessed=stat.st_mtime,
                version=match.group("version"),
                origin="restored",
            )

        with self._mutex:
            for key, entry in restored.items():
                self._entries.setdefault(key, entry)
        for path in stale:
            with contextlib.suppress(OSError):
                path.unlink()
        logger.info(
            "Cache reconciled: %d entries restored, %d stale files removed",
            len(restored),
            len(stale),
        )
        return len(restored)

    # === Status ===

    def stats(self, top: int = 10) -> dict[str, Any]:
        """Entry count, total size, active locks and the most-hit entries."""
        with self._mutex:
            entries = [dataclasses.replace(e) for e in self._entries.values()]
        entries.sort(key=lambda e: e.hit_count, reverse=True)
        return {
            "total_files": len(entries),
            "total_size": sum(e.size for e in entries),
            "active_locks": self._locks.active_count,
            "ttl": self._config.ttl,
            "directory": str(self._directory),
            "entries": [e.to_dict() for e in entries[:top]],
        }
