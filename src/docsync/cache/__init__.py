"""Download cache and per-key transfer locks."""

from docsync.cache.cache import CacheEntry, CacheResult, DownloadCache
from docsync.cache.locks import LockManager, TransferLock

__all__ = [
    "CacheEntry",
    "CacheResult",
    "DownloadCache",
    "LockManager",
    "TransferLock",
]
