"""Shared types for docsync.

This module defines the enums used by the store, the replication queue,
the read path and the HTTP/CLI surfaces.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class SyncStatus(str, Enum):
    """Replication state of a file record.

    PENDING -> SYNCING -> SYNCED, or back to PENDING on a retryable
    failure, or FAILED once the retry budget is exhausted.
    """

    PENDING = "PENDING"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


class StorageProvider(str, Enum):
    """Where the authoritative copy of a file lives."""

    LOCAL = "LOCAL"
    REMOTE_SYNCED = "REMOTE_SYNCED"


class ReadSource(str, Enum):
    """Requested source for a read."""

    AUTO = "auto"
    LOCAL = "local"
    REMOTE = "remote"


class Priority(IntEnum):
    """Replication priority. Higher values are claimed first."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    URGENT = 3

    @classmethod
    def parse(cls, value: str | int | Priority) -> Priority:
        """Parse a priority from a name or an ordinal.

        Raises:
            ValueError: If the value names no priority.
        """
        if isinstance(value, Priority):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip()
        if text.lstrip("-").isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Unknown priority: {value!r}") from None
