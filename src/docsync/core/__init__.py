"""Core module - configuration, errors, hashing and shared types."""

from docsync.core.config import (
    CacheConfig,
    RemoteConfig,
    Settings,
    StorageConfig,
    TransferConfig,
    WorkerConfig,
)
from docsync.core.errors import (
    ConfigError,
    DocSyncError,
    IntegrityError,
    LockTimeoutError,
    NotFoundError,
    RecordBusyError,
    ServiceUnavailableError,
    TransferError,
    TransferErrorCode,
    ValidationError,
)
from docsync.core.hashing import cache_key, compute_bytes_hash, compute_file_hash
from docsync.core.types import Priority, ReadSource, StorageProvider, SyncStatus

__all__ = [
    # Config
    "CacheConfig",
    "RemoteConfig",
    "Settings",
    "StorageConfig",
    "TransferConfig",
    "WorkerConfig",
    # Errors
    "ConfigError",
    "DocSyncError",
    "IntegrityError",
    "LockTimeoutError",
    "NotFoundError",
    "RecordBusyError",
    "ServiceUnavailableError",
    "TransferError",
    "TransferErrorCode",
    "ValidationError",
    # Hashing
    "cache_key",
    "compute_bytes_hash",
    "compute_file_hash",
    # Types
    "Priority",
    "ReadSource",
    "StorageProvider",
    "SyncStatus",
]
