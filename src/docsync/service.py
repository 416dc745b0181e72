"""File service: the write and read paths over the replication core.

This module provides:
- FileService.upload / replace: save bytes locally, create or bump the
  record and queue replication
- FileService.read: serve a file through the download cache from local
  storage or the remote node
- FileService.delete / resync / verify_remote: operator actions
- FileService.from_settings: wire every component from Settings
"""

from __future__ import annotations

import contextlib
import logging
import os
import secrets
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any

from docsync.cache.cache import DownloadCache
from docsync.core.errors import (
    IntegrityError,
    NotFoundError,
    ServiceUnavailableError,
    TransferError,
    ValidationError,
)
from docsync.core.hashing import compute_bytes_hash, compute_file_hash
from docsync.core.types import Priority, ReadSource, SyncStatus
from docsync.replication.queue import ReplicationQueue, utc_clock
from docsync.replication.worker import BatchSummary, ReplicationWorker
from docsync.store.database import Database
from docsync.transfer.client import TransferClient

if TYPE_CHECKING:
    from docsync.core.config import Settings
    from docsync.store.base import QueueStatus
    from docsync.store.models import FileRecord

logger = logging.getLogger(__name__)

CONTEXT_PREFIX_LENGTH = 8


@dataclass
class ReadResult:
    """A file ready to be served."""

    path: Path
    record: FileRecord
    source: str | None
    cache_hit: bool


@dataclass
class DeletionResult:
    """What a delete removed."""

    record_id: str
    original_name: str
    database: bool = True
    local: bool = False
    remote: bool = False
    remote_warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "original_name": self.original_name,
            "database": self.database,
            "local": self.local,
            "remote": self.remote,
            "remote_warning": self.remote_warning,
        }


@dataclass
class VerificationResult:
    """Remote copy compared with the record."""

    record_id: str
    exists: bool
    expected_size: int
    remote_size: int | None = None

    @property
    def matches(self) -> bool:
        return self.exists and self.remote_size == self.expected_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "exists": self.exists,
            "expected_size": self.expected_size,
            "remote_size": self.remote_size,
            "matches": self.matches,
        }


def generate_system_name(extension: str, context_id: str | None = None) -> str:
    """Collision-resistant local file name: ``[<ctx>_]<ms>_<rand>.<ext>``."""
    name = f"{int(time.time() * 1000)}_{secrets.token_hex(4)}.{extension}"
    if context_id:
        name = f"{context_id[-CONTEXT_PREFIX_LENGTH:]}_{name}"
    return name


def _write_atomic(path: Path, data: bytes) -> Path:
    """Write ``data`` under a temporary sibling name and return that name."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f".{path.name}.{secrets.token_hex(4)}.tmp")
    try:
        with open(temp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        raise
    return temp_path


class FileService:
    """Entry point used by the HTTP API and the CLI."""

    def __init__(
        self,
        settings: Settings,
        store: Database,
        client: TransferClient | None = None,
        cache: DownloadCache | None = None,
        queue: ReplicationQueue | None = None,
        worker: ReplicationWorker | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Complete configuration.
            store: File record store.
            client: Transfer client; None when replication is disabled.
            cache: Download cache (created from settings by default).
            queue: Replication queue (created from settings by default).
            worker: Replication worker (created when a client is given).
            clock: Returns the current UTC time (replaced in tests).
        """
        self._settings = settings
        self._store = store
        self._client = client
        self._clock = clock or utc_clock
        self._cache = cache or DownloadCache(settings.cache)
        self._queue = queue or ReplicationQueue(store, settings.worker, clock=self._clock)
        if worker is None and client is not None:
            worker = ReplicationWorker(self._queue, client)
        self._worker = worker

    @classmethod
    def from_settings(cls, settings: Settings) -> FileService:
        """Validate settings and build every component.

        Raises:
            ConfigError: If the settings are unusable.
        """
        settings.validate()
        store = Database(settings.storage.db_path)
        client = None
        if settings.storage.replication_enabled:
            client = TransferClient(settings.remote, settings.transfer)
        return cls(settings, store, client=client)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> Database:
        return self._store

    @property
    def client(self) -> TransferClient | None:
        return self._client

    @property
    def cache(self) -> DownloadCache:
        return self._cache

    @property
    def queue(self) -> ReplicationQueue:
        return self._queue

    @property
    def worker(self) -> ReplicationWorker | None:
        return self._worker

    @property
    def replication_enabled(self) -> bool:
        return self._settings.storage.replication_enabled and self._client is not None

    def start(self, run_worker: bool = True) -> None:
        """Start the cache sweep and, if enabled, the replication worker."""
        self._cache.start()
        if run_worker and self._worker is not None:
            self._worker.start()

    def close(self) -> None:
        """Stop background jobs and close the store."""
        if self._worker is not None:
            self._worker.stop()
        self._cache.stop()
        self._store.close()

    # === Write path ===

    def _validate_upload(self, data: bytes, original_name: str) -> str:
        name = PurePath(original_name.replace("\\", "/")).name if original_name else ""
        if not name or "\x00" in name:
            raise ValidationError("A file name is required")
        extension = PurePath(name).suffix.lstrip(".").lower()
        allowed = self._settings.storage.allowed_extensions
        if extension not in allowed:
            raise ValidationError(
                f"File type not allowed: {extension or '(none)'}. Allowed: {', '.join(allowed)}"
            )
        self._validate_size(data)
        return extension

    def _validate_size(self, data: bytes) -> None:
        if not data:
            raise ValidationError("File is empty")
        limit = self._settings.storage.max_file_size
        if len(data) > limit:
            raise ValidationError(
                f"File is too large ({len(data)} bytes). Maximum: {limit // 1024 // 1024} MB"
            )

    def upload(
        self,
        data: bytes,
        original_name: str,
        context_id: str | None = None,
        priority: Priority | int = Priority.NORMAL,
        keep_local: bool | None = None,
        uploaded_by: str | None = None,
        mime_type: str | None = None,
    ) -> FileRecord:
        """Save a new file and queue it for replication.

        Raises:
            ValidationError: If the name, type or size is not acceptable.
        """
        extension = self._validate_upload(data, original_name)
        system_name = generate_system_name(extension, context_id)
        local_path = self._settings.storage.upload_root / system_name
        temp_path = _write_atomic(local_path, data)
        os.replace(temp_path, local_path)

        now = self._clock()
        try:
            record = self._store.create_record(
                original_name=PurePath(original_name.replace("\\", "/")).name,
                system_name=system_name,
                context_id=context_id,
                mime_type=mime_type,
                uploaded_by=uploaded_by,
                checksum=compute_bytes_hash(data),
                size=len(data),
                local_path=str(local_path),
                remote_path=system_name,
                keep_local=(
                    self._settings.storage.keep_local_default if keep_local is None else keep_local
                ),
                sync_status=SyncStatus.PENDING if self.replication_enabled else None,
                priority=int(Priority.parse(priority)),
                created_at=now,
                updated_at=now,
            )
        except Exception:
            with contextlib.suppress(OSError):
                local_path.unlink()
            raise

        logger.info(
            "Stored %s as %s (%d bytes, sync %s)",
            record.original_name,
            system_name,
            record.size,
            record.sync_status.value if record.sync_status else "disabled",
        )
        return record

    def replace(self, file_id: str, data: bytes) -> FileRecord:
        """Replace the content of a file, bumping its version.

        Raises:
            NotFoundError: If the record does not exist.
            RecordBusyError: If the record is being replicated.
            ValidationError: If the new content is not acceptable.
        """
        record = self.get(file_id)
        self._validate_size(data)
        local_path = (
            Path(record.local_path)
            if record.local_path
            else self._settings.storage.upload_root / record.system_name
        )
        temp_path = _write_atomic(local_path, data)
        try:
            updated = self._store.replace_content(
                file_id,
                local_path=str(local_path),
                checksum=compute_bytes_hash(data),
                size=len(data),
                now=self._clock(),
            )
            os.replace(temp_path, local_path)
        finally:
            with contextlib.suppress(OSError):
                temp_path.unlink()
        self._cache.remove(file_id, record.version)
        logger.info("Replaced content of %s (now v%d)", file_id, updated.version)
        return updated

    # === Read path ===

    def get(self, file_id: str) -> FileRecord:
        """Get an active record.

        Raises:
            ValidationError: If the id is empty.
            NotFoundError: If there is no such active record.
        """
        if not file_id or not file_id.strip():
            raise ValidationError("File id must not be empty")
        record = self._store.get_record(file_id)
        if record is None or not record.is_active:
            raise NotFoundError(f"File not found: {file_id}")
        return record

    def list_files(self, status: SyncStatus | None = None) -> list[FileRecord]:
        return self._store.list_records(status=status)

    def _local_available(self, record: FileRecord) -> bool:
        return record.is_available_locally and Path(record.local_path or "").is_file()

    def _remote_available(self, record: FileRecord) -> bool:
        return self._client is not None and record.sync_status == SyncStatus.SYNCED

    def _choose_source(self, record: FileRecord, source: ReadSource) -> ReadSource:
        if source == ReadSource.LOCAL:
            if not self._local_available(record):
                raise NotFoundError(f"No local copy of {record.id}")
            return ReadSource.LOCAL
        if source == ReadSource.REMOTE:
            if not self._remote_available(record):
                raise ServiceUnavailableError(f"No remote copy of {record.id} is available")
            return ReadSource.REMOTE
        if record.sync_status == SyncStatus.FAILED and not record.keep_local:
            raise ServiceUnavailableError(
                f"Replication of {record.id} failed and no local copy is retained"
            )
        if self._local_available(record):
            return ReadSource.LOCAL
        if self._remote_available(record):
            return ReadSource.REMOTE
        raise ServiceUnavailableError(
            f"File {record.id} cannot be served right now "
            f"(sync status {record.sync_status.value if record.sync_status else 'disabled'}, "
            "no local copy)"
        )

    def read(self, file_id: str, source: ReadSource | str = ReadSource.AUTO) -> ReadResult:
        """Resolve a file to a cached path.

        Raises:
            NotFoundError: If the record or the requested copy is absent.
            ServiceUnavailableError: If no complete copy can be served.
            TransferError: If the remote fetch failed.
            IntegrityError: If the fetched artifact was empty or, for a remote
                fetch, did not match the record checksum.
        """
        record = self.get(file_id)
        chosen = self._choose_source(record, ReadSource(source))

        def load(destination: Path) -> str:
            if chosen == ReadSource.LOCAL:
                shutil.copyfile(record.local_path, destination)
            else:
                assert self._client is not None
                self._client.download(record.remote_path, destination)
                checksum = compute_file_hash(destination)
                if checksum != record.checksum:
                    raise IntegrityError(
                        f"Remote copy of {record.id} v{record.version} does not match its "
                        f"checksum: expected {record.checksum[:12]}, found {checksum[:12]}"
                    )
            return chosen.value

        result = self._cache.fetch(record.id, record.version, load)
        return ReadResult(
            path=result.path,
            record=record,
            source=result.origin,
            cache_hit=result.cache_hit,
        )

    # === Operator actions ===

    def _require_replication(self) -> TransferClient:
        if self._client is None or not self._settings.storage.replication_enabled:
            raise ServiceUnavailableError("Replication is not enabled")
        return self._client

    def resync(
        self,
        file_id: str,
        reset_retries: bool = False,
        priority: Priority | int | str | None = None,
    ) -> FileRecord:
        """Queue a file for replication again."""
        self._require_replication()
        self.get(file_id)
        return self._queue.resync(
            file_id,
            reset_retries=reset_retries,
            priority=None if priority is None else Priority.parse(priority),
        )

    def process_queue(self, limit: int | None = None) -> BatchSummary:
        """Run one replication batch in the calling thread."""
        self._require_replication()
        assert self._worker is not None
        return self._worker.process_batch(limit)

    def delete(
        self,
        file_id: str,
        delete_local: bool = False,
        delete_remote: bool = False,
    ) -> DeletionResult:
        """Logically remove a file, optionally deleting its copies.

        Raises:
            NotFoundError: If the record does not exist.
            RecordBusyError: If the record is being replicated.
        """
        record = self.get(file_id)
        self._store.deactivate(file_id, now=self._clock())
        result = DeletionResult(record_id=file_id, original_name=record.original_name)

        if delete_local and record.local_path:
            try:
                Path(record.local_path).unlink()
                result.local = True
            except OSError as e:
                logger.warning("Could not delete local file %s: %s", record.local_path, e)

        if delete_remote and self._client is not None and record.sync_status is not None:
            try:
                transfer = self._client.delete(record.remote_path)
                result.remote = True
                result.remote_warning = transfer.warning
            except TransferError as e:
                logger.warning("Could not delete remote copy of %s: %s", file_id, e)
                result.remote_warning = str(e)

        self._cache.remove(file_id, record.version)
        logger.info("Removed %s (local=%s, remote=%s)", file_id, result.local, result.remote)
        return result

    def verify_remote(self, file_id: str) -> VerificationResult:
        """Compare the remote copy's size with the record."""
        client = self._require_replication()
        record = self.get(file_id)
        entry = client.stat(record.remote_path)
        result = VerificationResult(
            record_id=file_id,
            exists=entry is not None,
            expected_size=record.size,
            remote_size=entry.size if entry else None,
        )
        if result.matches:
            self._store.mark_verified(file_id, now=self._clock())
        else:
            logger.warning("Remote verification of %s failed: %s", file_id, result.to_dict())
        return result

    def queue_status(self) -> QueueStatus:
        return self._queue.status()

    def cache_stats(self) -> dict[str, Any]:
        return self._cache.stats()
