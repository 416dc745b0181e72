"""Error taxonomy for docsync.

Every error raised by the core derives from DocSyncError so that the
HTTP and CLI edges can translate them in one place.
"""

from __future__ import annotations

from enum import Enum

STDERR_EXCERPT_LENGTH = 500


class DocSyncError(Exception):
    """Base class for all docsync errors."""


class ConfigError(DocSyncError):
    """Missing or invalid configuration. Fatal at startup."""


class ValidationError(DocSyncError):
    """Bad input (path, id, name, size). Raised before any I/O."""


class TransferErrorCode(str, Enum):
    """Why a transfer subprocess failed."""

    TIMEOUT = "TIMEOUT"
    NONZERO_EXIT = "NONZERO_EXIT"
    SPAWN_FAILED = "SPAWN_FAILED"


class TransferError(DocSyncError):
    """A transfer subprocess failed, timed out, or could not be started."""

    def __init__(
        self,
        message: str,
        code: TransferErrorCode = TransferErrorCode.NONZERO_EXIT,
        stderr: str = "",
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.exit_code = exit_code
        self.stderr_excerpt = stderr[-STDERR_EXCERPT_LENGTH:] if stderr else ""

    def __str__(self) -> str:
        base = super().__str__()
        if self.stderr_excerpt:
            return f"{base}: {self.stderr_excerpt.strip()}"
        return base


class IntegrityError(DocSyncError):
    """A produced artifact is empty or does not match its checksum."""


class LockTimeoutError(DocSyncError):
    """Timed out waiting for another caller's fetch of the same key."""


class NotFoundError(DocSyncError):
    """A record, local artifact or remote artifact does not exist."""


class ServiceUnavailableError(DocSyncError):
    """The file exists but cannot currently be served."""


class RecordBusyError(DocSyncError):
    """The record is being replicated and cannot be mutated right now."""
