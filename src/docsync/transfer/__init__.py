"""Transfer layer - rsync command lines, credentials and the transfer client."""

from docsync.transfer.client import RemoteEntry, TransferClient, TransferResult
from docsync.transfer.command import CommandBuilder, redact
from docsync.transfer.credentials import CredentialFileRegistry, ephemeral_password_file
from docsync.transfer.executor import CommandExecutor, CommandResult, SubprocessExecutor
from docsync.transfer.paths import (
    build_remote_url,
    normalize_remote_path,
    to_transfer_path,
    validate_local_path,
)

__all__ = [
    "CommandBuilder",
    "CommandExecutor",
    "CommandResult",
    "CredentialFileRegistry",
    "RemoteEntry",
    "SubprocessExecutor",
    "TransferClient",
    "TransferResult",
    "build_remote_url",
    "ephemeral_password_file",
    "normalize_remote_path",
    "redact",
    "to_transfer_path",
    "validate_local_path",
]
