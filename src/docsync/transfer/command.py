"""rsync command lines.

Argument order is fixed: binary, base flags, port override, password
file, filters, source, destination. Tests and operators both rely on it.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from docsync.core.config import DEFAULT_RSYNC_PORT
from docsync.transfer.paths import (
    build_remote_url,
    normalize_remote_path,
    remote_parent,
    to_transfer_path,
)

if TYPE_CHECKING:
    from docsync.core.config import RemoteConfig, TransferConfig

PASSWORD_FILE_FLAG = "--password-file="
REDACTED_PASSWORD_FILE = f"{PASSWORD_FILE_FLAG}[PASSWORD-FILE]"


def redact(argv: list[str]) -> str:
    """Render a command line for logging with the password file hidden."""
    return " ".join(
        REDACTED_PASSWORD_FILE if arg.startswith(PASSWORD_FILE_FLAG) else arg for arg in argv
    )


class CommandBuilder:
    """Builds rsync argument vectors for one remote endpoint."""

    def __init__(self, remote: RemoteConfig, transfer: TransferConfig) -> None:
        self._remote = remote
        self._transfer = transfer

    def remote_key(self, relative: str) -> str:
        """Prefix a relative key with the configured base path."""
        return normalize_remote_path(self._remote.base_path, relative)

    def remote_url(self, relative: str) -> str:
        return build_remote_url(self._remote, self.remote_key(relative))

    def _base(self, extra_flags: tuple[str, ...] = ()) -> list[str]:
        argv = [self._transfer.rsync_binary, *self._transfer.default_flags]
        if self._transfer.compress:
            argv.append("-z")
        if self._transfer.verbose:
            argv.append("-v")
        if self._transfer.dry_run:
            argv.append("--dry-run")
        argv.extend(extra_flags)
        if self._remote.port != DEFAULT_RSYNC_PORT:
            argv.append(f"--port={self._remote.port}")
        return argv

    def _credentials(self, argv: list[str], password_file: Path | None) -> None:
        if password_file is not None:
            argv.append(f"{PASSWORD_FILE_FLAG}{to_transfer_path(password_file)}")

    def _filters(self, argv: list[str]) -> None:
        if self._transfer.bandwidth_limit:
            argv.append(f"--bwlimit={self._transfer.bandwidth_limit}")
        if self._transfer.exclude_from is not None:
            argv.append(f"--exclude-from={to_transfer_path(self._transfer.exclude_from)}")
        if self._transfer.include_from is not None:
            argv.append(f"--include-from={to_transfer_path(self._transfer.include_from)}")

    def build_upload(
        self, local_path: Path, relative: str, password_file: Path | None = None
    ) -> list[str]:
        """Push ``local_path`` to ``base_path/relative``."""
        argv = self._base()
        self._credentials(argv, password_file)
        self._filters(argv)
        argv.append(to_transfer_path(local_path))
        argv.append(self.remote_url(relative))
        return argv

    def build_download(
        self, relative: str, local_path: Path, password_file: Path | None = None
    ) -> list[str]:
        """Pull ``base_path/relative`` into ``local_path``."""
        argv = self._base()
        self._credentials(argv, password_file)
        self._filters(argv)
        argv.append(self.remote_url(relative))
        argv.append(to_transfer_path(local_path))
        return argv

    def build_delete(
        self, relative: str, empty_dir: Path, password_file: Path | None = None
    ) -> list[str]:
        """Delete one remote file by syncing an empty directory over its parent.

        Only the named file is in scope (``--include=<name> --exclude=*``).
        """
        parent, name = remote_parent(self.remote_key(relative))
        argv = self._base(("-r", "--delete"))
        self._credentials(argv, password_file)
        if self._transfer.bandwidth_limit:
            argv.append(f"--bwlimit={self._transfer.bandwidth_limit}")
        argv.append(f"--include={name}")
        argv.append("--exclude=*")
        argv.append(f"{to_transfer_path(empty_dir)}/")
        argv.append(build_remote_url(self._remote, f"{parent}/" if parent else ""))
        return argv

    def build_list(self, relative: str, password_file: Path | None = None) -> list[str]:
        """List a remote entry without transferring it."""
        argv = [self._transfer.rsync_binary, "--list-only"]
        if self._remote.port != DEFAULT_RSYNC_PORT:
            argv.append(f"--port={self._remote.port}")
        self._credentials(argv, password_file)
        argv.append(self.remote_url(relative))
        return argv
