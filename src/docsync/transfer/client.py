"""Transfer client for the remote rsync node.

This module provides:
- TransferClient: upload, download, delete and stat of single files
- TransferResult / RemoteEntry: what the client reports back

Every invocation is bounded by a timeout and logged with the password
file redacted. Inline secrets live on disk only for the duration of one
invocation.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import secrets
import tempfile
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from docsync.core.errors import NotFoundError, TransferError, TransferErrorCode
from docsync.replication.retry import DEFAULT_RETRY_DELAY, retry_with_backoff
from docsync.transfer.command import CommandBuilder, redact
from docsync.transfer.credentials import (
    CredentialFileRegistry,
    ephemeral_password_file,
    get_registry,
)
from docsync.transfer.executor import CommandExecutor, CommandResult, SubprocessExecutor
from docsync.transfer.paths import normalize_remote_path, sibling_temp_path, validate_local_path

if TYPE_CHECKING:
    from docsync.core.config import RemoteConfig, TransferConfig

logger = logging.getLogger(__name__)

# rsync exit codes that only mean "some files were not transferred" or
# "source files vanished"; for a delete the target is gone either way.
ACCEPTABLE_DELETE_EXIT_CODES = frozenset({23, 24})

NOT_FOUND_MARKERS = (
    "no such file or directory",
    "file not found",
    "does not exist",
)

CONNECTION_TEST_DIR = "test"

_LIST_LINE_RE = re.compile(
    r"^(?P<mode>[-dlcbps][-rwxsStT]{9})\s+(?P<size>[\d,.]+)\s+"
    r"(?P<date>\d{4}/\d{2}/\d{2})\s+(?P<time>\d{2}:\d{2}:\d{2})\s+(?P<name>.+)$"
)


@dataclass
class TransferResult:
    """Outcome of a successful transfer operation.

    ``warning`` is set when the operation succeeded but rsync reported
    something worth surfacing (for example a delete of an absent file).
    """

    operation: str
    source: str
    destination: str
    remote_path: str
    exit_code: int
    bytes: int = 0
    duration: float = 0.0
    warning: str | None = None
    stdout: str = ""
    stderr: str = ""


@dataclass
class RemoteEntry:
    """A file as listed by the remote node."""

    path: str
    size: int
    modified: datetime | None = None


def _looks_not_found(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in NOT_FOUND_MARKERS)


def parse_list_output(stdout: str, remote_path: str) -> RemoteEntry | None:
    """Parse ``rsync --list-only`` output for a single file."""
    for line in reversed(stdout.splitlines()):
        match = _LIST_LINE_RE.match(line.strip())
        if not match:
            continue
        size = int(re.sub(r"[,.]", "", match.group("size")))
        try:
            modified = datetime.strptime(
                f"{match.group('date')} {match.group('time')}", "%Y/%m/%d %H:%M:%S"
            ).replace(tzinfo=UTC)
        except ValueError:
            modified = None
        return RemoteEntry(path=remote_path, size=size, modified=modified)
    return None


class TransferClient:
    """Moves single files between local disk and the remote rsync module."""

    def __init__(
        self,
        remote: RemoteConfig,
        transfer: TransferConfig,
        executor: CommandExecutor | None = None,
        registry: CredentialFileRegistry | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            remote: Remote endpoint settings.
            transfer: rsync invocation settings.
            executor: Command runner (subprocess by default).
            registry: Tracks ephemeral password files for cleanup on exit.
        """
        self._remote = remote
        self._transfer = transfer
        self._executor: CommandExecutor = executor or SubprocessExecutor()
        self._registry = registry or get_registry()
        self._builder = CommandBuilder(remote, transfer)

    @property
    def builder(self) -> CommandBuilder:
        return self._builder

    def remote_key(self, relative: str) -> str:
        """Full remote key (base path included) for a relative key."""
        return self._builder.remote_key(relative)

    def public_url(self, relative: str) -> str | None:
        """Public URL of a synced file, when a public base URL is configured."""
        if not self._remote.public_base_url:
            return None
        return f"{self._remote.public_base_url}/{self.remote_key(relative)}"

    @contextlib.contextmanager
    def _credentials(self) -> Iterator[tuple[Path | None, dict[str, str] | None]]:
        """Yield (password file, child environment) for one invocation."""
        if self._remote.password_file is not None:
            yield self._remote.password_file, None
        elif self._remote.password and self._remote.use_password_file:
            with ephemeral_password_file(
                self._remote.password, self._transfer.temp_dir, self._registry
            ) as path:
                yield path, None
        elif self._remote.password:
            env = dict(os.environ)
            env["RSYNC_PASSWORD"] = self._remote.password
            yield None, env
        else:
            yield None, None

    def _run(
        self,
        operation: str,
        build: Callable[[Path | None], list[str]],
        timeout: float,
    ) -> CommandResult:
        with self._credentials() as (password_file, env):
            argv = build(password_file)
            logger.info("rsync %s: %s", operation, redact(argv))
            result = self._executor.run(argv, timeout=timeout, env=env)
        if result.timed_out:
            raise TransferError(
                f"rsync {operation} timed out after {timeout:.0f}s",
                code=TransferErrorCode.TIMEOUT,
                stderr=result.stderr,
                exit_code=result.returncode,
            )
        logger.debug("rsync %s exited with %d in %.2fs", operation, result.returncode, result.duration)
        return result

    @staticmethod
    def _failure(operation: str, result: CommandResult) -> TransferError:
        return TransferError(
            f"rsync {operation} failed with exit code {result.returncode}",
            code=TransferErrorCode.NONZERO_EXIT,
            stderr=result.stderr,
            exit_code=result.returncode,
        )

    def upload(self, local_path: Path, relative: str) -> TransferResult:
        """Push a local file to ``base_path/relative``.

        Raises:
            ValidationError: If a path is malformed.
            NotFoundError: If the local file does not exist.
            TransferError: If rsync fails or times out.
        """
        local_path = Path(validate_local_path(local_path))
        relative = normalize_remote_path(relative)
        if not local_path.is_file():
            raise NotFoundError(f"Local file not found: {local_path}")
        size = local_path.stat().st_size
        logger.info("Uploading %s (%.2f MB) to %s", local_path.name, size / 1024 / 1024, relative)

        result = self._run(
            "upload",
            lambda pw: self._builder.build_upload(local_path, relative, pw),
            self._transfer.transfer_timeout,
        )
        if result.returncode != 0:
            raise self._failure("upload", result)
        return TransferResult(
            operation="upload",
            source=str(local_path),
            destination=self._builder.remote_url(relative),
            remote_path=self.remote_key(relative),
            exit_code=result.returncode,
            bytes=size,
            duration=result.duration,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def download(self, relative: str, local_path: Path) -> TransferResult:
        """Pull ``base_path/relative`` into ``local_path`` atomically.

        The file is written under a temporary sibling name and renamed onto
        ``local_path`` only after rsync succeeds.

        Raises:
            ValidationError: If a path is malformed.
            TransferError: If rsync fails or times out.
        """
        local_path = Path(validate_local_path(local_path))
        relative = normalize_remote_path(relative)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = sibling_temp_path(local_path, secrets.token_hex(4))

        try:
            result = self._run(
                "download",
                lambda pw: self._builder.build_download(relative, temp_path, pw),
                self._transfer.transfer_timeout,
            )
            if result.returncode != 0:
                raise self._failure("download", result)
            if not temp_path.is_file():
                raise TransferError(
                    f"rsync download produced no file for {relative}",
                    code=TransferErrorCode.NONZERO_EXIT,
                    stderr=result.stderr,
                    exit_code=result.returncode,
                )
            os.replace(temp_path, local_path)
        finally:
            with contextlib.suppress(OSError):
                temp_path.unlink()

        return TransferResult(
            operation="download",
            source=self._builder.remote_url(relative),
            destination=str(local_path),
            remote_path=self.remote_key(relative),
            exit_code=result.returncode,
            bytes=local_path.stat().st_size,
            duration=result.duration,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def delete(self, relative: str) -> TransferResult:
        """Delete one remote file.

        Exit codes 23 and 24 and "not found" diagnostics are reported as
        success with a warning: the file is absent afterwards either way.

        Raises:
            TransferError: On any other failure or on timeout.
        """
        relative = normalize_remote_path(relative)
        self._transfer.temp_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="rsync_empty_", dir=self._transfer.temp_dir) as empty:
            empty_dir = Path(empty)
            result = self._run(
                "delete",
                lambda pw: self._builder.build_delete(relative, empty_dir, pw),
                self._transfer.delete_timeout,
            )

        warning = None
        if result.returncode in ACCEPTABLE_DELETE_EXIT_CODES:
            warning = f"rsync exited with {result.returncode}, treated as deleted"
        elif result.returncode != 0:
            if not _looks_not_found(result.stderr):
                raise self._failure("delete", result)
            warning = "remote file not found"
        if warning:
            logger.warning("Delete of %s: %s", relative, warning)

        return TransferResult(
            operation="delete",
            source="",
            destination=self._builder.remote_url(relative),
            remote_path=self.remote_key(relative),
            exit_code=result.returncode,
            duration=result.duration,
            warning=warning,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def stat(self, relative: str) -> RemoteEntry | None:
        """Look up a remote file without transferring it.

        Returns:
            The remote entry, or None if the file does not exist.

        Raises:
            TransferError: If the listing fails for another reason.
        """
        relative = normalize_remote_path(relative)
        result = self._run(
            "list",
            lambda pw: self._builder.build_list(relative, pw),
            self._transfer.transfer_timeout,
        )
        if result.returncode != 0:
            if result.returncode == 23 or _looks_not_found(result.stderr):
                return None
            raise self._failure("list", result)
        return parse_list_output(result.stdout, self.remote_key(relative))

    def test_connection(
        self,
        attempts: int = 1,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> bool:
        """Upload a small test file to check reachability and credentials.

        Args:
            attempts: Uploads to try before reporting failure.
            retry_delay: Base backoff between attempts.
            sleep: Sleep function (replaced in tests).
        """
        self._transfer.temp_dir.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)
        test_name = f"connection_test_{stamp}.txt"
        test_file = self._transfer.temp_dir / test_name
        test_file.write_text(f"connection test {datetime.now(UTC).isoformat()}\n", encoding="utf-8")
        try:
            retry_with_backoff(
                lambda: self.upload(test_file, f"{CONNECTION_TEST_DIR}/{test_name}"),
                max_attempts=max(1, attempts),
                retry_delay=retry_delay,
                retryable_exceptions=(TransferError,),
                sleep=sleep,
            )
        except TransferError as e:
            logger.error("Connection test against %s failed: %s", self._remote.host, e)
            return False
        finally:
            with contextlib.suppress(OSError):
                test_file.unlink()
        logger.info("Connection test against %s succeeded", self._remote.host)
        return True
