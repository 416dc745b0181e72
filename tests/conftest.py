"""Shared pytest fixtures.

The FakeRemote executor stands in for the rsync binary: it interprets
the argument vectors built by CommandBuilder against a directory that
plays the remote module, so the transfer client, the worker and the
cache run end to end without a network.
"""

from __future__ import annotations

import shutil
import stat
import threading
import time
from collections.abc import Generator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from docsync.cache.cache import DownloadCache
from docsync.core.config import (
    CacheConfig,
    RemoteConfig,
    Settings,
    StorageConfig,
    TransferConfig,
    WorkerConfig,
)
from docsync.service import FileService
from docsync.store.database import Database
from docsync.transfer.client import TransferClient
from docsync.transfer.credentials import CredentialFileRegistry
from docsync.transfer.executor import CommandResult

REMOTE_URL_PREFIX = "rsync://"


@dataclass
class PasswordFileObservation:
    """What the fake saw of the password file during one call."""

    path: Path
    existed: bool
    mode: int | None
    content: str | None


@dataclass
class FakeRemote:
    """Fake CommandExecutor backed by a local directory.

    Attributes:
        root: Directory holding the remote module's contents.
        fail_times: Number of upcoming calls that fail with ``fail_code``.
        always_fail: Every call fails with ``fail_code``.
        fail_code: Exit code used for injected failures.
        fail_stderr: Stderr used for injected failures.
        time_out: Every call reports a timeout.
        delay: Seconds to sleep inside each download.
        calls: Every argument vector received.
    """

    root: Path
    fail_times: int = 0
    always_fail: bool = False
    fail_code: int = 12
    fail_stderr: str = "rsync error: error in rsync protocol data stream (code 12)"
    time_out: bool = False
    delay: float = 0.0
    calls: list[list[str]] = field(default_factory=list)
    envs: list[dict[str, str] | None] = field(default_factory=list)
    password_files: list[PasswordFileObservation] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def operations(self, name: str) -> list[list[str]]:
        """Calls of one kind: upload, download, delete or list."""
        return [argv for argv in self.calls if self._operation(argv) == name]

    def remote_file(self, key: str) -> Path:
        return self.root / key

    @staticmethod
    def _operation(argv: list[str]) -> str:
        if "--list-only" in argv:
            return "list"
        if "--delete" in argv:
            return "delete"
        if argv[-1].startswith(REMOTE_URL_PREFIX):
            return "upload"
        return "download"

    def _to_remote(self, url: str) -> Path:
        # rsync://user@host:port/module/key -> root/key
        rest = url[len(REMOTE_URL_PREFIX):]
        parts = rest.split("/", 2)
        key = parts[2] if len(parts) > 2 else ""
        return self.root / key

    def _observe_password_file(self, argv: list[str]) -> None:
        for arg in argv:
            if arg.startswith("--password-file="):
                path = Path(arg.split("=", 1)[1])
                existed = path.exists()
                self.password_files.append(
                    PasswordFileObservation(
                        path=path,
                        existed=existed,
                        mode=stat.S_IMODE(path.stat().st_mode) if existed else None,
                        content=path.read_text() if existed else None,
                    )
                )

    def run(
        self,
        argv: list[str],
        timeout: float,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        with self._lock:
            self.calls.append(list(argv))
            self.envs.append(dict(env) if env is not None else None)
            self._observe_password_file(argv)
            if self.time_out:
                return CommandResult(returncode=-15, stderr="terminated", timed_out=True)
            if self.always_fail or self.fail_times > 0:
                self.fail_times = max(0, self.fail_times - 1)
                return CommandResult(returncode=self.fail_code, stderr=self.fail_stderr)

        operation = self._operation(argv)
        source, destination = argv[-2], argv[-1]
        if operation == "upload":
            target = self._to_remote(destination)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
            return CommandResult(returncode=0)
        if operation == "download":
            if self.delay:
                time.sleep(self.delay)
            origin = self._to_remote(source)
            if not origin.is_file():
                return CommandResult(
                    returncode=23,
                    stderr=f'rsync: link_stat "{origin.name}" failed: No such file or directory (2)',
                )
            shutil.copyfile(origin, destination)
            return CommandResult(returncode=0)
        if operation == "delete":
            name = next(a.split("=", 1)[1] for a in argv if a.startswith("--include="))
            target = self._to_remote(destination) / name
            if target.exists():
                target.unlink()
            return CommandResult(returncode=0)
        target = self._to_remote(destination)
        if not target.is_file():
            return CommandResult(
                returncode=23,
                stderr=f'rsync: change_dir "/{target.name}" failed: No such file or directory (2)',
            )
        size = target.stat().st_size
        return CommandResult(
            returncode=0,
            stdout=f"-rw-r--r--   {size:>13,} 2026/10/17 12:00:00 {target.name}\n",
        )


class FakeClock:
    """Controllable UTC clock returning datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTime:
    """Controllable epoch-seconds clock for the download cache."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def remote_config() -> RemoteConfig:
    """Remote endpoint with an inline secret."""
    return RemoteConfig(
        host="backup.example.org",
        user="docsync",
        module="files",
        password="s3cret-value",
        base_path="expediente-digital",
        public_base_url="https://files.example.org",
    )


@pytest.fixture
def transfer_config(tmp_path: Path) -> TransferConfig:
    return TransferConfig(temp_dir=tmp_path / "tmp")


@pytest.fixture
def settings(
    tmp_path: Path, remote_config: RemoteConfig, transfer_config: TransferConfig
) -> Settings:
    """Settings with replication enabled and everything under tmp_path."""
    return Settings(
        remote=remote_config,
        transfer=transfer_config,
        worker=WorkerConfig(max_retries=3, retry_delay=5.0, batch_size=10),
        cache=CacheConfig(directory=tmp_path / "cache", ttl=300.0, sweep_interval=120.0),
        storage=StorageConfig(
            upload_root=tmp_path / "uploads",
            db_path=tmp_path / "docsync.db",
            replication_enabled=True,
        ),
    )


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "docsync.db")
    yield database
    database.close()


@pytest.fixture
def fake_remote(tmp_path: Path) -> FakeRemote:
    root = tmp_path / "remote"
    root.mkdir()
    return FakeRemote(root=root)


@pytest.fixture
def registry() -> CredentialFileRegistry:
    return CredentialFileRegistry()


@pytest.fixture
def transfer_client(
    remote_config: RemoteConfig,
    transfer_config: TransferConfig,
    fake_remote: FakeRemote,
    registry: CredentialFileRegistry,
) -> TransferClient:
    return TransferClient(remote_config, transfer_config, executor=fake_remote, registry=registry)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def service(
    settings: Settings,
    db: Database,
    transfer_client: TransferClient,
    clock: FakeClock,
    fake_time: FakeTime,
) -> Generator[FileService, None, None]:
    """File service wired to the fake remote and fake clocks."""
    cache = DownloadCache(settings.cache, clock=fake_time)
    svc = FileService(settings, db, client=transfer_client, cache=cache, clock=clock)
    yield svc
    svc.cache.stop()
    if svc.worker is not None:
        svc.worker.stop()
