"""Configuration for docsync.

Settings are plain dataclasses. ``Settings.from_env`` reads them from
``DOCSYNC_*`` environment variables; ``Settings.validate`` is called at
startup and raises ConfigError on anything unusable.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from docsync.core.errors import ConfigError

ENV_PREFIX = "DOCSYNC_"
DEFAULT_RSYNC_PORT = 873
TERMINATE_GRACE_SECONDS = 5.0
DEFAULT_FLAGS = ("-a", "--partial", "--mkpath", "--timeout=300")
DEFAULT_ALLOWED_EXTENSIONS = (
    "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
    "jpg", "jpeg", "png", "gif", "webp",
    "txt", "csv", "zip", "rar",
)


@dataclass
class RemoteConfig:
    """Connection settings for the remote rsync daemon.

    Attributes:
        host: Remote node host name or address.
        user: rsync daemon user.
        module: rsync daemon module name.
        port: rsync daemon port (873 is the protocol default).
        password: Inline secret. Never logged.
        password_file: Pre-shared password file, used as-is.
        use_password_file: Write an inline secret to an ephemeral file per
            invocation. When false the secret is passed to the child through
            the RSYNC_PASSWORD environment variable.
        base_path: Prefix prepended to every remote key.
        public_base_url: Optional base URL under which synced files are served.
    """

    host: str = ""
    user: str = ""
    module: str = ""
    port: int = DEFAULT_RSYNC_PORT
    password: str | None = field(default=None, repr=False)
    password_file: Path | None = None
    use_password_file: bool = True
    base_path: str = "expediente-digital"
    public_base_url: str | None = None

    def __post_init__(self) -> None:
        """Normalize fields."""
        self.host = self.host.strip()
        self.user = self.user.strip()
        self.module = self.module.strip().strip("/")
        self.base_path = self.base_path.strip().strip("/")
        if self.password_file is not None:
            self.password_file = Path(self.password_file)
        if self.public_base_url:
            self.public_base_url = self.public_base_url.rstrip("/")

    @property
    def url(self) -> str:
        """Base daemon URL, ``rsync://user@host:port/module``."""
        return f"rsync://{self.user}@{self.host}:{self.port}/{self.module}"

    @property
    def has_secret(self) -> bool:
        return bool(self.password) or self.password_file is not None

    def validate(self) -> None:
        """Check that the endpoint is usable.

        Raises:
            ConfigError: If host, user or module is missing or the port is invalid.
        """
        missing = [name for name in ("host", "user", "module") if not getattr(self, name)]
        if missing:
            env_names = ", ".join(f"{ENV_PREFIX}RSYNC_{name.upper()}" for name in missing)
            raise ConfigError(f"Incomplete remote configuration, missing: {env_names}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"Invalid rsync port: {self.port}")
        if self.password_file is not None and not self.password_file.is_file():
            raise ConfigError(f"Password file does not exist: {self.password_file}")


@dataclass
class TransferConfig:
    """How the rsync binary is invoked."""

    rsync_binary: str = "rsync"
    default_flags: tuple[str, ...] = DEFAULT_FLAGS
    compress: bool = True
    verbose: bool = False
    dry_run: bool = False
    bandwidth_limit: int | None = None
    exclude_from: Path | None = None
    include_from: Path | None = None
    transfer_timeout: float = 600.0
    delete_timeout: float = 300.0
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))


@dataclass
class WorkerConfig:
    """Replication worker settings.

    Attributes:
        max_retries: Attempts before a record is marked FAILED.
        retry_delay: Base backoff in seconds, multiplied by the attempt number.
        max_retry_delay: Upper bound for the backoff.
        batch_size: Records claimed per batch.
        priority_first: Order claims by priority before age.
        poll_interval: Seconds between scheduled batches.
        stale_claim_after: Seconds after which a SYNCING claim is considered
            abandoned and released back to PENDING.
    """

    max_retries: int = 3
    retry_delay: float = 5.0
    max_retry_delay: float = 300.0
    batch_size: int = 10
    priority_first: bool = True
    poll_interval: float = 120.0
    stale_claim_after: float = 3600.0


@dataclass
class CacheConfig:
    """Download cache settings."""

    directory: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "docsync-cache")
    ttl: float = 300.0
    sweep_interval: float = 120.0
    lock_wait_timeout: float = 30.0


@dataclass
class StorageConfig:
    """Local storage and metadata store settings."""

    upload_root: Path = Path("uploads")
    db_path: Path = Path("docsync.db")
    max_file_size: int = 50 * 1024 * 1024
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    replication_enabled: bool = False
    keep_local_default: bool = True

    def __post_init__(self) -> None:
        """Normalize paths and extensions."""
        self.upload_root = Path(self.upload_root)
        self.db_path = Path(self.db_path)
        self.allowed_extensions = tuple(ext.lower().lstrip(".") for ext in self.allowed_extensions)


@dataclass
class Settings:
    """Complete docsync configuration."""

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_path: Path | None = None
    log_level: str = "INFO"

    def validate(self) -> None:
        """Validate the configuration.

        Remote settings are only required when replication is enabled.

        Raises:
            ConfigError: On the first unusable setting.
        """
        if self.storage.max_file_size <= 0:
            raise ConfigError("max_file_size must be positive")
        if self.worker.max_retries < 1:
            raise ConfigError("max_retries must be at least 1")
        if self.worker.batch_size < 1:
            raise ConfigError("batch_size must be at least 1")
        if self.worker.retry_delay < 0 or self.worker.max_retry_delay < 0:
            raise ConfigError("retry delays must not be negative")
        if self.cache.ttl <= 0 or self.cache.lock_wait_timeout <= 0:
            raise ConfigError("cache ttl and lock wait timeout must be positive")
        # A claim must outlive the longest upload, or a live transfer gets re-claimed
        longest_upload = self.transfer.transfer_timeout + TERMINATE_GRACE_SECONDS
        if self.worker.stale_claim_after <= longest_upload:
            raise ConfigError(
                f"stale_claim_after ({self.worker.stale_claim_after:.0f}s) must exceed the "
                f"transfer timeout plus the terminate grace period ({longest_upload:.0f}s)"
            )
        if self.storage.replication_enabled:
            self.remote.validate()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ).

        Raises:
            ConfigError: If a value cannot be parsed.
        """
        env = _Env(os.environ if environ is None else environ)

        remote = RemoteConfig(
            host=env.get_str("RSYNC_HOST", ""),
            user=env.get_str("RSYNC_USER", ""),
            module=env.get_str("RSYNC_MODULE", ""),
            port=env.get_int("RSYNC_PORT", DEFAULT_RSYNC_PORT),
            password=env.get_str("RSYNC_PASSWORD", "") or None,
            password_file=env.get_path("RSYNC_PASSWORD_FILE"),
            use_password_file=env.get_bool("RSYNC_USE_PASSWORD_FILE", True),
            base_path=env.get_str("RSYNC_BASE_PATH", "expediente-digital"),
            public_base_url=env.get_str("PUBLIC_BASE_URL", "") or None,
        )
        flags = env.get_str("RSYNC_FLAGS", "")
        transfer = TransferConfig(
            rsync_binary=env.get_str("RSYNC_BINARY", "rsync"),
            default_flags=tuple(flags.split()) if flags else DEFAULT_FLAGS,
            compress=env.get_bool("RSYNC_COMPRESS", True),
            verbose=env.get_bool("RSYNC_VERBOSE", False),
            dry_run=env.get_bool("RSYNC_DRY_RUN", False),
            bandwidth_limit=env.get_int("RSYNC_BWLIMIT", 0) or None,
            exclude_from=env.get_path("RSYNC_EXCLUDE_FROM"),
            include_from=env.get_path("RSYNC_INCLUDE_FROM"),
            transfer_timeout=env.get_float("RSYNC_TIMEOUT", 600.0),
            delete_timeout=env.get_float("RSYNC_DELETE_TIMEOUT", 300.0),
            temp_dir=env.get_path("TEMP_DIR") or Path(tempfile.gettempdir()),
        )
        worker = WorkerConfig(
            max_retries=env.get_int("SYNC_MAX_RETRIES", 3),
            retry_delay=env.get_float("SYNC_RETRY_DELAY", 5.0),
            max_retry_delay=env.get_float("SYNC_MAX_RETRY_DELAY", 300.0),
            batch_size=env.get_int("SYNC_BATCH_SIZE", 10),
            priority_first=env.get_bool("SYNC_PRIORITY_FIRST", True),
            poll_interval=env.get_float("SYNC_POLL_INTERVAL", 120.0),
            stale_claim_after=env.get_float("SYNC_STALE_CLAIM_AFTER", 3600.0),
        )
        cache = CacheConfig(
            directory=env.get_path("CACHE_DIR") or Path(tempfile.gettempdir()) / "docsync-cache",
            ttl=env.get_float("CACHE_TTL", 300.0),
            sweep_interval=env.get_float("CACHE_SWEEP_INTERVAL", 120.0),
            lock_wait_timeout=env.get_float("CACHE_LOCK_TIMEOUT", 30.0),
        )
        extensions = env.get_str("ALLOWED_EXTENSIONS", "")
        storage = StorageConfig(
            upload_root=env.get_path("UPLOAD_ROOT") or Path("uploads"),
            db_path=env.get_path("DB_PATH") or Path("docsync.db"),
            max_file_size=env.get_int("MAX_FILE_SIZE", 50 * 1024 * 1024),
            allowed_extensions=(
                tuple(e.strip() for e in extensions.split(",") if e.strip())
                if extensions
                else DEFAULT_ALLOWED_EXTENSIONS
            ),
            replication_enabled=env.get_bool("REPLICATION_ENABLED", False),
            keep_local_default=env.get_bool("KEEP_LOCAL", True),
        )
        return cls(
            remote=remote,
            transfer=transfer,
            worker=worker,
            cache=cache,
            storage=storage,
            log_path=env.get_path("LOG_PATH"),
            log_level=env.get_str("LOG_LEVEL", "INFO").upper(),
        )


class _Env:
    """Typed access to prefixed environment variables."""

    _TRUE = {"1", "true", "yes", "on"}
    _FALSE = {"0", "false", "no", "off", ""}

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ

    def _raw(self, name: str) -> str | None:
        return self._environ.get(ENV_PREFIX + name)

    def get_str(self, name: str, default: str) -> str:
        value = self._raw(name)
        return default if value is None else value.strip()

    def get_int(self, name: str, default: int) -> int:
        value = self._raw(name)
        if value is None or not value.strip():
            return default
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}") from None

    def get_float(self, name: str, default: float) -> float:
        value = self._raw(name)
        if value is None or not value.strip():
            return default
        try:
            return float(value)
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from None

    def get_bool(self, name: str, default: bool) -> bool:
        value = self._raw(name)
        if value is None:
            return default
        lowered = value.strip().lower()
        if lowered in self._TRUE:
            return True
        if lowered in self._FALSE:
            return False
        raise ConfigError(f"{ENV_PREFIX}{name} must be a boolean, got {value!r}")

    def get_path(self, name: str) -> Path | None:
        value = self._raw(name)
        if value is None or not value.strip():
            return None
        return Path(value.strip()).expanduser()
