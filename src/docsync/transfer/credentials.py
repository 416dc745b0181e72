"""Ephemeral rsync password files.

An inline secret is written to a 0600 file right before an rsync
invocation and removed right after it, whatever the outcome. Files that
are still alive when the process is interrupted are removed by the
registry's signal and exit hooks.
"""

from __future__ import annotations

import atexit
import contextlib
import logging
import os
import secrets
import signal
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

PASSWORD_FILE_PREFIX = "rsync_pass_"


class CredentialFileRegistry:
    """Tracks live ephemeral password files so they can be removed on exit."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: set[Path] = set()
        self._installed = False
        self._previous_handlers: dict[int, Any] = {}

    def register(self, path: Path) -> None:
        with self._lock:
            self._paths.add(path)

    def discard(self, path: Path) -> None:
        with self._lock:
            self._paths.discard(path)

    @property
    def live_files(self) -> list[Path]:
        with self._lock:
            return sorted(self._paths)

    def cleanup(self) -> int:
        """Remove every tracked file.

        Returns:
            Number of files removed.
        """
        with self._lock:
            paths = list(self._paths)
            self._paths.clear()
        removed = 0
        for path in paths:
            with contextlib.suppress(FileNotFoundError):
                path.unlink()
                removed += 1
        if removed:
            logger.info("Removed %d leftover password file(s)", removed)
        return removed

    def install_signal_handlers(self) -> None:
        """Run cleanup at interpreter exit and on SIGINT/SIGTERM.

        Signal handlers can only be installed from the main thread; from any
        other thread only the exit hook is registered.
        """
        if self._installed:
            return
        self._installed = True
        atexit.register(self.cleanup)
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, skipping signal handlers")
            return
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        self.cleanup()
        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)


_default_registry = CredentialFileRegistry()


def get_registry() -> CredentialFileRegistry:
    """Process-wide registry used when none is injected."""
    return _default_registry


@contextlib.contextmanager
def ephemeral_password_file(
    secret: str,
    directory: Path | None = None,
    registry: CredentialFileRegistry | None = None,
) -> Iterator[Path]:
    """Write ``secret`` to a private file for the duration of the block.

    Args:
        secret: Password to write. Never logged.
        directory: Directory for the file (system temp dir by default).
        registry: Registry tracking the file until it is removed.

    Yields:
        Path of the password file, readable only by the owner.
    """
    registry = registry or _default_registry
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(
        prefix=f"{PASSWORD_FILE_PREFIX}{secrets.token_hex(4)}_",
        dir=directory,
    )
    path = Path(name)
    registry.register(path)
    try:
        os.chmod(path, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(secret)
            f.write("\n")
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()
        registry.discard(path)
