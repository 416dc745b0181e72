"""Subprocess execution with a wall-clock timeout."""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from docsync.core.config import TERMINATE_GRACE_SECONDS
from docsync.core.errors import TransferError, TransferErrorCode

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one external command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration: float = 0.0


class CommandExecutor(Protocol):
    """Runs an argument vector and reports its outcome."""

    def run(
        self,
        argv: list[str],
        timeout: float,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run ``argv``; never raise for a non-zero exit."""
        ...


class SubprocessExecutor:
    """Runs commands with ``subprocess.Popen``.

    On timeout the child gets SIGTERM, then SIGKILL after a grace period.
    """

    def __init__(self, grace_period: float = TERMINATE_GRACE_SECONDS) -> None:
        self._grace_period = grace_period

    def run(
        self,
        argv: list[str],
        timeout: float,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                env=dict(env) if env is not None else None,
            )
        except OSError as e:
            raise TransferError(
                f"Could not start {argv[0]}: {e}",
                code=TransferErrorCode.SPAWN_FAILED,
            ) from e

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Command exceeded %.0fs, terminating", timeout)
            proc.terminate()
            try:
                stdout, stderr = proc.communicate(timeout=self._grace_period)
            except subprocess.TimeoutExpired:
                proc.kill()
                stdout, stderr = proc.communicate()
            return CommandResult(
                returncode=proc.returncode if proc.returncode is not None else -1,
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
                duration=time.monotonic() - started,
            )

        return CommandResult(
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=time.monotonic() - started,
        )
