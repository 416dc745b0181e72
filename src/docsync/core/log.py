"""Logging setup shared by the server, the worker and the CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    log_path: Path | None = None,
    level: int | str = logging.INFO,
    capture_uvicorn: bool = False,
) -> None:
    """Configure logging to output to stdout and optionally a file.

    Calling it twice does not duplicate handlers.

    Args:
        log_path: Optional path to the log file.
        level: Log level for the docsync logger.
        capture_uvicorn: Also send uvicorn logs to the file handler.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("docsync")
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is None:
        return

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if capture_uvicorn:
        for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            logging.getLogger(uvicorn_name).addHandler(file_handler)
