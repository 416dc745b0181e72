"""Path handling for rsync invocations.

rsync wants forward slashes everywhere and, on Windows builds, drive
letters spelled as ``/cygdrive/<letter>``. Remote keys are joined from
parts and never allowed to climb out of the module.
"""

from __future__ import annotations

import re
from pathlib import Path, PurePath
from typing import TYPE_CHECKING

from docsync.core.errors import ValidationError

if TYPE_CHECKING:
    from docsync.core.config import RemoteConfig

_DRIVE_RE = re.compile(r"^([A-Za-z]):/")
_MULTI_SLASH_RE = re.compile(r"/{2,}")


def validate_local_path(path: str | PurePath) -> str:
    """Reject empty paths and paths with NUL bytes.

    Returns:
        The path as a string.

    Raises:
        ValidationError: If the path is unusable.
    """
    text = str(path) if path is not None else ""
    if not text.strip():
        raise ValidationError("Local path must not be empty")
    if "\x00" in text:
        raise ValidationError("Local path must not contain NUL bytes")
    return text


def to_transfer_path(path: str | PurePath) -> str:
    """Format a local path the way rsync expects it.

    Backslashes become forward slashes and ``C:/x`` becomes
    ``/cygdrive/c/x``. Applied to every local path handed to rsync,
    including the password file.
    """
    text = validate_local_path(path).replace("\\", "/")
    match = _DRIVE_RE.match(text)
    if match:
        text = f"/cygdrive/{match.group(1).lower()}/{text[3:]}"
    return text


def normalize_remote_path(*parts: str) -> str:
    """Join remote path parts into a clean relative key.

    Empty parts are dropped, separators are trimmed and duplicate slashes
    collapsed.

    Raises:
        ValidationError: On ``..`` segments, NUL bytes or an empty result.
    """
    segments: list[str] = []
    for part in parts:
        if part is None:
            continue
        text = str(part).replace("\\", "/")
        if "\x00" in text:
            raise ValidationError("Remote path must not contain NUL bytes")
        text = _MULTI_SLASH_RE.sub("/", text).strip("/")
        if not text:
            continue
        for segment in text.split("/"):
            if segment == "..":
                raise ValidationError(f"Remote path must not contain '..': {part!r}")
            if segment == ".":
                continue
            segments.append(segment)
    if not segments:
        raise ValidationError("Remote path must not be empty")
    return "/".join(segments)


def remote_parent(key: str) -> tuple[str, str]:
    """Split a remote key into (parent directory, file name)."""
    parent, _, name = key.rpartition("/")
    return parent, name


def build_remote_url(remote: RemoteConfig, relative: str = "") -> str:
    """Render ``rsync://user@host:port/module/relative``."""
    if not relative:
        return f"{remote.url}/"
    return f"{remote.url}/{relative}"


def sibling_temp_path(target: Path, tag: str) -> Path:
    """Temporary name next to ``target`` so that the final rename is atomic."""
    return target.with_name(f".{target.name}.{tag}.part")
