"""Content hashing helpers."""

from __future__ import annotations

import hashlib
from pathlib import Path

HASH_BLOCK_SIZE = 64 * 1024


def compute_file_hash(path: Path) -> str:
    """Compute SHA-256 hash of a file.

    Reads the file in blocks to handle large files efficiently.

    Args:
        path: Path to the file to hash.

    Returns:
        Hexadecimal SHA-256 hash string.
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            hasher.update(block)
    return hasher.hexdigest()


def compute_bytes_hash(data: bytes) -> str:
    """Compute SHA-256 hash of an in-memory payload."""
    return hashlib.sha256(data).hexdigest()


def cache_key(file_id: str, version: int | str) -> str:
    """Deterministic download-cache key for a (file id, version) pair.

    MD5 is used as a stable bucket name, not for security.
    """
    return hashlib.md5(f"{file_id}_{version}".encode(), usedforsecurity=False).hexdigest()
