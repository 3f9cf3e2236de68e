"""Shared utilities for channel-launcher."""

from __future__ import annotations

import hashlib
import math
import shutil
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

GIB = 1024 ** 3


def chunked_read(
    stream: BinaryIO,
    chunk_size: int = 8192
) -> Iterator[bytes]:
    """Read stream in chunks.

    Args:
        stream: Binary stream to read from
        chunk_size: Size of each chunk in bytes

    Yields:
        Data chunks as bytes

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


def compute_file_md5(path: Path, chunk_size: int = 1024 * 1024) -> str:
    """Compute the hex MD5 digest of a file without loading it whole."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in chunked_read(f, chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def free_space_gib(path: Path) -> float:
    """Free space on the filesystem holding path, in GiB.

    The nearest existing ancestor is queried so that a target directory
    that has not been created yet can still be checked.
    """
    probe = path
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return shutil.disk_usage(probe).free / GIB


def required_space_gib(size_bytes: int, margin: float = 1.2) -> float:
    """Space needed to install a payload of size_bytes, in GiB.

    The declared size is rounded up to whole GiB before the margin is applied.
    """
    return math.ceil(size_bytes / GIB) * margin


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Example:
        >>> format_size(1536)
        '1.5 KB'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"
