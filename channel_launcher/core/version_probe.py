"""Installed game version detection.

The game data directory contains a Unity ``globalgamemanagers`` asset.
Somewhere inside it is the ``ic.app-category.`` tag; 120 bytes past the
end of that tag sits a length-prefixed ASCII string such as
``3.5.0_10215426_10363218``. The version is the first underscore-delimited
token.

Layout at the string offset::

    +0  uint32 little-endian length L
    +4  L bytes ASCII payload
"""

from __future__ import annotations

import struct
from pathlib import Path

import structlog
from packaging.version import InvalidVersion, Version

from channel_launcher.core.errors import ProbeMalformed, ProbeNotFound

logger = structlog.get_logger()

VERSION_ASSET = "globalgamemanagers"
MARKER = b"ic.app-category."
STRING_OFFSET = 120


def pattern_search(data: bytes, pattern: bytes) -> int:
    """Find the end offset of the first occurrence of pattern.

    Only the first occurrence is considered.

    Args:
        data: Buffer to scan
        pattern: Byte sequence to look for

    Returns:
        Offset just past the match, or -1 if the pattern is absent
    """
    index = data.find(pattern)
    if index == -1:
        return -1
    return index + len(pattern)


def parse_version(data: bytes) -> str:
    """Extract the version string from a version asset buffer.

    Args:
        data: Raw contents of the version asset

    Returns:
        Version string (e.g., "3.5.0")

    Raises:
        ProbeNotFound: If the marker sequence is absent
        ProbeMalformed: If the length prefix overruns the buffer or the
            payload is not a valid version
    """
    end = pattern_search(data, MARKER)
    if end == -1:
        raise ProbeNotFound("Version marker not found")

    offset = end + STRING_OFFSET
    if offset + 4 > len(data):
        raise ProbeMalformed(
            f"Length prefix at offset {offset} exceeds buffer of {len(data)} bytes"
        )

    (length,) = struct.unpack_from("<I", data, offset)
    start = offset + 4
    if start + length > len(data):
        raise ProbeMalformed(
            f"Declared length {length} exceeds remaining {len(data) - start} bytes"
        )

    try:
        payload = data[start:start + length].decode("ascii")
    except UnicodeDecodeError as e:
        raise ProbeMalformed(f"Version payload is not ASCII: {e}") from e

    version = payload.split("_")[0]
    try:
        Version(version)
    except InvalidVersion as e:
        raise ProbeMalformed(f"Invalid version string: {version!r}") from e

    return version


def probe_version(data_dir: Path) -> str:
    """Read the installed game version from a data directory.

    Args:
        data_dir: Game data directory (install dir joined with the
            channel's data directory name)

    Returns:
        Installed version string

    Raises:
        ProbeNotFound: If the asset or its marker is missing
        ProbeMalformed: If the asset is corrupt
    """
    asset = data_dir / VERSION_ASSET
    if not asset.is_file():
        raise ProbeNotFound(f"Version asset not found: {asset}")

    version = parse_version(asset.read_bytes())
    logger.debug("version_probed", path=str(asset), version=version)
    return version
