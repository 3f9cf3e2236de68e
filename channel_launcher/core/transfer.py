"""Bulk transfer of game payloads over HTTP.

The orchestrator only depends on the ``Transfer`` protocol. ``HttpTransfer``
is the default implementation: resumable streamed downloads and
repair-in-place verification against a remote ``pkg_version`` listing.

A ``pkg_version`` listing is JSON lines::

    {"remoteName": "GenshinImpact_Data/globalgamemanagers", "md5": "...", "fileSize": 123}
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx
import structlog

from channel_launcher.core.errors import TransferError
from channel_launcher.core.progress import (
    BytesTransferred,
    FileProgress,
    PhaseChanged,
    ProgressStream,
)
from channel_launcher.core.utils import compute_file_md5

logger = structlog.get_logger()

LISTING_NAME = "pkg_version"


class Transfer(Protocol):
    """Contract for the transfer collaborator."""

    def download(self, source: str, destination: Path) -> ProgressStream:
        """Download source into destination, yielding progress."""
        ...

    def verify(self, local_dir: Path, remote_listing: str) -> ProgressStream:
        """Repair local_dir so it matches the remote listing."""
        ...


@dataclass(frozen=True)
class ListingEntry:
    """A single file in a remote content listing."""

    remote_name: str
    md5: str
    file_size: int


def parse_listing(text: str) -> list[ListingEntry]:
    """Parse a pkg_version listing.

    Args:
        text: JSON-lines listing body

    Returns:
        Listing entries in file order

    Raises:
        TransferError: If a line is not a valid listing record
    """
    entries: list[ListingEntry] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
            entries.append(
                ListingEntry(
                    remote_name=record["remoteName"],
                    md5=record["md5"].lower(),
                    file_size=int(record["fileSize"]),
                )
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransferError(f"Invalid listing record on line {line_no}: {e}") from e
    return entries


class HttpTransfer:
    """Streaming HTTP implementation of the transfer collaborator.

    Downloads go to ``<destination>.part`` and are renamed on completion.
    An existing partial file is resumed with a ``Range`` request.

    Args:
        timeout: Request timeout in seconds
        chunk_size: Streaming chunk size in bytes
        client: Optional preconfigured HTTP client
    """

    def __init__(
        self,
        timeout: float = 30.0,
        chunk_size: int = 1024 * 1024,
        client: httpx.Client | None = None,
    ):
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def download(self, source: str, destination: Path) -> ProgressStream:
        """Download a URL to a file, resuming any partial download.

        Yields:
            BytesTransferred events after every chunk

        Raises:
            TransferError: If the request fails
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        part_path = destination.with_name(destination.name + ".part")
        offset = part_path.stat().st_size if part_path.exists() else 0
        headers = {"Range": f"bytes={offset}-"} if offset else {}

        logger.debug("download_started", source=source, destination=str(destination), offset=offset)

        try:
            with self.client.stream("GET", source, headers=headers) as response:
                # 416 on a resumed download: the partial file is already complete
                if not (offset and response.status_code == 416):
                    response.raise_for_status()
                    if offset and response.status_code != 206:
                        # Server ignored the range, restart from scratch
                        offset = 0
                    total = int(response.headers.get("content-length", 0)) + offset
                    done = offset
                    mode = "ab" if offset else "wb"
                    with open(part_path, mode) as f:
                        for chunk in response.iter_bytes(self.chunk_size):
                            f.write(chunk)
                            done += len(chunk)
                            yield BytesTransferred(destination.name, done, total)
        except httpx.HTTPError as e:
            logger.error("download_failed", source=source, error=str(e))
            raise TransferError(f"Failed to download {source}: {e}", source=source) from e

        os.replace(part_path, destination)
        logger.info("download_complete", source=source, destination=str(destination))

    def fetch_listing(self, remote_listing: str) -> list[ListingEntry]:
        """Fetch and parse the listing for a remote content root."""
        url = f"{remote_listing.rstrip('/')}/{LISTING_NAME}"
        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransferError(f"Failed to fetch listing {url}: {e}", source=url) from e
        return parse_listing(response.text)

    def verify(self, local_dir: Path, remote_listing: str) -> ProgressStream:
        """Check every listed file and re-download the ones that differ.

        Args:
            local_dir: Installation directory
            remote_listing: Remote decompressed content root URL

        Yields:
            PhaseChanged, FileProgress and BytesTransferred events
        """
        yield PhaseChanged("verify", "Fetching file listing")
        entries = self.fetch_listing(remote_listing)
        root = remote_listing.rstrip("/")

        broken: list[ListingEntry] = []
        for index, entry in enumerate(entries):
            yield FileProgress(entry.remote_name, index + 1, len(entries))
            if not self._matches(local_dir / entry.remote_name, entry):
                broken.append(entry)

        logger.info("verify_scanned", files=len(entries), broken=len(broken))
        if not broken:
            return

        yield PhaseChanged("repair", f"Repairing {len(broken)} files")
        for entry in broken:
            target = local_dir / entry.remote_name
            yield from self.download(f"{root}/{entry.remote_name}", target)
            actual = compute_file_md5(target)
            if actual != entry.md5:
                raise TransferError(
                    f"Checksum mismatch after repair: {entry.remote_name}",
                    source=entry.remote_name,
                    expected=entry.md5,
                    actual=actual,
                )
            logger.debug("file_repaired", name=entry.remote_name)

    @staticmethod
    def _matches(path: Path, entry: ListingEntry) -> bool:
        if not path.is_file():
            return False
        if path.stat().st_size != entry.file_size:
            return False
        return compute_file_md5(path) == entry.md5

    def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> HttpTransfer:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
