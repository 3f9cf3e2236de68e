"""Extraction of downloaded payload archives into the game directory."""

from __future__ import annotations

import zipfile
from pathlib import Path

import structlog

from channel_launcher.core.errors import TransferError
from channel_launcher.core.progress import FileProgress, PhaseChanged, ProgressStream

logger = structlog.get_logger()

DELETE_LIST = "deletefiles.txt"


def _safe_target(root: Path, name: str) -> Path:
    target = (root / name).resolve()
    if not target.is_relative_to(root.resolve()):
        raise TransferError(f"Archive member escapes target directory: {name}")
    return target


def extract_archive(archive: Path, game_dir: Path, remove: bool = True) -> ProgressStream:
    """Extract a payload archive over the game directory.

    Diff payloads carry a ``deletefiles.txt`` listing files removed by
    the update; those are deleted after extraction and the list itself is
    discarded.

    Args:
        archive: Downloaded zip payload
        game_dir: Installation directory
        remove: Delete the archive once extracted

    Yields:
        PhaseChanged followed by one FileProgress per member

    Raises:
        TransferError: If the archive is corrupt or unsafe
    """
    yield PhaseChanged("extract", archive.name)

    try:
        with zipfile.ZipFile(archive) as zf:
            members = [m for m in zf.infolist() if not m.is_dir()]
            for index, member in enumerate(members):
                _safe_target(game_dir, member.filename)
                zf.extract(member, game_dir)
                yield FileProgress(member.filename, index + 1, len(members))
    except zipfile.BadZipFile as e:
        raise TransferError(f"Corrupt archive {archive.name}: {e}", source=str(archive)) from e

    delete_list = game_dir / DELETE_LIST
    if delete_list.is_file():
        removed = 0
        for line in delete_list.read_text(encoding="utf-8").splitlines():
            name = line.strip()
            if not name:
                continue
            target = _safe_target(game_dir, name)
            if target.is_file():
                target.unlink()
                removed += 1
        delete_list.unlink()
        logger.debug("obsolete_files_removed", count=removed)

    if remove:
        archive.unlink()
    logger.info("archive_extracted", archive=archive.name, files=len(members))
