"""Client patch application and revert.

Applying a patch copies every file from a patch directory over the
installation. Replaced files are backed up as ``<file>.bak``; files that
did not exist before are recorded so that revert can delete them. The
``patched`` store marker is set while a patch is applied.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path

import structlog

from channel_launcher.core.errors import PatchRevertError
from channel_launcher.core.progress import FileProgress, PhaseChanged, ProgressStream
from channel_launcher.core.store import PATCHED, KeyValueStore

logger = structlog.get_logger()

BACKUP_SUFFIX = ".bak"
PATCH_MANIFEST = ".patch_manifest.json"


def apply_patch(install_dir: Path, patch_dir: Path, store: KeyValueStore) -> ProgressStream:
    """Copy patch files over the installation.

    Args:
        install_dir: Game installation directory
        patch_dir: Directory mirroring the install layout with replacement files
        store: Store receiving the ``patched`` marker

    Yields:
        PhaseChanged and FileProgress events
    """
    yield PhaseChanged("patch", "Applying client patch")

    files = sorted(p for p in patch_dir.rglob("*") if p.is_file())
    replaced: list[str] = []
    added: list[str] = []

    # Marker goes first so a crash mid-copy is reverted on next start
    store.set(PATCHED, True)

    for index, source in enumerate(files):
        rel = source.relative_to(patch_dir).as_posix()
        target = install_dir / rel
        if target.exists():
            backup = target.with_name(target.name + BACKUP_SUFFIX)
            if not backup.exists():
                shutil.copy2(target, backup)
            replaced.append(rel)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            added.append(rel)
        shutil.copy2(source, target)
        _write_manifest(install_dir, replaced, added)
        yield FileProgress(rel, index + 1, len(files))

    logger.info("patch_applied", replaced=len(replaced), added=len(added))


def _write_manifest(install_dir: Path, replaced: list[str], added: list[str]) -> None:
    path = install_dir / PATCH_MANIFEST
    tmp_path = path.with_suffix(".json.tmp")
    tmp_path.write_text(json.dumps({"replaced": replaced, "added": added}))
    os.replace(tmp_path, path)


def revert_patch(install_dir: Path, store: KeyValueStore) -> ProgressStream:
    """Restore the files replaced by apply_patch.

    Args:
        install_dir: Game installation directory
        store: Store holding the ``patched`` marker

    Yields:
        PhaseChanged and FileProgress events

    Raises:
        PatchRevertError: If the patch record or a backup is missing or
            a file cannot be restored
    """
    yield PhaseChanged("revert", "Reverting client patch")

    manifest_path = install_dir / PATCH_MANIFEST
    try:
        record = json.loads(manifest_path.read_text())
        replaced: list[str] = record["replaced"]
        added: list[str] = record["added"]
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise PatchRevertError(f"Patch record unreadable: {e}") from e

    total = len(replaced) + len(added)
    try:
        for index, rel in enumerate(replaced):
            target = install_dir / rel
            backup = target.with_name(target.name + BACKUP_SUFFIX)
            if not backup.is_file():
                raise PatchRevertError(f"Backup missing for {rel}")
            os.replace(backup, target)
            yield FileProgress(rel, index + 1, total)

        for index, rel in enumerate(added, start=len(replaced)):
            (install_dir / rel).unlink(missing_ok=True)
            yield FileProgress(rel, index + 1, total)
    except OSError as e:
        raise PatchRevertError(f"Failed to restore files: {e}") from e

    manifest_path.unlink()
    store.delete(PATCHED)
    logger.info("patch_reverted", restored=len(replaced), removed=len(added))
