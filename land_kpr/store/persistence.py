"""Crash-safe collection writes: backup, temp file, fsync, rename, dir fsync."""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from land_kpr.exceptions import (
    BackupFailedError,
    DirSyncFailedError,
    EncodeFailedError,
    RenameFailedError,
    WriteFailedError,
)
from land_kpr.store.collections import RawCollection, file_name

logger = logging.getLogger(__name__)

BACKUP_STAMP = "%Y%m%d_%H%M%S_%f"


def backup_pattern(name: str) -> str:
    """Glob pattern matching every backup of collection ``name``."""
    return f"{file_name(name)}.bak.*"


def _fsync_file(path: Path) -> None:
    with open(path, "rb+") as f:
        os.fsync(f.fileno())


def _fsync_dir(directory: Path) -> None:
    # Directories cannot be opened for fsync on Windows
    if os.name == "nt":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _backup(target: Path, now: datetime) -> Path:
    backup = target.with_name(f"{target.name}.bak.{now.strftime(BACKUP_STAMP)}")
    counter = 1
    while backup.exists():
        backup = target.with_name(f"{target.name}.bak.{now.strftime(BACKUP_STAMP)}_{counter}")
        counter += 1
    shutil.copy2(target, backup)
    _fsync_file(backup)
    return backup


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def prune_backups(directory: Path, name: str, keep: int) -> list[Path]:
    """Delete all but the ``keep`` newest backups of collection ``name``."""
    backups = sorted(directory.glob(backup_pattern(name)))
    stale = backups[: max(len(backups) - keep, 0)]
    for path in stale:
        path.unlink()
    if stale:
        logger.debug("Pruned %d backups of %s", len(stale), name)
    return stale


def write_collection(
    directory: str | Path,
    name: str,
    collection: RawCollection,
    max_backups: int | None = None,
    now: datetime | None = None,
) -> Path:
    """Atomically replace the file backing collection ``name``.

    Parameters
    ----------
    directory : str | Path
        Storage directory.
    name : str
        Collection name.
    collection : RawCollection
        Full collection content to write.
    max_backups : int | None
        Backups of this collection to retain; None keeps all.
    now : datetime | None
        Timestamp for the backup name (defaults to current UTC time).

    Returns
    -------
    Path
        The written collection file.

    Raises
    ------
    BackupFailedError, EncodeFailedError, WriteFailedError,
    RenameFailedError, DirSyncFailedError
        On the corresponding step. Before the rename the previous file is
        untouched; the temp file never survives a failure.
    """
    directory = Path(directory)
    target = directory / file_name(name)
    now = now or datetime.now(timezone.utc)

    if target.exists():
        try:
            _backup(target, now)
        except OSError as exc:
            logger.error("Backup of %s failed: %s", target, exc)
            raise BackupFailedError(f"backup {target}: {exc}") from exc

    try:
        payload = json.dumps(collection.to_document(), indent=2, ensure_ascii=False) + "\n"
    except (TypeError, ValueError) as exc:
        logger.error("Encoding %s failed: %s", name, exc)
        raise EncodeFailedError(f"encode {name}: {exc}") from exc

    try:
        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{target.name}.", suffix=".tmp")
    except OSError as exc:
        logger.error("Creating temp file for %s failed: %s", target, exc)
        raise WriteFailedError(f"write {target}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
    except OSError as exc:
        _remove_quietly(tmp_name)
        logger.error("Writing %s failed: %s", tmp_name, exc)
        raise WriteFailedError(f"write {target}: {exc}") from exc

    try:
        os.replace(tmp_name, target)
    except OSError as exc:
        _remove_quietly(tmp_name)
        logger.error("Renaming %s over %s failed: %s", tmp_name, target, exc)
        raise RenameFailedError(f"rename {target}: {exc}") from exc

    try:
        _fsync_dir(directory)
    except OSError as exc:
        logger.error("Syncing directory %s failed: %s", directory, exc)
        raise DirSyncFailedError(f"sync {directory}: {exc}") from exc

    if max_backups is not None:
        prune_backups(directory, name, max_backups)

    logger.info("Wrote %s (%d items)", target.name, len(collection))
    return target
