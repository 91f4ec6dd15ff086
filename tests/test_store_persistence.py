"""Tests for crash-safe collection writes."""

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from land_kpr.exceptions import (
    BackupFailedError,
    EncodeFailedError,
    RenameFailedError,
    WriteFailedError,
)
from land_kpr.store import RawCollection, load, write_collection
from land_kpr.store import persistence
from land_kpr.store.persistence import prune_backups


def sites(*names: str) -> RawCollection:
    coll = RawCollection()
    for index, name in enumerate(names, start=1):
        coll.put(f"S{index}", {"id": f"S{index}", "name": name})
    return coll


def backups(directory: Path, name: str = "sites") -> list[Path]:
    return sorted(directory.glob(f"{name}.json.bak.*"))


def temp_files(directory: Path) -> list[Path]:
    return list(directory.glob(".*.tmp"))


class TestWriteCollection:
    """Tests for write_collection."""

    def test_write_replaces_content(self, storage_dir: Path) -> None:
        write_collection(storage_dir, "sites", sites("Griya Asri"))

        document = json.loads((storage_dir / "sites.json").read_text(encoding="utf-8"))
        assert document["items"] == {"S1": {"id": "S1", "name": "Griya Asri"}}
        assert temp_files(storage_dir) == []

    def test_write_is_loadable(self, storage_dir: Path) -> None:
        write_collection(storage_dir, "sites", sites("Taman Indah", "Bukit Permai"))

        snapshot = load(storage_dir)

        assert set(snapshot.items("sites")) == {"S1", "S2"}

    def test_backup_holds_previous_content(self, storage_dir: Path) -> None:
        before = (storage_dir / "sites.json").read_bytes()
        now = datetime(2025, 1, 20, 8, 0, 0, 123456, tzinfo=timezone.utc)

        write_collection(storage_dir, "sites", sites("A"), now=now)

        created = backups(storage_dir)
        assert [p.name for p in created] == ["sites.json.bak.20250120_080000_123456"]
        assert created[0].read_bytes() == before

    def test_backup_names_never_collide(self, storage_dir: Path) -> None:
        now = datetime(2025, 1, 20, 8, 0, tzinfo=timezone.utc)

        write_collection(storage_dir, "sites", sites("A"), now=now)
        write_collection(storage_dir, "sites", sites("B"), now=now)

        assert len(backups(storage_dir)) == 2

    def test_no_backup_for_new_file(self, tmp_path: Path) -> None:
        write_collection(tmp_path, "sites", sites("A"))

        assert backups(tmp_path) == []

    def test_max_backups_prunes_oldest(self, storage_dir: Path) -> None:
        start = datetime(2025, 1, 20, 8, 0, tzinfo=timezone.utc)
        for minute in range(4):
            write_collection(
                storage_dir,
                "sites",
                sites(f"v{minute}"),
                max_backups=2,
                now=start + timedelta(minutes=minute),
            )

        names = [p.name for p in backups(storage_dir)]
        assert names == [
            "sites.json.bak.20250120_080200_000000",
            "sites.json.bak.20250120_080300_000000",
        ]

    def test_prune_backups_keep_zero(self, storage_dir: Path) -> None:
        write_collection(storage_dir, "sites", sites("A"))

        removed = prune_backups(storage_dir, "sites", 0)

        assert len(removed) == 1
        assert backups(storage_dir) == []


class TestWriteFailures:
    """A failed write never leaves a partial target or a temp file."""

    def test_rename_failure_keeps_old_content(
        self, storage_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        write_collection(storage_dir, "sites", sites("old"))
        before = (storage_dir / "sites.json").read_bytes()

        def crash(src, dst):
            raise OSError("disk unplugged")

        monkeypatch.setattr(persistence.os, "replace", crash)

        with pytest.raises(RenameFailedError):
            write_collection(storage_dir, "sites", sites("new"))

        assert (storage_dir / "sites.json").read_bytes() == before
        assert temp_files(storage_dir) == []

    def test_fsync_failure_is_write_failure(
        self, storage_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        before = (storage_dir / "sites.json").read_bytes()
        real_fsync = os.fsync
        calls = []

        def flaky_fsync(fd):
            calls.append(fd)
            # first call syncs the backup; the second is the temp file
            if len(calls) == 2:
                raise OSError("I/O error")
            return real_fsync(fd)

        monkeypatch.setattr(persistence.os, "fsync", flaky_fsync)

        with pytest.raises(WriteFailedError):
            write_collection(storage_dir, "sites", sites("new"))

        assert (storage_dir / "sites.json").read_bytes() == before
        assert temp_files(storage_dir) == []

    def test_backup_failure(self, storage_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def refuse(src, dst):
            raise PermissionError("read-only")

        monkeypatch.setattr(persistence.shutil, "copy2", refuse)

        with pytest.raises(BackupFailedError):
            write_collection(storage_dir, "sites", sites("new"))

        assert temp_files(storage_dir) == []

    def test_encode_failure(self, storage_dir: Path) -> None:
        coll = RawCollection()
        coll.meta["updated_at"] = object()

        with pytest.raises(EncodeFailedError):
            write_collection(storage_dir, "sites", coll)

        assert temp_files(storage_dir) == []
        assert json.loads((storage_dir / "sites.json").read_text())["items"] == {}
