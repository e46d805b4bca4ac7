"""Tests for backup creation, naming, retention enforcement and listing."""

from __future__ import annotations

import os
import tempfile
import time
import unittest
import zipfile
from datetime import datetime
from pathlib import Path
from unittest import mock

from bsm.backup.engine import BackupEngine
from bsm.errors import WorldNotFoundError

FIXED_NOW = datetime(2026, 10, 19, 12, 30, 45)


class BackupEngineTests(unittest.TestCase):
    """Validate archive naming, pruning and live re-scan listing."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name)
        self.worlds = self.root / "server" / "worlds"
        self.backups = self.root / "backups"
        world = self.worlds / "survival"
        (world / "db").mkdir(parents=True)
        (world / "level.dat").write_bytes(b"level-data")
        (world / "db" / "CURRENT").write_text("MANIFEST-000001\n", encoding="utf-8")

    def _engine(self, keep: int = 0) -> BackupEngine:
        return BackupEngine(self.worlds, self.backups, keep, clock=lambda: FIXED_NOW)

    def _fake_archive(self, name: str, size: int, age_seconds: int) -> Path:
        path = self.backups / "survival" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)
        stamp = time.time() - age_seconds
        os.utime(path, (stamp, stamp))
        return path

    def test_create_backup_writes_timestamped_archive(self) -> None:
        record = self._engine().create_backup("survival")
        expected = self.backups / "survival" / "survival_2026-10-19_12-30-45.zip"
        self.assertEqual(record.path, expected)
        self.assertEqual(record.name, expected.name)
        self.assertEqual(record.size_bytes, expected.stat().st_size)
        with zipfile.ZipFile(expected) as zf:
            self.assertIn("level.dat", zf.namelist())
            self.assertIn("db/CURRENT", zf.namelist())

    def test_missing_world_guides_operator(self) -> None:
        with self.assertRaises(WorldNotFoundError) as cm:
            self._engine().create_backup("creative")
        self.assertIn("creative", str(cm.exception))
        self.assertIn("Run the server", str(cm.exception))
        self.assertFalse((self.backups / "creative").exists())

    def test_path_like_world_name_rejected(self) -> None:
        with self.assertRaises(WorldNotFoundError):
            self._engine().create_backup("../server")

    def test_same_second_backups_do_not_overwrite(self) -> None:
        engine = self._engine()
        first = engine.create_backup("survival")
        first_bytes = first.path.read_bytes()
        (self.worlds / "survival" / "level.dat").write_bytes(b"changed")
        second = engine.create_backup("survival")

        self.assertNotEqual(first.path, second.path)
        self.assertEqual(second.name, "survival_2026-10-19_12-30-45_2.zip")
        self.assertEqual(first.path.read_bytes(), first_bytes)
        self.assertEqual(len(engine.world_backups("survival")), 2)

    def test_keep_one_leaves_only_newest(self) -> None:
        self._fake_archive("survival_2026-10-17_12-00-00.zip", 10 * 1024, age_seconds=200)
        self._fake_archive("survival_2026-10-18_12-00-00.zip", 12 * 1024, age_seconds=100)

        record = self._engine(keep=1).create_backup("survival")
        remaining = sorted(p.name for p in (self.backups / "survival").iterdir())
        self.assertEqual(remaining, [record.name])

    def test_pruning_failure_does_not_fail_backup(self) -> None:
        old = self._fake_archive("survival_2026-10-17_12-00-00.zip", 64, age_seconds=200)
        with mock.patch.object(Path, "unlink", side_effect=PermissionError("read-only")):
            with self.assertLogs("bsm.backup.engine", level="WARNING") as logs:
                record = self._engine(keep=1).create_backup("survival")
        self.assertTrue(record.path.exists())
        self.assertTrue(old.exists())
        self.assertIn("Error removing old backup", "\n".join(logs.output))

    def test_list_backups_without_root_is_empty(self) -> None:
        self.assertEqual(self._engine().list_backups(), [])

    def test_list_backups_caps_preview_but_reports_totals(self) -> None:
        sizes = [100, 200, 300, 400, 500, 600, 700]
        for index, size in enumerate(sizes):
            self._fake_archive(f"survival_2026-10-1{index}_00-00-00.zip", size, age_seconds=1000 - index * 10)
        (self.backups / "survival" / "notes.txt").write_text("ignored", encoding="utf-8")
        (self.backups / "survival" / "survival_x.zip.partial").write_bytes(b"partial")

        summaries = self._engine().list_backups()
        self.assertEqual(len(summaries), 1)
        summary = summaries[0]
        self.assertEqual(summary.world_name, "survival")
        self.assertEqual(summary.backup_count, 7)
        self.assertEqual(summary.total_size, sum(sizes))
        self.assertEqual(len(summary.backups), 5)
        self.assertEqual(summary.backups[0].size_bytes, 700)
        self.assertEqual(summary.backups[-1].size_bytes, 300)

    def test_world_backups_returns_full_set_newest_first(self) -> None:
        for index in range(7):
            self._fake_archive(f"survival_2026-10-1{index}_00-00-00.zip", index + 1, age_seconds=1000 - index * 10)
        records = self._engine().world_backups("survival")
        self.assertEqual(len(records), 7)
        self.assertEqual([r.size_bytes for r in records], [7, 6, 5, 4, 3, 2, 1])


if __name__ == "__main__":
    unittest.main()
