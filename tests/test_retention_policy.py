"""Tests for keep-count backup retention."""

import unittest
from datetime import datetime, timedelta
from pathlib import Path

from bsm.backup.retention import BackupRecord, RetentionPolicy, newest_first


def _records(count: int) -> list[BackupRecord]:
    base = datetime(2026, 10, 19, 12, 0, 0)
    return [
        BackupRecord(
            name=f"survival_T{i}.zip",
            path=Path(f"/backups/survival/survival_T{i}.zip"),
            size_bytes=1024 * i,
            created_at=base + timedelta(minutes=i),
        )
        for i in range(1, count + 1)
    ]


class RetentionPolicyTests(unittest.TestCase):
    """Validate which backups a keep-count policy expires."""

    def test_keep_three_of_five_expires_two_oldest(self) -> None:
        records = _records(5)
        shuffled = [records[3], records[0], records[4], records[2], records[1]]
        expired = RetentionPolicy(3).select_expired(shuffled)
        self.assertEqual([r.name for r in expired], ["survival_T1.zip", "survival_T2.zip"])

    def test_keep_zero_means_unlimited(self) -> None:
        self.assertEqual(RetentionPolicy(0).select_expired(_records(5)), [])

    def test_under_limit_expires_nothing(self) -> None:
        self.assertEqual(RetentionPolicy(7).select_expired(_records(3)), [])

    def test_keep_one_leaves_only_newest(self) -> None:
        records = _records(3)
        expired = RetentionPolicy(1).select_expired(records)
        kept = [r for r in records if r not in expired]
        self.assertEqual([r.name for r in kept], ["survival_T3.zip"])

    def test_negative_keep_count_rejected(self) -> None:
        with self.assertRaises(ValueError):
            RetentionPolicy(-1)

    def test_same_timestamp_ordered_by_name(self) -> None:
        stamp = datetime(2026, 10, 19, 12, 0, 0)
        first = BackupRecord("w_2026-10-19_12-00-00.zip", Path("a"), 1, stamp)
        second = BackupRecord("w_2026-10-19_12-00-00_2.zip", Path("b"), 1, stamp)
        self.assertEqual(newest_first([first, second]), [second, first])
        self.assertEqual(RetentionPolicy(1).select_expired([second, first]), [first])

    def test_same_timestamp_orders_counter_numerically(self) -> None:
        stamp = datetime(2026, 10, 19, 12, 0, 0)
        base = BackupRecord("w_2026-10-19_12-00-00.zip", Path("a"), 1, stamp)
        second = BackupRecord("w_2026-10-19_12-00-00_2.zip", Path("b"), 1, stamp)
        tenth = BackupRecord("w_2026-10-19_12-00-00_10.zip", Path("c"), 1, stamp)
        self.assertEqual(newest_first([second, base, tenth]), [tenth, second, base])
        self.assertEqual(RetentionPolicy(1).select_expired([tenth, base, second]), [base, second])


if __name__ == "__main__":
    unittest.main()
