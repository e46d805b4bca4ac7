"""Keep-count retention over one world's backup set."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable

# Same-second archives carry a counter suffix: <world>_<stamp>_2.zip
_SEQUENCE_RE = re.compile(r"_(\d+)\.zip$")


@dataclass(frozen=True)
class BackupRecord:
    name: str
    path: Path
    size_bytes: int
    created_at: datetime


def _sequence(name: str) -> int:
    match = _SEQUENCE_RE.search(name)
    return int(match.group(1)) if match else 1


def _order_key(record: BackupRecord) -> tuple[datetime, int, str]:
    return (record.created_at, _sequence(record.name), record.name)


def oldest_first(records: Iterable[BackupRecord]) -> list[BackupRecord]:
    return sorted(records, key=_order_key)


def newest_first(records: Iterable[BackupRecord]) -> list[BackupRecord]:
    return sorted(records, key=_order_key, reverse=True)


@dataclass(frozen=True)
class RetentionPolicy:
    """Keep the ``max_kept`` most recent backups; 0 keeps everything."""

    max_kept: int = 0

    def __post_init__(self) -> None:
        if self.max_kept < 0:
            raise ValueError("max_kept must be non-negative")

    def select_expired(self, records: Iterable[BackupRecord]) -> list[BackupRecord]:
        """Return the records to delete, oldest first."""
        ordered = oldest_first(records)
        if self.max_kept == 0 or len(ordered) <= self.max_kept:
            return []
        return ordered[: len(ordered) - self.max_kept]
