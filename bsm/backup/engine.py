"""World backup creation, listing and retention enforcement."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from bsm.archive import ARCHIVE_EXTENSION, pack_directory
from bsm.backup.retention import BackupRecord, RetentionPolicy, newest_first
from bsm.errors import ArchiveError, BsmError, PermissionDeniedError, WorldNotFoundError

logger = logging.getLogger("bsm.backup.engine")

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
LIST_PREVIEW_LIMIT = 5
_WORLD_NAME_RE = re.compile(r"^[^/\\\x00]+$")


@dataclass(frozen=True)
class WorldBackups:
    world_name: str
    backups: list[BackupRecord] = field(default_factory=list)
    total_size: int = 0
    backup_count: int = 0


def validate_world_name(world_name: str) -> str:
    name = str(world_name or "").strip()
    if not name or name in (".", "..") or not _WORLD_NAME_RE.match(name):
        raise WorldNotFoundError(f"invalid world name {world_name!r}", world_name=str(world_name))
    return name


def scan_backup_dir(directory: Path) -> list[BackupRecord]:
    """Build records from the archives currently in ``directory`` (unordered)."""
    records: list[BackupRecord] = []
    try:
        entries = list(os.scandir(directory))
    except FileNotFoundError:
        return records
    for entry in entries:
        if not entry.name.endswith(ARCHIVE_EXTENSION):
            continue
        try:
            if not entry.is_file():
                continue
            info = entry.stat()
        except FileNotFoundError:
            continue
        records.append(
            BackupRecord(
                name=entry.name,
                path=Path(entry.path),
                size_bytes=info.st_size,
                created_at=datetime.fromtimestamp(info.st_mtime),
            )
        )
    return records


class BackupEngine:
    """Owns archive creation and deletion under ``backup_root/<world>/``."""

    def __init__(
        self,
        worlds_root: str | Path,
        backup_root: str | Path,
        backups_to_keep: int = 0,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.worlds_root = Path(worlds_root)
        self.backup_root = Path(backup_root)
        self.retention = RetentionPolicy(backups_to_keep)
        self._clock = clock

    @classmethod
    def from_config(cls, config) -> BackupEngine:
        return cls(config.live_worlds_path, config.backup_directory, config.backups_to_keep)

    def world_backup_dir(self, world_name: str) -> Path:
        return self.backup_root / validate_world_name(world_name)

    def create_backup(self, world_name: str) -> BackupRecord:
        """Archive one world and prune what the retention policy expires."""
        world_name = validate_world_name(world_name)
        world_path = self.worlds_root / world_name
        if not world_path.is_dir():
            raise WorldNotFoundError(
                f"world '{world_name}' not found in {self.worlds_root}. "
                "Run the server once to generate the world first",
                world_name=world_name,
            )

        backup_dir = self.backup_root / world_name
        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as exc:
            raise PermissionDeniedError(f"cannot create backup directory {backup_dir}: {exc}") from exc
        except OSError as exc:
            raise BsmError(f"error creating backup directory {backup_dir}: {exc}") from exc

        archive_path = self._reserve_archive_path(backup_dir, world_name)
        try:
            size = pack_directory(world_path, archive_path)
        except ArchiveError:
            try:
                archive_path.unlink()
            except FileNotFoundError:
                pass
            raise
        info = archive_path.stat()
        record = BackupRecord(
            name=archive_path.name,
            path=archive_path,
            size_bytes=size,
            created_at=datetime.fromtimestamp(info.st_mtime),
        )
        logger.info("Created backup of '%s' at %s (%d bytes)", world_name, archive_path, size)

        self._enforce_retention(world_name)
        return record

    def world_backups(self, world_name: str) -> list[BackupRecord]:
        """Every backup of a world, newest first."""
        return newest_first(scan_backup_dir(self.world_backup_dir(world_name)))

    def list_backups(self) -> list[WorldBackups]:
        """Summarise every world's backups with a short newest-first preview."""
        try:
            world_dirs = sorted(
                (entry for entry in os.scandir(self.backup_root) if entry.is_dir()),
                key=lambda entry: entry.name,
            )
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise BsmError(f"error reading backup directory {self.backup_root}: {exc}") from exc

        summaries: list[WorldBackups] = []
        for entry in world_dirs:
            backups = newest_first(scan_backup_dir(Path(entry.path)))
            summaries.append(
                WorldBackups(
                    world_name=entry.name,
                    backups=backups[:LIST_PREVIEW_LIMIT],
                    total_size=sum(b.size_bytes for b in backups),
                    backup_count=len(backups),
                )
            )
        return summaries

    def _reserve_archive_path(self, backup_dir: Path, world_name: str) -> Path:
        """Claim an unused timestamped archive name with an exclusive create."""
        base = f"{world_name}_{self._clock().strftime(TIMESTAMP_FORMAT)}"
        attempt = 1
        while True:
            suffix = "" if attempt == 1 else f"_{attempt}"
            path = backup_dir / f"{base}{suffix}{ARCHIVE_EXTENSION}"
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                attempt += 1
                continue
            except PermissionError as exc:
                raise PermissionDeniedError(f"cannot create backup file {path}: {exc}") from exc
            except OSError as exc:
                raise BsmError(f"error creating backup file {path}: {exc}") from exc
            os.close(fd)
            return path

    def _enforce_retention(self, world_name: str) -> list[BackupRecord]:
        try:
            expired = self.retention.select_expired(scan_backup_dir(self.backup_root / world_name))
        except OSError as exc:
            logger.warning("Error scanning backups of '%s' for retention: %s", world_name, exc)
            return []
        removed: list[BackupRecord] = []
        for record in expired:
            try:
                record.path.unlink()
            except OSError as exc:
                logger.warning("Error removing old backup %s: %s", record.path, exc)
                continue
            logger.info("Removed old backup %s", record.name)
            removed.append(record)
        return removed
