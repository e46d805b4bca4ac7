"""Interactive restore of a world from one of its backups.

The live world is never deleted before its replacement is complete: the
chosen archive is extracted into a hidden staging directory next to the
world, the current world is moved aside, the staging directory is renamed
into place, and only then is the old copy deleted.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable
from uuid import uuid4

import typer

from bsm.archive import extract_world
from bsm.backup.engine import BackupEngine, validate_world_name
from bsm.backup.retention import BackupRecord
from bsm.errors import (
    BsmError,
    CancelledError,
    InvalidSelectionError,
    NoBackupsError,
    PermissionDeniedError,
)
from bsm.prompts import OperatorInput
from bsm.server.supervisor import ProcessSupervisor

logger = logging.getLogger("bsm.backup.restore")

WRITE_PROBE_NAME = ".bsm_write_test"
DISPLAY_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_size_mb(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.2f} MB"


class RestoreCoordinator:
    """Select a backup with the operator and swap it in for the live world."""

    def __init__(
        self,
        engine: BackupEngine,
        operator: OperatorInput,
        *,
        supervisor: ProcessSupervisor | None = None,
        echo: Callable[[str], None] = typer.echo,
    ) -> None:
        self.engine = engine
        self.operator = operator
        self.supervisor = supervisor
        self._echo = echo

    @property
    def worlds_root(self) -> Path:
        return self.engine.worlds_root

    def restore_backup(self, world_name: str) -> BackupRecord:
        world_name = validate_world_name(world_name)
        backups = self.engine.world_backups(world_name)
        if not backups:
            raise NoBackupsError(
                f"no backups found for world '{world_name}' in {self.engine.world_backup_dir(world_name)}"
            )

        self._probe_writable()
        selected = self._select(world_name, backups)

        warning = (
            f"WARNING: This will replace the current world '{world_name}' with the backup from "
            f"{selected.created_at.strftime(DISPLAY_TIME_FORMAT)}"
        )
        if self.supervisor is not None and self.supervisor.is_running():
            logger.warning("Restoring world '%s' while the server is running", world_name)
            warning += " while the server is RUNNING"
        self._echo("")
        self._echo(warning)
        if not self.operator.ask_confirm("Are you sure you want to continue?"):
            raise CancelledError(f"restore of world '{world_name}' cancelled")

        self._replace_world(world_name, selected)
        logger.info("Restored world '%s' from %s", world_name, selected.path)
        return selected

    def _select(self, world_name: str, backups: list[BackupRecord]) -> BackupRecord:
        self._echo(f"Available backups for '{world_name}':")
        for index, record in enumerate(backups, start=1):
            self._echo(
                f"[{index}] {record.created_at.strftime(DISPLAY_TIME_FORMAT)} "
                f"({format_size_mb(record.size_bytes)})"
            )
        raw = self.operator.ask_line("Enter backup number to restore (0 to cancel)", "0")
        try:
            selection = int(str(raw).strip())
        except ValueError:
            raise InvalidSelectionError(
                f"invalid backup selection {raw!r} for world '{world_name}'"
            ) from None
        if selection == 0:
            raise CancelledError(f"restore of world '{world_name}' cancelled")
        if selection < 1 or selection > len(backups):
            raise InvalidSelectionError(
                f"invalid backup selection {selection} for world '{world_name}' "
                f"(choose 1-{len(backups)})"
            )
        return backups[selection - 1]

    def _probe_writable(self) -> None:
        probe = self.worlds_root / WRITE_PROBE_NAME
        try:
            self.worlds_root.mkdir(parents=True, exist_ok=True)
            probe.write_text("test", encoding="utf-8")
            probe.unlink()
        except OSError as exc:
            raise PermissionDeniedError(
                f"insufficient permissions to modify worlds directory {self.worlds_root}: {exc}"
            ) from exc

    def _replace_world(self, world_name: str, record: BackupRecord) -> None:
        target = self.worlds_root / world_name
        staging = Path(tempfile.mkdtemp(prefix=f".{world_name}.restore-", dir=self.worlds_root))
        try:
            extract_world(record.path, staging, world_name)
            os.chmod(staging, 0o755)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        previous: Path | None = None
        if target.exists():
            previous = self.worlds_root / f".{world_name}.previous-{uuid4().hex[:8]}"
            try:
                os.rename(target, previous)
            except OSError as exc:
                shutil.rmtree(staging, ignore_errors=True)
                raise BsmError(f"error moving existing world {target} aside: {exc}") from exc

        try:
            os.rename(staging, target)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            if previous is not None:
                try:
                    os.rename(previous, target)
                except OSError as rollback_exc:
                    raise BsmError(
                        f"error moving restored world into {target}: {exc}; "
                        f"the previous world could not be put back and remains at {previous}: {rollback_exc}"
                    ) from exc
            raise BsmError(f"error moving restored world into {target}: {exc}") from exc

        if previous is not None:
            try:
                shutil.rmtree(previous)
            except OSError as exc:
                logger.warning("Restored '%s' but could not remove old copy %s: %s", world_name, previous, exc)
