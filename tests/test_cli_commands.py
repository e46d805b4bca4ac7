"""Tests for CLI command output and exit codes."""

import io
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

import typer
import yaml

from bsm.cli import (
    backup_create,
    backup_list,
    config_cmd,
    server_status,
    server_stop,
    world_switch,
)


class CliCommandTests(unittest.TestCase):
    """Validate operator-facing messages against a temporary installation."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name)
        self.server = self.root / "server"
        (self.server / "worlds" / "survival").mkdir(parents=True)
        (self.server / "worlds" / "survival" / "level.dat").write_bytes(b"level")
        self.config_path = self.root / "config.yaml"
        self.config_path.write_text(
            yaml.safe_dump(
                {
                    "server_directory": str(self.server),
                    "backup_directory": str(self.root / "backups"),
                    "profiles_directory": str(self.root / "profiles"),
                    "backups_to_keep": 2,
                }
            ),
            encoding="utf-8",
        )

    def _run(self, func, *args) -> str:
        out = io.StringIO()
        with redirect_stdout(out):
            func(*args)
        return out.getvalue()

    def _run_failing(self, func, *args) -> str:
        out = io.StringIO()
        with self.assertRaises(typer.Exit) as cm:
            with redirect_stdout(out):
                func(*args)
        self.assertEqual(cm.exception.exit_code, 1)
        return out.getvalue()

    def test_backup_list_without_backups(self) -> None:
        output = self._run(backup_list, False, self.config_path)
        self.assertIn("No backups found", output)

    def test_backup_create_then_list(self) -> None:
        output = self._run(backup_create, "survival", self.config_path)
        self.assertIn("Created backup of 'survival'", output)

        listing = self._run(backup_list, False, self.config_path)
        self.assertIn("World: survival", listing)
        self.assertIn("Total backups: 1", listing)
        self.assertIn("Recent backups:", listing)

    def test_backup_create_missing_world_exits_nonzero(self) -> None:
        output = self._run_failing(backup_create, "creative", self.config_path)
        self.assertIn("Error creating backup", output)
        self.assertIn("creative", output)

    def test_server_status_reports_stopped(self) -> None:
        output = self._run(server_status, self.config_path)
        self.assertIn("Server status: stopped", output)

    def test_server_stop_when_never_started_exits_nonzero(self) -> None:
        output = self._run_failing(server_stop, self.config_path)
        self.assertIn("Error stopping server", output)

    def test_world_switch_unknown_profile_exits_nonzero(self) -> None:
        output = self._run_failing(world_switch, "nowhere", self.config_path)
        self.assertIn("Error switching world", output)

    def test_invalid_config_exits_nonzero(self) -> None:
        self.config_path.write_text("backups_to_keep: -3\n", encoding="utf-8")
        output = self._run_failing(server_status, self.config_path)
        self.assertIn("Error loading config", output)

    def test_config_command_creates_once(self) -> None:
        path = self.root / "fresh" / "config.yaml"
        self.assertIn("Config file created at", self._run(config_cmd, path))
        self.assertTrue(path.is_file())
        self.assertIn("Config file already exists at", self._run(config_cmd, path))


if __name__ == "__main__":
    unittest.main()
