"""YAML configuration loading, validation and the default template."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from bsm.errors import ConfigError

CONFIG_PATH = Path("config.yaml")

DEFAULT_CONFIG_YAML = """# Bedrock Server Manager
# Configuration file

# Server directory. This is the directory where the server will be installed.
server_directory: ./bedrock_server

# Live world data. Leave empty to use <server_directory>/worlds.
worlds_directory: ""

# World profiles (server.properties + allowlist.json per world).
profiles_directory: ./bedrock_world_profiles

# Name shown in the server list, combined with the world name.
server_name: Bedrock Server

# BACKUP SETTINGS
# Directory where backups will be stored
backup_directory: ./bedrock_server_backups

# Number of backups to keep per world (set to 0 to keep all backups)
backups_to_keep: 7

# Defaults offered by `bsm world create`
world_defaults:
  level_name: Bedrock level
  seed: ""
  gamemode: survival
  difficulty: easy
  allow_list: false
  server_port: 19132
  view_distance: 32
  tick_distance: 4
  max_players: 10
"""

_INT_DEFAULTS = ("server_port", "view_distance", "tick_distance", "max_players")


@dataclass(frozen=True)
class WorldDefaults:
    level_name: str = "Bedrock level"
    seed: str = ""
    gamemode: str = "survival"
    difficulty: str = "easy"
    allow_list: bool = False
    server_port: int = 19132
    view_distance: int = 32
    tick_distance: int = 4
    max_players: int = 10


@dataclass(frozen=True)
class Config:
    server_directory: str = "./bedrock_server"
    backup_directory: str = "./bedrock_server_backups"
    worlds_directory: str = ""
    profiles_directory: str = "./bedrock_world_profiles"
    backups_to_keep: int = 7
    server_name: str = "Bedrock Server"
    world_defaults: WorldDefaults = field(default_factory=WorldDefaults)

    @property
    def live_worlds_path(self) -> Path:
        if self.worlds_directory:
            return Path(self.worlds_directory)
        return Path(self.server_directory) / "worlds"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_config() -> Config:
    return Config()


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer") from None


def _validate_world_defaults(raw: Any) -> WorldDefaults:
    if raw is None:
        return WorldDefaults()
    if not isinstance(raw, dict):
        raise ConfigError("world_defaults must be a mapping")
    base = asdict(WorldDefaults())
    for key, value in raw.items():
        if key not in base or value is None:
            continue
        if key in _INT_DEFAULTS:
            base[key] = _as_int(value, f"world_defaults.{key}")
        elif key == "allow_list":
            base[key] = bool(value)
        else:
            base[key] = str(value)
    return WorldDefaults(**base)


def validate_config(raw: dict[str, Any]) -> Config:
    """Validate a parsed config mapping; unknown keys are ignored."""
    if not isinstance(raw, dict):
        raise ConfigError("config must be a mapping")
    defaults = default_config()
    values: dict[str, Any] = {}
    for key in ("server_directory", "backup_directory", "profiles_directory", "server_name"):
        value = raw.get(key, getattr(defaults, key))
        text = "" if value is None else str(value).strip()
        if not text:
            raise ConfigError(f"{key} cannot be empty")
        values[key] = text
    worlds_directory = raw.get("worlds_directory")
    values["worlds_directory"] = "" if worlds_directory is None else str(worlds_directory).strip()
    backups_to_keep = _as_int(raw.get("backups_to_keep", defaults.backups_to_keep), "backups_to_keep")
    if backups_to_keep < 0:
        raise ConfigError("backups_to_keep must be non-negative")
    values["backups_to_keep"] = backups_to_keep
    values["world_defaults"] = _validate_world_defaults(raw.get("world_defaults"))
    return Config(**values)


def load_config(path: Path = CONFIG_PATH) -> Config:
    """Load config from disk, or return defaults when the file is absent."""
    path = Path(path)
    if not path.exists():
        return default_config()
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"error reading config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"error parsing config file {path}: {exc}") from exc
    if raw is None:
        return default_config()
    try:
        return validate_config(raw)
    except ConfigError as exc:
        raise ConfigError(f"invalid config file {path}: {exc}") from exc


def save_config(config: Config, path: Path = CONFIG_PATH) -> Config:
    """Validate and persist config to disk."""
    path = Path(path)
    validated = validate_config(config.to_dict())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(validated.to_dict(), sort_keys=False), encoding="utf-8")
    return validated


def write_default_config(path: Path = CONFIG_PATH) -> bool:
    """Write the commented template; False when a config already exists."""
    path = Path(path)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    return True
