"""World profiles: per-world server.properties and allowlist templates."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from bsm.backup.engine import validate_world_name
from bsm.config import Config, WorldDefaults
from bsm.errors import BsmError, NotFoundError, WorldNotFoundError
from bsm.prompts import OperatorInput, ask_bool, ask_int

logger = logging.getLogger("bsm.worlds.manager")

PROPERTIES_FILE = "server.properties"
ALLOWLIST_FILE = "allowlist.json"


@dataclass(frozen=True)
class WorldProfile:
    name: str
    properties_path: Path


def render_properties(template: str, overrides: dict[str, str]) -> str:
    """Replace values of known keys in a properties template, keeping everything else."""
    lines: list[str] = []
    for line in template.split("\n"):
        if not line or line.startswith("#") or "=" not in line:
            lines.append(line)
            continue
        key = line.split("=", 1)[0].strip()
        if key in overrides:
            lines.append(f"{key}={overrides[key]}")
        else:
            lines.append(line)
    return "\n".join(lines)


def read_property(text: str, key: str) -> str | None:
    prefix = f"{key}="
    for line in text.splitlines():
        if line.startswith(prefix):
            return line[len(prefix):].strip()
    return None


class WorldManager:
    def __init__(
        self,
        server_dir: str | Path,
        profiles_dir: str | Path,
        defaults: WorldDefaults | None = None,
        server_name: str = "Bedrock Server",
    ) -> None:
        self.server_dir = Path(server_dir)
        self.profiles_dir = Path(profiles_dir)
        self.defaults = defaults or WorldDefaults()
        self.server_name = server_name

    @classmethod
    def from_config(cls, config: Config) -> WorldManager:
        return cls(
            config.server_directory,
            config.profiles_directory,
            config.world_defaults,
            config.server_name,
        )

    @property
    def server_properties(self) -> Path:
        return self.server_dir / PROPERTIES_FILE

    def list_worlds(self) -> list[WorldProfile]:
        """Profiles that carry a server.properties, sorted by name."""
        self.profiles_dir.mkdir(parents=True, exist_ok=True)
        worlds: list[WorldProfile] = []
        for entry in sorted(self.profiles_dir.iterdir()):
            props = entry / PROPERTIES_FILE
            if entry.is_dir() and props.is_file():
                worlds.append(WorldProfile(name=entry.name, properties_path=props))
        return worlds

    def get_active_world(self) -> str:
        try:
            text = self.server_properties.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(f"{self.server_properties} not found; run `bsm server setup` first") from None
        level_name = read_property(text, "level-name")
        if level_name is None:
            raise BsmError(f"level-name not found in {self.server_properties}")
        return level_name

    def switch_world(self, world_name: str) -> WorldProfile:
        """Copy a profile's server.properties and allowlist.json into the server."""
        world_name = validate_world_name(world_name)
        world_dir = self.profiles_dir / world_name
        if not world_dir.is_dir():
            raise WorldNotFoundError(f"world profile '{world_name}' not found in {self.profiles_dir}", world_name=world_name)
        for filename in (PROPERTIES_FILE, ALLOWLIST_FILE):
            try:
                shutil.copyfile(world_dir / filename, self.server_dir / filename)
            except OSError as exc:
                raise BsmError(f"error copying {filename} for world '{world_name}': {exc}") from exc
        logger.info("Switched active world to '%s'", world_name)
        return WorldProfile(name=world_name, properties_path=world_dir / PROPERTIES_FILE)

    def create_world(self, operator: OperatorInput) -> WorldProfile:
        """Prompt for world settings and write a new profile from the server template."""
        d = self.defaults
        level_name = validate_world_name(operator.ask_line("Enter world name", d.level_name))
        seed = operator.ask_line("Enter seed (leave empty for random)", d.seed)
        gamemode = operator.ask_line("Enter gamemode (survival/creative/adventure)", d.gamemode)
        difficulty = operator.ask_line("Enter difficulty (peaceful/easy/normal/hard)", d.difficulty)
        allow_list = ask_bool(operator, "Enable allow list? (yes/no)", d.allow_list)
        server_port = ask_int(operator, "Enter server port", d.server_port)
        view_distance = ask_int(operator, "Enter view distance", d.view_distance)
        tick_distance = ask_int(operator, "Enter tick distance", d.tick_distance)
        max_players = ask_int(operator, "Enter max players", d.max_players)

        try:
            template = self.server_properties.read_text(encoding="utf-8")
        except OSError as exc:
            raise NotFoundError(f"error reading template properties {self.server_properties}: {exc}") from exc

        overrides = {
            "server-name": f"{self.server_name} - {level_name}",
            "level-name": level_name,
            "server-port": str(server_port),
            "gamemode": gamemode,
            "difficulty": difficulty,
            "allow-cheats": "false",
            "view-distance": str(view_distance),
            "tick-distance": str(tick_distance),
            "max-players": str(max_players),
            "allow-list": "true" if allow_list else "false",
        }
        if seed:
            overrides["level-seed"] = seed

        world_dir = self.profiles_dir / level_name
        props_path = world_dir / PROPERTIES_FILE
        try:
            world_dir.mkdir(parents=True, exist_ok=True)
            props_path.write_text(render_properties(template, overrides), encoding="utf-8")
            (world_dir / ALLOWLIST_FILE).write_text("[]", encoding="utf-8")
        except OSError as exc:
            raise BsmError(f"error creating world profile '{level_name}' in {world_dir}: {exc}") from exc
        logger.info("Created world profile '%s' in %s", level_name, world_dir)
        return WorldProfile(name=level_name, properties_path=props_path)
