import logging
from pathlib import Path

import typer

from bsm.backup.engine import BackupEngine
from bsm.backup.restore import DISPLAY_TIME_FORMAT, RestoreCoordinator, format_size_mb
from bsm.config import CONFIG_PATH, Config, load_config, write_default_config
from bsm.errors import BsmError, ConfigError
from bsm.prompts import TerminalInput
from bsm.server.setup import build_download_url, setup_server, update_server
from bsm.server.supervisor import ProcessSupervisor, StopOutcome
from bsm.worlds.manager import WorldManager

app = typer.Typer(help="Bedrock dedicated server manager.")
server_app = typer.Typer(help="Install, start, stop and inspect the server.")
world_app = typer.Typer(help="Manage world profiles.")
backup_app = typer.Typer(help="Create, list and restore world backups.")
app.add_typer(server_app, name="server")
app.add_typer(world_app, name="world")
app.add_typer(backup_app, name="backup")

logger = logging.getLogger("bsm.cli")

CONFIG_OPTION_HELP = "Path to config.yaml"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Bedrock dedicated server manager."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _fail(action: str, exc: Exception) -> None:
    typer.echo(f"Error {action}: {exc}")
    raise typer.Exit(code=1)


def _load(config_path: Path) -> Config:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        _fail("loading config", exc)


def _supervisor(config: Config) -> ProcessSupervisor:
    return ProcessSupervisor(config.server_directory)


@app.command("config")
def config_cmd(
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Generate a default config file."""
    try:
        created = write_default_config(config_path)
    except OSError as exc:
        _fail("creating config file", exc)
    if not created:
        typer.echo(f"Config file already exists at {config_path}")
        return
    typer.echo(f"Config file created at {config_path}")


# ----------------------------------------------------------------------
# server
# ----------------------------------------------------------------------


@server_app.command("setup")
def server_setup(
    version: str = typer.Argument(..., help="Server version, e.g. 1.21.51.02"),
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Download and install a server version."""
    config = _load(config_path)
    typer.echo(f"Setting up server version {version}...")
    try:
        server_dir = setup_server(build_download_url(version), config.server_directory)
    except BsmError as exc:
        _fail("setting up server", exc)
    typer.echo(f"Server setup complete! Server installed in: {server_dir}")


@server_app.command("update")
def server_update(
    version: str = typer.Argument(..., help="Server version to install"),
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Install a new server version, keeping worlds and settings."""
    config = _load(config_path)
    typer.echo(f"Updating server to version {version}...")
    try:
        update_server(version, _supervisor(config))
    except BsmError as exc:
        _fail("updating server", exc)
    typer.echo("Server updated successfully")


@server_app.command("start")
def server_start(
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Start the Bedrock server."""
    config = _load(config_path)
    typer.echo("Starting Bedrock server...")
    try:
        handle = _supervisor(config).start()
    except BsmError as exc:
        _fail("starting server", exc)
    typer.echo(f"Server started successfully (PID: {handle.pid})")


@server_app.command("stop")
def server_stop(
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Stop the Bedrock server."""
    config = _load(config_path)
    typer.echo("Stopping Bedrock server...")
    try:
        outcome = _supervisor(config).stop()
    except BsmError as exc:
        _fail("stopping server", exc)
    if outcome == StopOutcome.FORCED:
        typer.echo("Server did not exit in time and was killed")
        return
    typer.echo("Server stopped successfully")


@server_app.command("status")
def server_status(
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Check server status."""
    config = _load(config_path)
    try:
        status = _supervisor(config).status()
    except BsmError as exc:
        _fail("getting server status", exc)
    typer.echo(f"Server status: {status}")


# ----------------------------------------------------------------------
# world
# ----------------------------------------------------------------------


@world_app.command("list")
def world_list(
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """List world profiles and mark the active one."""
    manager = WorldManager.from_config(_load(config_path))
    try:
        worlds = manager.list_worlds()
        active = manager.get_active_world()
    except (BsmError, OSError) as exc:
        _fail("listing worlds", exc)
    typer.echo("Available worlds:")
    for world in worlds:
        if world.name == active:
            typer.echo(f"* {world.name} (active)")
        else:
            typer.echo(f"  {world.name}")


@world_app.command("switch")
def world_switch(
    world_name: str = typer.Argument(..., help="World profile to activate"),
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Switch the server to another world profile."""
    manager = WorldManager.from_config(_load(config_path))
    try:
        manager.switch_world(world_name)
    except BsmError as exc:
        _fail("switching world", exc)
    typer.echo(f"Switched to world: {world_name}")


@world_app.command("create")
def world_create(
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Create a world profile interactively."""
    manager = WorldManager.from_config(_load(config_path))
    try:
        profile = manager.create_world(TerminalInput())
    except BsmError as exc:
        _fail("creating world", exc)
    typer.echo(f"Created world '{profile.name}' in {profile.properties_path.parent}")


# ----------------------------------------------------------------------
# backup
# ----------------------------------------------------------------------


@backup_app.command("list")
def backup_list(
    show_all: bool = typer.Option(False, "--all", help="Show every backup instead of the newest five"),
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """List backups grouped by world."""
    engine = BackupEngine.from_config(_load(config_path))
    try:
        summaries = engine.list_backups()
    except BsmError as exc:
        _fail("listing backups", exc)

    if not summaries:
        typer.echo("No backups found")
        return

    for summary in summaries:
        backups = engine.world_backups(summary.world_name) if show_all else summary.backups
        typer.echo("")
        typer.echo(f"World: {summary.world_name}")
        typer.echo(f"Total backups: {summary.backup_count} ({format_size_mb(summary.total_size)})")
        if backups:
            typer.echo("All backups:" if show_all else "Recent backups:")
            for record in backups:
                typer.echo(
                    f"  {record.created_at.strftime(DISPLAY_TIME_FORMAT)} ({format_size_mb(record.size_bytes)})"
                )


@backup_app.command("create")
def backup_create(
    world_name: str = typer.Argument(..., help="World directory name under the worlds directory"),
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Create a backup of a world."""
    engine = BackupEngine.from_config(_load(config_path))
    try:
        record = engine.create_backup(world_name)
    except BsmError as exc:
        _fail("creating backup", exc)
    typer.echo(f"Created backup of '{world_name}' at {record.path}")


@backup_app.command("restore")
def backup_restore(
    world_name: str = typer.Argument(..., help="World to restore"),
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help=CONFIG_OPTION_HELP),
):
    """Restore a world from one of its backups."""
    config = _load(config_path)
    coordinator = RestoreCoordinator(
        BackupEngine.from_config(config),
        TerminalInput(),
        supervisor=_supervisor(config),
    )
    try:
        coordinator.restore_backup(world_name)
    except BsmError as exc:
        _fail("restoring backup", exc)
    typer.echo(f"Successfully restored '{world_name}' from backup")


if __name__ == "__main__":
    app()
