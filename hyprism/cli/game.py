"""
Game process subcommands: launch, status, kill and logs.
"""

from typing import Optional

import click

from hyprism.cli.common import handle_errors, load_settings
from hyprism.controllers.process_controller import GameProcessController
from hyprism.models.instance import InstanceKey, normalize_branch
from hyprism.utils.instance_paths import InstanceLayout


def _controller() -> GameProcessController:
    return GameProcessController(InstanceLayout.from_settings(load_settings()))


@click.command("launch")
@click.option("--branch", help="Release branch (default: from settings).")
@click.option("--version", "version", type=click.IntRange(min=0), help="Pinned build number.")
@click.option("--name", "player_name", help="Offline player name (default: from settings).")
@click.option("--wait", is_flag=True, help="Block until the game exits.")
@handle_errors
def launch(
    branch: Optional[str], version: Optional[int], player_name: Optional[str], wait: bool
) -> None:
    """Launch an installed instance."""
    settings = load_settings()
    controller = GameProcessController(InstanceLayout.from_settings(settings))
    pid = controller.launch(
        player_name or settings.player_name,
        normalize_branch(branch or settings.version_type),
        settings.selected_version if version is None else version,
    )
    click.secho(f"✓ Game started (pid {pid})", fg="green", err=True)
    if wait:
        controller.wait_for_exit()
        click.echo("Game exited.", err=True)


@click.command("status")
def status() -> None:
    """Show whether the game is running and which instances are installed."""
    settings = load_settings()
    layout = InstanceLayout.from_settings(settings)
    running = GameProcessController(layout).is_running()
    click.echo(f"Game running: {'yes' if running else 'no'}")

    key = InstanceKey(branch=settings.version_type, version=settings.selected_version)
    if layout.is_version_installed(key):
        build = layout.read_version_marker(key)
        click.echo(f"Selected instance: {key} (build {build or '?'})")
    else:
        click.echo(f"Selected instance: {key} (not installed)")


@click.command("kill")
@handle_errors
def kill() -> None:
    """Terminate the running game."""
    _controller().terminate()
    click.secho("✓ Game process terminated", fg="green", err=True)


@click.command("logs")
def logs() -> None:
    """Print the tail of the game logs."""
    click.echo(_controller().collect_logs())
