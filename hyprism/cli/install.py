"""
Installation subcommands: install, resolve, list, cleanup, repair and delete.
"""

from typing import Optional

import click

from hyprism.cli.common import ProgressPrinter, handle_errors, load_settings
from hyprism.controllers.cleanup_controller import CleanupController
from hyprism.controllers.install_controller import InstallController
from hyprism.models.instance import normalize_branch
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.version_resolver import VersionResolver

BRANCH_OPTION_HELP = "Release branch: release or pre-release (default: from settings)."


@click.command("install")
@click.option("--branch", help=BRANCH_OPTION_HELP)
@click.option(
    "--version",
    "version",
    type=click.IntRange(min=0),
    help="Pinned build number; 0 installs the auto-updating latest instance.",
)
@click.option(
    "--update/--no-update",
    default=None,
    help="Update the latest instance if a newer build exists (default: from settings).",
)
@click.option("--quiet", is_flag=True, help="Only print the final result.")
@handle_errors
def install(
    branch: Optional[str], version: Optional[int], update: Optional[bool], quiet: bool
) -> None:
    """Install or update a game instance.

    \b
    Examples:
      hyprism install
      hyprism install --branch pre-release
      hyprism install --branch release --version 3
    """
    settings = load_settings()
    branch = normalize_branch(branch or settings.version_type)
    version = settings.selected_version if version is None else version
    update = settings.auto_update_latest if update is None else update

    controller = InstallController.from_settings(settings)
    result = controller.ensure_installed_version_specific(
        branch, version, on_progress=ProgressPrinter(quiet), update=update
    )
    if result.short_circuited:
        click.secho(
            f"✓ {result.key} is already installed (build {result.resolved_version})",
            fg="green",
            err=True,
        )
    else:
        click.secho(
            f"✓ Installed {result.key} at build {result.resolved_version}",
            fg="green",
            err=True,
        )


@click.command("resolve")
@click.option("--branch", help=BRANCH_OPTION_HELP)
@click.option("--verbose", is_flag=True, help="List every endpoint that was checked.")
@handle_errors
def resolve(branch: Optional[str], verbose: bool) -> None:
    """Print the latest published build of a branch."""
    settings = load_settings()
    branch = normalize_branch(branch or settings.version_type)
    probe = VersionResolver(settings.patch_base_url).resolve_latest(branch)

    if verbose or probe.error is not None:
        for endpoint in probe.checked_endpoints:
            click.echo(f"checked: {endpoint}", err=True)
    if probe.error is not None:
        raise probe.error
    if probe.latest_version == 0:
        click.echo(f"No {branch} builds are published for this platform.", err=True)
        return
    click.echo(probe.latest_version)


@click.command("list")
@click.option("--branch", help="Only list instances of this branch.")
def list_instances(branch: Optional[str]) -> None:
    """List installed instances."""
    settings = load_settings()
    layout = InstanceLayout.from_settings(settings)
    instances = layout.installed_instances(
        normalize_branch(branch) if branch else None
    )
    if not instances:
        click.echo("No instances installed.", err=True)
        return
    for instance in instances:
        build = instance.installed_version or "?"
        click.echo(f"{instance.key}\tbuild {build}\t{instance.path}")


@click.command("cleanup")
@handle_errors
def cleanup() -> None:
    """Remove incomplete downloads and recover an interrupted install."""
    settings = load_settings()
    controller = CleanupController(InstanceLayout.from_settings(settings))
    removed = controller.cleanup_incomplete_downloads()
    click.secho(f"✓ Removed {len(removed)} incomplete download(s)", fg="green", err=True)


@click.command("repair")
@click.option("--branch", default="release", show_default=True)
@click.option("--version", "version", type=click.IntRange(min=0), default=0, show_default=True)
@handle_errors
def repair(branch: str, version: int) -> None:
    """Reset an instance so the next install starts from scratch.

    Clears the staging directory, drops a partially installed client and deletes
    cached patches. User data is kept.
    """
    settings = load_settings()
    controller = CleanupController(InstanceLayout.from_settings(settings))
    controller.repair_installation(branch, version)
    click.secho("✓ Repair complete, run install to reinstall the game", fg="green", err=True)


@click.command("delete")
@click.option("--branch", required=True)
@click.option("--version", "version", type=click.IntRange(min=0), required=True)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@handle_errors
def delete(branch: str, version: int, yes: bool) -> None:
    """Delete an instance, including its user data."""
    settings = load_settings()
    layout = InstanceLayout.from_settings(settings)
    if not yes:
        click.confirm(
            f"Delete {branch}/{version or 'latest'} and all of its user data?",
            abort=True,
        )
    CleanupController(layout).delete_instance(branch, version)
    click.secho("✓ Instance deleted", fg="green", err=True)
