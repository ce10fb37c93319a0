"""
Main CLI entry point for HyPrism.

This module defines the Click command group and registers all subcommands.
"""

import click

from hyprism.cli.config import config
from hyprism.cli.diagnose import diagnose
from hyprism.cli.game import kill, launch, logs, status
from hyprism.cli.install import (
    cleanup,
    delete,
    install,
    list_instances,
    repair,
    resolve,
)
from hyprism.utils.app_info import AppInfo


@click.group()
@click.version_option(version=AppInfo().app_version, prog_name="HyPrism")
def cli() -> None:
    """HyPrism - Hytale installer and launcher

    Installs game instances from the official patch server, keeps them up to
    date and launches them in offline mode.

    Environment:
      HYPRISM_DATA_DIR    Use this folder instead of the per-user data folder
    """
    pass


# Register subcommands
cli.add_command(install)
cli.add_command(resolve)
cli.add_command(list_instances)
cli.add_command(cleanup)
cli.add_command(repair)
cli.add_command(delete)
cli.add_command(launch)
cli.add_command(status)
cli.add_command(kill)
cli.add_command(logs)
cli.add_command(diagnose)
cli.add_command(config)


if __name__ == "__main__":
    cli()
