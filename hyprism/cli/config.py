from typing import Optional

import click

from hyprism.cli.common import load_settings


@click.group("config")
def config() -> None:
    """Show or change launcher settings."""


@config.command("get")
@click.argument("key", required=False)
def get_setting(key: Optional[str]) -> None:
    """Print one setting, or all of them when KEY is omitted."""
    settings = load_settings()
    values = settings._to_dict()
    if key is None:
        for name, value in values.items():
            click.echo(f"{name} = {value}")
        return
    if key not in values:
        raise click.BadParameter(f"Unknown setting: {key}", param_hint="KEY")
    click.echo(values[key])


@config.command("set")
@click.argument("key")
@click.argument("value")
def set_setting(key: str, value: str) -> None:
    """Change a setting and save it."""
    settings = load_settings()
    try:
        stored = settings.set_value(key, value)
    except KeyError:
        raise click.BadParameter(f"Unknown setting: {key}", param_hint="KEY")
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="VALUE")
    settings.save()
    click.secho(f"✓ {key} = {stored}", fg="green", err=True)


@config.command("path")
def settings_path() -> None:
    """Print the location of the settings file."""
    click.echo(load_settings().settings_file)
