"""
Helpers shared by the CLI subcommands.
"""

import sys
from functools import wraps
from json import JSONDecodeError
from typing import Any, Callable, TypeVar

import click
from loguru import logger

from hyprism.models.progress import ProgressEvent, ProgressStage
from hyprism.models.settings import Settings
from hyprism.utils.exception import HyPrismError

F = TypeVar("F", bound=Callable[..., Any])


def load_settings() -> Settings:
    settings = Settings()
    try:
        settings.load()
    except (JSONDecodeError, ValueError) as e:
        click.secho(
            f"✗ Error: Could not read settings file {settings.settings_file}: {e}",
            fg="red",
            err=True,
        )
        click.echo("Fix or delete the file to restore the defaults.", err=True)
        sys.exit(1)
    return settings


def report_error(error: HyPrismError) -> None:
    click.secho(f"✗ Error: {error}", fg="red", err=True)
    if error.hint:
        click.echo(f"Hint: {error.hint}", err=True)
    output = getattr(error, "output", "")
    if output:
        click.echo("\nPatch tool output:", err=True)
        click.echo(output.rstrip(), err=True)


def handle_errors(func: F) -> F:
    """Turn pipeline errors into a message, a remediation hint and exit status 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except HyPrismError as e:
            logger.error(f"{func.__name__} failed: {e.__class__.__name__}: {e}")
            report_error(e)
            sys.exit(1)
        except KeyboardInterrupt:
            click.echo("\n\nInterrupted by user.", err=True)
            sys.exit(2)

    return wrapper  # type: ignore


class ProgressPrinter:
    """Progress callback writing one line per stage change or 10% step."""

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet
        self._last: tuple[ProgressStage, str, int] | None = None

    def __call__(self, event: ProgressEvent) -> None:
        if self.quiet and event.stage is not ProgressStage.COMPLETE:
            return
        bucket = int(event.fraction // 10)
        current = (event.stage, event.message, bucket)
        if current == self._last:
            return
        self._last = current

        line = f"[{event.stage.value}] {event.fraction:5.1f}% {event.message}"
        if event.transfer_rate:
            line += f" ({event.transfer_rate})"
        click.echo(line, err=True)
