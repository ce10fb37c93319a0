import click
import msgspec

from hyprism.cli.common import handle_errors, load_settings
from hyprism.controllers.diagnostics_controller import (
    DiagnosticsController,
    format_report,
)
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.prerequisites import PrerequisiteProvisioner


@click.command("diagnose")
@click.option("--save", is_flag=True, help="Also write the report to the logs folder.")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
@click.option("--crashes", is_flag=True, help="List crash reports instead.")
@handle_errors
def diagnose(save: bool, as_json: bool, crashes: bool) -> None:
    """Check connectivity, installed files and prerequisites."""
    settings = load_settings()
    layout = InstanceLayout.from_settings(settings)
    controller = DiagnosticsController(layout, PrerequisiteProvisioner(layout))

    if crashes:
        reports = controller.crash_reports()
        if as_json:
            click.echo(msgspec.json.format(msgspec.json.encode(reports)).decode())
        elif not reports:
            click.echo("No crash reports found.", err=True)
        for report in [] if as_json else reports:
            click.echo(f"=== {report.filename} ({report.timestamp}) ===\n{report.preview}\n")
        return

    report = controller.run_diagnostics()
    if as_json:
        click.echo(msgspec.json.format(msgspec.json.encode(report)).decode())
    else:
        click.echo(format_report(report))
    if save:
        path = controller.save_diagnostic_report(report)
        click.secho(f"✓ Report saved to {path}", fg="green", err=True)
