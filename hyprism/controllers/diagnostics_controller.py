"""
Troubleshooting information for support requests: platform, reachability of
the download hosts, state of the default instance and of the prerequisites.
"""

import socket
from datetime import datetime
from pathlib import Path

import requests
from loguru import logger

from hyprism.models.diagnostics import (
    ConnectivityInfo,
    CrashReport,
    DependenciesInfo,
    DiagnosticReport,
    GameStatusInfo,
    PlatformInfo,
)
from hyprism.models.instance import InstanceKey
from hyprism.utils.app_info import AppInfo
from hyprism.utils.constants import CRASH_PREVIEW_CHARS, PROBE_TIMEOUT
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.prerequisites import PrerequisiteProvisioner
from hyprism.utils.system_info import SystemInfo

PATCH_HOST = "game-patches.hytale.com"
CONNECTIVITY_TARGETS = {
    "patch_server": f"https://{PATCH_HOST}",
    "github": "https://api.github.com",
    "itch_io": "https://broth.itch.zone",
}


class DiagnosticsController:
    def __init__(
        self,
        layout: InstanceLayout,
        provisioner: PrerequisiteProvisioner,
        session: requests.Session | None = None,
        system_info: SystemInfo | None = None,
    ) -> None:
        self.layout = layout
        self.provisioner = provisioner
        self.session = session or requests.Session()
        self.system_info = system_info or SystemInfo()

    def run_diagnostics(self) -> DiagnosticReport:
        logger.info("Running diagnostics")
        return DiagnosticReport(
            platform=PlatformInfo(
                os=self.system_info.patch_os_name,
                arch=self.system_info.patch_arch_name,
                version=AppInfo().app_version,
                supported=self.system_info.is_supported,
            ),
            connectivity=self.check_connectivity(),
            game_status=self.check_game_status(),
            dependencies=self.check_dependencies(),
            timestamp=datetime.now().astimezone().isoformat(timespec="seconds"),
        )

    def check_connectivity(self) -> ConnectivityInfo:
        info = ConnectivityInfo()
        for field_name, url in CONNECTIVITY_TARGETS.items():
            reachable = False
            try:
                response = self.session.head(url, timeout=PROBE_TIMEOUT)
                reachable = response.status_code < 500
                response.close()
            except requests.RequestException as e:
                logger.debug(f"Connectivity check of {url} failed: {e}")
            setattr(info, field_name, reachable)

        try:
            socket.getaddrinfo(PATCH_HOST, 443)
        except OSError as e:
            info.error = f"DNS resolution failed: {e}"
        return info

    def check_game_status(self) -> GameStatusInfo:
        key = InstanceKey()
        client_path = self.layout.client_path(key)
        info = GameStatusInfo(client_path=str(client_path))
        if client_path.exists():
            info.installed = True
            info.client_exists = True
            installed_version = self.layout.read_version_marker(key)
            info.version = (
                f"release-latest (build {installed_version})"
                if installed_version
                else "release-latest"
            )
        return info

    def check_dependencies(self) -> DependenciesInfo:
        info = DependenciesInfo()
        java_path = self.provisioner.runtime_path()
        if java_path.exists():
            info.java_installed = True
            info.java_path = str(java_path)
        butler_path = self.provisioner.tool_path()
        if butler_path.exists():
            info.butler_installed = True
            info.butler_path = str(butler_path)
        return info

    def save_diagnostic_report(self, report: DiagnosticReport | None = None) -> Path:
        """
        Write a plain-text report to the launcher logs folder.

        :return: path of the report file
        """
        report = report or self.run_diagnostics()
        logs_dir = self.layout.logs_dir
        logs_dir.mkdir(parents=True, exist_ok=True)
        path = logs_dir / f"diagnostic_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.txt"
        path.write_text(format_report(report), encoding="utf-8")
        logger.info(f"Diagnostic report saved to {path}")
        return path

    def crash_reports(self) -> list[CrashReport]:
        """Crash reports in the crashes folder, newest first."""
        crashes_dir = self.layout.crashes_dir
        if not crashes_dir.is_dir():
            return []

        reports: list[CrashReport] = []
        for entry in crashes_dir.iterdir():
            if not entry.is_file():
                continue
            try:
                mtime = entry.stat().st_mtime
                with open(entry, "r", encoding="utf-8", errors="replace") as f:
                    content = f.read(CRASH_PREVIEW_CHARS + 1)
            except OSError as e:
                logger.debug(f"Could not read crash report {entry}: {e}")
                continue
            if len(content) > CRASH_PREVIEW_CHARS:
                content = content[:CRASH_PREVIEW_CHARS] + "..."
            reports.append(
                CrashReport(
                    filename=entry.name,
                    timestamp=datetime.fromtimestamp(mtime).astimezone().isoformat(
                        timespec="seconds"
                    ),
                    preview=content,
                )
            )
        reports.sort(key=lambda report: report.timestamp, reverse=True)
        return reports


def format_report(report: DiagnosticReport) -> str:
    return (
        f"{AppInfo().app_name} Diagnostic Report\n"
        f"Generated: {report.timestamp}\n"
        "\n"
        "=== PLATFORM ===\n"
        f"OS: {report.platform.os}\n"
        f"Arch: {report.platform.arch}\n"
        f"Supported: {report.platform.supported}\n"
        f"Launcher Version: {report.platform.version}\n"
        "\n"
        "=== CONNECTIVITY ===\n"
        f"Hytale Patches Server: {report.connectivity.patch_server}\n"
        f"GitHub API: {report.connectivity.github}\n"
        f"itch.io (Butler): {report.connectivity.itch_io}\n"
        f"Error: {report.connectivity.error}\n"
        "\n"
        "=== GAME STATUS ===\n"
        f"Installed: {report.game_status.installed}\n"
        f"Version: {report.game_status.version}\n"
        f"Client Exists: {report.game_status.client_exists}\n"
        f"Client Path: {report.game_status.client_path}\n"
        "\n"
        "=== DEPENDENCIES ===\n"
        f"Java Installed: {report.dependencies.java_installed}\n"
        f"Java Path: {report.dependencies.java_path}\n"
        f"Butler Installed: {report.dependencies.butler_installed}\n"
        f"Butler Path: {report.dependencies.butler_path}\n"
    )
