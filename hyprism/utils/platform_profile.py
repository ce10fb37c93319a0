"""
Per-OS conventions for the client, the patch tool and the Java runtime.

Everything that differs between Windows, Linux and macOS lives behind
`PlatformProfile`; the pipeline asks the profile selected at startup instead of
branching on the OS itself.
"""

import os
from dataclasses import dataclass, field
from functools import cache
from pathlib import Path

from loguru import logger

from hyprism.utils.generic import make_executable, remove_tree
from hyprism.utils.system_info import SystemInfo

CLIENT_DIR_NAME = "Client"
CLIENT_BINARY_NAME = "HytaleClient"
APP_BUNDLE_NAME = "Hytale.app"

# Windows-only creation flags, spelled out so the module imports everywhere
CREATE_NEW_PROCESS_GROUP = 0x00000200
CREATE_NO_WINDOW = 0x08000000


@dataclass
class LaunchCommand:
    """Everything needed to hand a client launch to `subprocess.Popen`."""

    argv: list[str]
    cwd: str
    env: dict[str, str] = field(default_factory=dict)
    popen_kwargs: dict[str, object] = field(default_factory=dict)


class PlatformProfile:
    """Base profile. Subclasses override what differs on their OS."""

    name = "generic"
    executable_suffix = ""
    # Files left behind by a crashed patch run may stay locked on some systems
    per_file_removal_fallback = False
    runtime_os_name = "linux"
    runtime_archive_suffix = ".tar.gz"

    def client_dir(self, game_dir: Path) -> Path:
        return game_dir / CLIENT_DIR_NAME

    def client_path(self, game_dir: Path) -> Path:
        """Path of the client executable inside an instance's game directory."""
        return self.client_dir(game_dir) / (CLIENT_BINARY_NAME + self.executable_suffix)

    def butler_executable(self, butler_dir: Path) -> Path:
        return butler_dir / ("butler" + self.executable_suffix)

    def java_executable(self, jre_dir: Path) -> Path:
        return jre_dir / "bin" / ("java" + self.executable_suffix)

    def launch_java_path(self, data_root: Path, jre_dir: Path) -> Path:
        """Java executable path handed to the client on launch."""
        return self.java_executable(jre_dir)

    def butler_apply_args(self) -> list[str]:
        """Extra arguments for `butler apply` on this platform."""
        return []

    def tool_popen_kwargs(self) -> dict[str, object]:
        """Keyword arguments for running helper tools without a console window."""
        return {}

    def clear_directory(self, path: Path) -> bool:
        """
        Remove `path` recursively, falling back to per-file removal where the
        platform is prone to locked leftovers.

        :return: True if the directory no longer exists afterwards
        """
        return remove_tree(path, per_file_fallback=self.per_file_removal_fallback)

    def mark_client_executable(self, game_dir: Path) -> None:
        make_executable(self.client_path(game_dir))

    def build_launch_command(
        self, game_dir: Path, client_args: list[str], cwd: Path
    ) -> LaunchCommand:
        argv = [str(self.client_path(game_dir)), *client_args]
        return LaunchCommand(argv=argv, cwd=str(cwd), env=dict(os.environ))

    def matches_client_process(self, name: str, cmdline: list[str]) -> bool:
        """Whether a process table entry is the game client."""
        if name == CLIENT_BINARY_NAME:
            return True
        return any(CLIENT_BINARY_NAME in part for part in cmdline)


class WindowsProfile(PlatformProfile):
    name = "windows"
    executable_suffix = ".exe"
    per_file_removal_fallback = True
    runtime_os_name = "windows"
    runtime_archive_suffix = ".zip"

    def butler_apply_args(self) -> list[str]:
        # Checkpoint progress so a crash mid-apply does not lose everything
        return ["--save-interval=60"]

    def tool_popen_kwargs(self) -> dict[str, object]:
        return {"creationflags": CREATE_NO_WINDOW}

    def mark_client_executable(self, game_dir: Path) -> None:
        pass

    def build_launch_command(
        self, game_dir: Path, client_args: list[str], cwd: Path
    ) -> LaunchCommand:
        command = super().build_launch_command(game_dir, client_args, cwd)
        command.popen_kwargs = {"creationflags": CREATE_NEW_PROCESS_GROUP}
        return command

    def matches_client_process(self, name: str, cmdline: list[str]) -> bool:
        return name.lower() == (CLIENT_BINARY_NAME + self.executable_suffix).lower()


class LinuxProfile(PlatformProfile):
    name = "linux"

    def build_launch_command(
        self, game_dir: Path, client_args: list[str], cwd: Path
    ) -> LaunchCommand:
        command = super().build_launch_command(game_dir, client_args, cwd)
        command.popen_kwargs = {"start_new_session": True}

        # The client ships its native libraries next to the binary
        client_dir = str(self.client_dir(game_dir))
        existing = command.env.get("LD_LIBRARY_PATH", "")
        command.env["LD_LIBRARY_PATH"] = (
            f"{client_dir}:{existing}" if existing else client_dir
        )

        wayland_display = command.env.get("WAYLAND_DISPLAY", "")
        session_type = command.env.get("XDG_SESSION_TYPE", "")
        if wayland_display or session_type.lower() == "wayland":
            logger.debug("Wayland session detected, preferring the wayland SDL driver")
            command.env["SDL_VIDEODRIVER"] = "wayland,x11"
        return command


class MacOSProfile(PlatformProfile):
    name = "darwin"
    runtime_os_name = "mac"

    def app_bundle_path(self, game_dir: Path) -> Path:
        return self.client_dir(game_dir) / APP_BUNDLE_NAME

    def client_path(self, game_dir: Path) -> Path:
        return self.app_bundle_path(game_dir) / "Contents" / "MacOS" / CLIENT_BINARY_NAME

    def launch_java_path(self, data_root: Path, jre_dir: Path) -> Path:
        """
        The client expects a JDK bundle layout on macOS, so expose the runtime
        through a `java/Contents/Home` shim of symlinks.
        """
        java_home = data_root / "java" / "Contents" / "Home"
        java_home_bin = java_home / "bin"
        if not java_home_bin.exists():
            logger.debug(f"Creating Java bundle shim at {java_home}")
            remove_tree(data_root / "java")
            java_home.mkdir(parents=True, exist_ok=True)
            java_home_bin.symlink_to(jre_dir / "bin", target_is_directory=True)
            (java_home / "lib").symlink_to(jre_dir / "lib", target_is_directory=True)
        return java_home_bin / "java"

    def build_launch_command(
        self, game_dir: Path, client_args: list[str], cwd: Path
    ) -> LaunchCommand:
        argv = ["open", str(self.app_bundle_path(game_dir)), "--args", *client_args]
        return LaunchCommand(argv=argv, cwd=str(cwd), env=dict(os.environ))

    def matches_client_process(self, name: str, cmdline: list[str]) -> bool:
        if "Hytale" in name:
            return True
        return any("Hytale" in part for part in cmdline)


_PROFILES: dict[SystemInfo.OperatingSystem, type[PlatformProfile]] = {
    SystemInfo.OperatingSystem.WINDOWS: WindowsProfile,
    SystemInfo.OperatingSystem.LINUX: LinuxProfile,
    SystemInfo.OperatingSystem.MACOS: MacOSProfile,
}


@cache
def current_platform_profile() -> PlatformProfile:
    """Select the profile for the running OS once per process."""
    operating_system = SystemInfo().operating_system
    if operating_system is None:
        logger.warning("Unrecognised operating system, using generic POSIX conventions")
        return LinuxProfile()
    return _PROFILES[operating_system]()

