from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from hyprism.utils.platform_profile import (
    CREATE_NEW_PROCESS_GROUP,
    LinuxProfile,
    MacOSProfile,
    WindowsProfile,
    current_platform_profile,
)
from hyprism.utils.system_info import SystemInfo

CLIENT_ARGS = ["--name", "Steve"]


def test_linux_launch_command(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LD_LIBRARY_PATH", "/opt/lib")
    monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
    monkeypatch.setenv("XDG_SESSION_TYPE", "x11")
    monkeypatch.delenv("SDL_VIDEODRIVER", raising=False)
    game_dir = tmp_path / "game"

    command = LinuxProfile().build_launch_command(game_dir, CLIENT_ARGS, cwd=tmp_path)

    assert command.argv == [str(game_dir / "Client" / "HytaleClient"), *CLIENT_ARGS]
    assert command.cwd == str(tmp_path)
    assert command.env["LD_LIBRARY_PATH"] == f"{game_dir / 'Client'}:/opt/lib"
    assert "SDL_VIDEODRIVER" not in command.env
    assert command.popen_kwargs == {"start_new_session": True}


def test_linux_launch_command_on_wayland(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("WAYLAND_DISPLAY", "wayland-0")

    command = LinuxProfile().build_launch_command(tmp_path, CLIENT_ARGS, cwd=tmp_path)

    assert command.env["SDL_VIDEODRIVER"] == "wayland,x11"


def test_windows_launch_command(tmp_path: Path) -> None:
    command = WindowsProfile().build_launch_command(tmp_path, CLIENT_ARGS, cwd=tmp_path)

    assert command.argv[0].endswith("HytaleClient.exe")
    assert command.popen_kwargs == {"creationflags": CREATE_NEW_PROCESS_GROUP}


def test_macos_launch_command_goes_through_open(tmp_path: Path) -> None:
    command = MacOSProfile().build_launch_command(tmp_path, CLIENT_ARGS, cwd=tmp_path)

    assert command.argv == [
        "open",
        str(tmp_path / "Client" / "Hytale.app"),
        "--args",
        *CLIENT_ARGS,
    ]


def test_macos_java_bundle_shim(tmp_path: Path) -> None:
    jre_dir = tmp_path / "jre"
    (jre_dir / "bin").mkdir(parents=True)
    (jre_dir / "lib").mkdir()
    (jre_dir / "bin" / "java").write_text("")

    java_path = MacOSProfile().launch_java_path(tmp_path, jre_dir)

    assert java_path == tmp_path / "java" / "Contents" / "Home" / "bin" / "java"
    assert java_path.exists()
    assert (tmp_path / "java" / "Contents" / "Home" / "bin").is_symlink()


def test_matches_client_process() -> None:
    assert LinuxProfile().matches_client_process("HytaleClient", [])
    assert LinuxProfile().matches_client_process("ld-linux", ["/x/Client/HytaleClient"])
    assert not LinuxProfile().matches_client_process("bash", ["bash"])

    assert WindowsProfile().matches_client_process("hytaleclient.EXE", [])
    assert not WindowsProfile().matches_client_process("HytaleLauncher.exe", [])

    assert MacOSProfile().matches_client_process("Hytale", [])


def test_clear_directory_uses_fallback_on_windows(tmp_path: Path) -> None:
    with patch("hyprism.utils.platform_profile.remove_tree") as remove_tree:
        WindowsProfile().clear_directory(tmp_path)
        remove_tree.assert_called_once_with(tmp_path, per_file_fallback=True)

        remove_tree.reset_mock()
        LinuxProfile().clear_directory(tmp_path)
        remove_tree.assert_called_once_with(tmp_path, per_file_fallback=False)


@pytest.mark.parametrize(
    "operating_system, expected",
    [
        (SystemInfo.OperatingSystem.WINDOWS, WindowsProfile),
        (SystemInfo.OperatingSystem.LINUX, LinuxProfile),
        (SystemInfo.OperatingSystem.MACOS, MacOSProfile),
        (None, LinuxProfile),
    ],
)
def test_current_platform_profile(
    operating_system: SystemInfo.OperatingSystem | None, expected: type
) -> None:
    system_info = MagicMock()
    system_info.operating_system = operating_system
    current_platform_profile.cache_clear()
    try:
        with patch(
            "hyprism.utils.platform_profile.SystemInfo", return_value=system_info
        ):
            assert type(current_platform_profile()) is expected
    finally:
        current_platform_profile.cache_clear()
