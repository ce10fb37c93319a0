from pathlib import Path
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import pytest
import requests

from hyprism.models.instance import InstanceKey
from hyprism.utils.app_info import AppInfo
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.platform_profile import LinuxProfile
from hyprism.utils.system_info import SystemInfo


@pytest.fixture(autouse=True)
def isolated_data_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Point the application data folder at a temporary directory."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("HYPRISM_DATA_DIR", str(data_dir))
    AppInfo.reset()
    yield data_dir
    AppInfo.reset()


@pytest.fixture
def layout(isolated_data_dir: Path) -> InstanceLayout:
    return InstanceLayout(isolated_data_dir, profile=LinuxProfile())


@pytest.fixture
def linux_x64() -> MagicMock:
    """A supported Linux x86_64 system."""
    system_info = MagicMock(spec=SystemInfo)
    system_info.is_supported = True
    system_info.operating_system = SystemInfo.OperatingSystem.LINUX
    system_info.architecture = SystemInfo.Architecture.X64
    system_info.patch_os_name = "linux"
    system_info.patch_arch_name = "amd64"
    return system_info


@pytest.fixture
def fake_response() -> Callable[..., MagicMock]:
    """Factory for `requests.Response` stand-ins."""

    def make(
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        chunks: list[bytes] | None = None,
    ) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.headers = headers or {}
        response.iter_content.return_value = iter(chunks or [])
        if status_code >= 400:
            response.raise_for_status.side_effect = requests.HTTPError(
                f"HTTP {status_code}", response=response
            )
        else:
            response.raise_for_status.return_value = None
        return response

    return make


@pytest.fixture
def install_client() -> Callable[..., Path]:
    """Create the client executable of an instance as if it had been installed."""

    def make(layout: InstanceLayout, key: InstanceKey, version: Any = None) -> Path:
        client = layout.client_path(key)
        client.parent.mkdir(parents=True, exist_ok=True)
        client.write_bytes(b"\x7fELF")
        if version is not None:
            layout.write_version_marker(key, version)
        return client

    return make
