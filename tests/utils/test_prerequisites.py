import io
import os
import tarfile
import zipfile
from typing import Callable
from unittest.mock import MagicMock

import pytest
import requests

from hyprism.models.progress import ProgressEvent
from hyprism.utils.exception import RuntimeProvisionError, ToolProvisionError
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.prerequisites import PrerequisiteProvisioner
from hyprism.utils.retry import DownloadRetryConfig


def _zip_bytes(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def _tar_gz_bytes(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def provisioner(
    layout: InstanceLayout, session: MagicMock, linux_x64: MagicMock
) -> PrerequisiteProvisioner:
    return PrerequisiteProvisioner(
        layout,
        session=session,
        system_info=linux_x64,
        retry_config=DownloadRetryConfig(max_attempts=2, delay=0.0),
    )


def test_urls(provisioner: PrerequisiteProvisioner) -> None:
    assert provisioner.tool_url() == (
        "https://broth.itch.zone/butler/linux-amd64/LATEST/archive/default"
    )
    assert provisioner.runtime_url() == (
        "https://api.adoptium.net/v3/binary/latest/25/ga/linux/x64/jre/hotspot/normal/eclipse"
    )


def test_paths(provisioner: PrerequisiteProvisioner, layout: InstanceLayout) -> None:
    assert provisioner.tool_path() == layout.butler_dir / "butler"
    assert provisioner.runtime_path() == layout.jre_dir / "bin" / "java"


def test_ensure_tool_downloads_and_extracts(
    provisioner: PrerequisiteProvisioner,
    layout: InstanceLayout,
    session: MagicMock,
    fake_response: Callable[..., MagicMock],
) -> None:
    payload = _zip_bytes({"butler": b"#!/bin/sh\n", "7z.so": b"lib"})
    session.get.return_value = fake_response(
        200, {"Content-Length": str(len(payload))}, [payload]
    )
    events: list[ProgressEvent] = []

    butler_path = provisioner.ensure_tool(on_progress=events.append)

    assert butler_path == layout.butler_dir / "butler"
    assert os.access(butler_path, os.X_OK)
    assert (layout.butler_dir / "7z.so").exists()
    assert not (layout.butler_dir / "_extract").exists()
    assert not (layout.butler_dir / "butler.zip.partial").exists()
    assert session.get.call_args[0][0] == provisioner.tool_url()
    assert events[-1].fraction == 100
    assert events[-1].message == "butler ready"


def test_ensure_runtime_flattens_archive_folder(
    provisioner: PrerequisiteProvisioner,
    layout: InstanceLayout,
    session: MagicMock,
    fake_response: Callable[..., MagicMock],
) -> None:
    payload = _tar_gz_bytes(
        {
            "jdk-25+36-jre/bin/java": b"#!/bin/sh\n",
            "jdk-25+36-jre/lib/modules": b"modules",
        }
    )
    session.get.return_value = fake_response(200, {}, [payload])

    java_path = provisioner.ensure_runtime()

    assert java_path == layout.jre_dir / "bin" / "java"
    assert java_path.exists()
    assert (layout.jre_dir / "lib" / "modules").exists()
    assert not (layout.jre_dir / "jdk-25+36-jre").exists()


def test_present_prerequisite_skips_network(
    provisioner: PrerequisiteProvisioner, layout: InstanceLayout, session: MagicMock
) -> None:
    layout.butler_dir.mkdir(parents=True)
    (layout.butler_dir / "butler").write_bytes(b"")
    events: list[ProgressEvent] = []

    provisioner.ensure_tool(on_progress=events.append)

    session.get.assert_not_called()
    assert [event.message for event in events] == ["butler ready"]


def test_archive_without_executable(
    provisioner: PrerequisiteProvisioner,
    session: MagicMock,
    fake_response: Callable[..., MagicMock],
) -> None:
    session.get.return_value = fake_response(200, {}, [_zip_bytes({"README": b"hi"})])

    with pytest.raises(ToolProvisionError, match="did not contain butler"):
        provisioner.ensure_tool()


def test_corrupt_archive(
    provisioner: PrerequisiteProvisioner,
    layout: InstanceLayout,
    session: MagicMock,
    fake_response: Callable[..., MagicMock],
) -> None:
    session.get.return_value = fake_response(200, {}, [b"this is not a zip file"])

    with pytest.raises(ToolProvisionError):
        provisioner.ensure_tool()
    assert not (layout.butler_dir / "_extract").exists()


def test_network_failure(
    provisioner: PrerequisiteProvisioner, session: MagicMock
) -> None:
    session.get.side_effect = requests.ConnectionError("unreachable")

    with pytest.raises(RuntimeProvisionError) as exc_info:
        provisioner.ensure_runtime()

    assert exc_info.value.hint
    assert session.get.call_count == 2


def test_stale_partial_archive_is_not_resumed(
    provisioner: PrerequisiteProvisioner,
    layout: InstanceLayout,
    session: MagicMock,
    fake_response: Callable[..., MagicMock],
) -> None:
    layout.butler_dir.mkdir(parents=True)
    (layout.butler_dir / "butler.zip.partial").write_bytes(b"older build")
    payload = _zip_bytes({"butler": b"#!/bin/sh\n"})
    session.get.return_value = fake_response(200, {}, [payload])

    provisioner.ensure_tool()

    _, kwargs = session.get.call_args
    assert "Range" not in kwargs["headers"]
    assert (layout.butler_dir / "butler").read_bytes() == b"#!/bin/sh\n"


def test_failed_install_removes_partial_archive(
    provisioner: PrerequisiteProvisioner,
    layout: InstanceLayout,
    session: MagicMock,
    fake_response: Callable[..., MagicMock],
) -> None:
    session.get.return_value = fake_response(200, {}, [b"this is not a zip file"])

    with pytest.raises(ToolProvisionError):
        provisioner.ensure_tool()

    assert not (layout.butler_dir / "butler.zip.partial").exists()
