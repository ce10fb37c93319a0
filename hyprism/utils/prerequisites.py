"""
Provisioning of the Java runtime and the butler patch tool.

Both are plain archives fetched over HTTP and unpacked into the shared data
folder; a present executable means the prerequisite is satisfied.
"""

import shutil
import tarfile
import threading
from pathlib import Path
from zipfile import BadZipFile, ZipFile

import requests
from loguru import logger

from hyprism.models.progress import ProgressCallback, ProgressStage, emit_progress
from hyprism.models.settings import (
    DEFAULT_BUTLER_URL_TEMPLATE,
    DEFAULT_RUNTIME_URL_TEMPLATE,
)
from hyprism.utils.exception import (
    HyPrismError,
    InstallCancelledError,
    PrerequisiteError,
    RuntimeProvisionError,
    ToolProvisionError,
)
from hyprism.utils.generic import format_speed, make_executable, remove_tree
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.patch_download import stream_download
from hyprism.utils.retry import DownloadRetryConfig, retry_download
from hyprism.utils.system_info import SystemInfo

EXTRACT_FOLDER_NAME = "_extract"

# Adoptium names architectures differently from the patch server
_RUNTIME_ARCH_NAMES = {
    SystemInfo.Architecture.X64: "x64",
    SystemInfo.Architecture.ARM64: "aarch64",
}


class PrerequisiteProvisioner:
    def __init__(
        self,
        layout: InstanceLayout,
        butler_url_template: str = DEFAULT_BUTLER_URL_TEMPLATE,
        runtime_url_template: str = DEFAULT_RUNTIME_URL_TEMPLATE,
        session: requests.Session | None = None,
        system_info: SystemInfo | None = None,
        retry_config: DownloadRetryConfig | None = None,
    ) -> None:
        self.layout = layout
        self.profile = layout.profile
        self.butler_url_template = butler_url_template
        self.runtime_url_template = runtime_url_template
        self.session = session or requests.Session()
        self.system_info = system_info or SystemInfo()
        self.retry_config = retry_config or DownloadRetryConfig()

    def runtime_path(self) -> Path:
        return self.profile.java_executable(self.layout.jre_dir)

    def tool_path(self) -> Path:
        return self.profile.butler_executable(self.layout.butler_dir)

    def runtime_url(self) -> str:
        arch = self.system_info.architecture
        return self.runtime_url_template.format(
            os=self.profile.runtime_os_name,
            arch=_RUNTIME_ARCH_NAMES.get(arch, "x64") if arch else "x64",
        )

    def tool_url(self) -> str:
        return self.butler_url_template.format(
            os=self.system_info.patch_os_name,
            arch=self.system_info.patch_arch_name,
        )

    def ensure_runtime(
        self,
        cancel_event: threading.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """
        Make sure the Java runtime is installed.

        :return: path of the java executable
        :raises RuntimeProvisionError: if the runtime could not be installed
        """
        return self._provision(
            label="Java runtime",
            target_dir=self.layout.jre_dir,
            executable=self.runtime_path(),
            url=self.runtime_url(),
            archive_name="jre" + self.profile.runtime_archive_suffix,
            error_cls=RuntimeProvisionError,
            cancel_event=cancel_event,
            on_progress=on_progress,
        )

    def ensure_tool(
        self,
        cancel_event: threading.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """
        Make sure butler is installed.

        :return: path of the butler executable
        :raises ToolProvisionError: if butler could not be installed
        """
        return self._provision(
            label="butler",
            target_dir=self.layout.butler_dir,
            executable=self.tool_path(),
            url=self.tool_url(),
            archive_name="butler.zip",
            error_cls=ToolProvisionError,
            cancel_event=cancel_event,
            on_progress=on_progress,
        )

    def _provision(
        self,
        label: str,
        target_dir: Path,
        executable: Path,
        url: str,
        archive_name: str,
        error_cls: type[PrerequisiteError],
        cancel_event: threading.Event | None,
        on_progress: ProgressCallback | None,
    ) -> Path:
        if executable.exists():
            logger.debug(f"{label} already present at {executable}")
            emit_progress(on_progress, ProgressStage.DOWNLOAD, 100, f"{label} ready")
            return executable

        logger.info(f"Downloading {label} from {url}")
        emit_progress(
            on_progress, ProgressStage.DOWNLOAD, 0, f"Downloading {label}..."
        )
        archive = target_dir / (archive_name + ".partial")
        extract_dir = target_dir / EXTRACT_FOLDER_NAME

        def on_transfer(downloaded: int, total: int, rate: float) -> None:
            emit_progress(
                on_progress,
                ProgressStage.DOWNLOAD,
                downloaded / total * 100 if total > 0 else 0,
                f"Downloading {label}...",
                current_file=archive_name,
                transfer_rate=format_speed(rate),
                bytes_downloaded=downloaded,
                bytes_total=total,
            )

        @retry_download(self.retry_config, cancel_event)
        def fetch() -> int:
            return stream_download(self.session, url, archive, on_transfer, cancel_event)

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            # Only resume between attempts of this call, never an older archive
            archive.unlink(missing_ok=True)
            fetch()
            if cancel_event is not None and cancel_event.is_set():
                raise InstallCancelledError(f"{label} installation cancelled")

            emit_progress(
                on_progress, ProgressStage.DOWNLOAD, 100, f"Extracting {label}..."
            )
            remove_tree(extract_dir)
            extract_dir.mkdir()
            self._extract(archive, extract_dir, archive_name)
            self._move_contents(extract_dir, target_dir)
        except (InstallCancelledError, PrerequisiteError):
            raise
        except (
            HyPrismError,
            requests.RequestException,
            OSError,
            BadZipFile,
            tarfile.TarError,
        ) as e:
            logger.error(f"Failed to install {label}: {e.__class__.__name__}: {e}")
            archive.unlink(missing_ok=True)
            raise error_cls(f"Failed to install {label}: {e}") from e
        finally:
            remove_tree(extract_dir)

        archive.unlink(missing_ok=True)
        if not executable.exists():
            raise error_cls(f"{label} archive did not contain {executable.name}")

        make_executable(executable)
        logger.info(f"{label} installed at {executable}")
        emit_progress(on_progress, ProgressStage.DOWNLOAD, 100, f"{label} ready")
        return executable

    @staticmethod
    def _extract(archive: Path, destination: Path, archive_name: str) -> None:
        if archive_name.endswith(".zip"):
            with ZipFile(archive) as zipobj:
                zipobj.extractall(destination)
        else:
            with tarfile.open(archive, mode="r:gz") as tarobj:
                tarobj.extractall(destination, filter="data")

    @staticmethod
    def _move_contents(extract_dir: Path, target_dir: Path) -> None:
        """
        Move extracted files into `target_dir`, dropping a single wrapping
        folder and the `Contents/Home` nesting of macOS runtime bundles.
        """
        source = extract_dir
        entries = list(source.iterdir())
        if len(entries) == 1 and entries[0].is_dir():
            source = entries[0]
        if (source / "Contents" / "Home").is_dir():
            source = source / "Contents" / "Home"

        for entry in source.iterdir():
            destination = target_dir / entry.name
            if destination.is_dir() and not destination.is_symlink():
                shutil.rmtree(destination)
            elif destination.exists() or destination.is_symlink():
                destination.unlink()
            shutil.move(str(entry), str(destination))
