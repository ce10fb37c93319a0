import subprocess
import threading
from pathlib import Path

from loguru import logger

from hyprism.models.progress import ProgressCallback, ProgressStage, emit_progress
from hyprism.utils.constants import BUTLER_POLL_INTERVAL, PATCH_DELETE_DELAY
from hyprism.utils.exception import (
    FilesystemError,
    InstallCancelledError,
    PatchApplyError,
)
from hyprism.utils.generic import delete_files_with_condition
from hyprism.utils.instance_paths import STAGING_FOLDER_NAME
from hyprism.utils.platform_profile import PlatformProfile, current_platform_profile


def is_stray_patch_file(name: str) -> bool:
    """Leftovers of an interrupted butler run in the target directory."""
    return name.endswith(".tmp") or name.startswith("sf-")


class ButlerInterface:
    """
    Create ButlerInterface object to provide an interface for butler functionality.

    butler (https://itch.io/docs/butler/) applies `.pwr` patches to a directory.
    Its algorithm is opaque here: it is handed a patch, a target directory and a
    staging directory, and its exit code decides success.
    """

    def __init__(
        self,
        butler_path: Path,
        profile: PlatformProfile | None = None,
        patch_delete_delay: float = PATCH_DELETE_DELAY,
    ) -> None:
        self.butler_path = Path(butler_path)
        self.profile = profile or current_platform_profile()
        self.patch_delete_delay = patch_delete_delay
        self._cleanup_timer: threading.Timer | None = None

    def clean_staging(self, target_dir: Path) -> bool:
        """
        Remove the staging directory and stray temporary files left in
        `target_dir` by an earlier run. Never raises.

        :return: True if the staging directory is gone afterwards
        """
        staging_dir = target_dir / STAGING_FOLDER_NAME
        removed = self.profile.clear_directory(staging_dir)
        if not removed:
            logger.warning(f"Staging directory could not be fully removed: {staging_dir}")
        delete_files_with_condition(target_dir, is_stray_patch_file)
        return removed

    def build_command(self, patch_file: Path, target_dir: Path) -> list[str]:
        return [
            str(self.butler_path),
            "apply",
            "--staging-dir",
            str(target_dir / STAGING_FOLDER_NAME),
            *self.profile.butler_apply_args(),
            str(patch_file),
            str(target_dir),
        ]

    def apply(
        self,
        patch_file: Path,
        target_dir: Path,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Apply `patch_file` to `target_dir`.

        Every exit path clears the staging directory, so a failed call can be
        retried from scratch.

        :raises PatchApplyError: if butler fails; carries butler's combined output
        :raises InstallCancelledError: if `cancel_event` is set while butler runs
        :raises FilesystemError: if the target or staging directory cannot be created
        """
        target_dir = Path(target_dir)
        staging_dir = target_dir / STAGING_FOLDER_NAME

        emit_progress(on_progress, ProgressStage.INSTALL, 0, "Preparing installation...")
        self.clean_staging(target_dir)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create staging directory: {e}") from e

        emit_progress(on_progress, ProgressStage.INSTALL, 5, "Installing game...")
        command = self.build_command(patch_file, target_dir)
        logger.info(f"Applying patch with butler: {patch_file} -> {target_dir}")
        logger.debug(f"Executing butler with arguments: {command}")

        try:
            output, returncode = self._run(command, cancel_event)
        except InstallCancelledError:
            self.clean_staging(target_dir)
            self._schedule_patch_removal(patch_file)
            raise
        except OSError as e:
            self.clean_staging(target_dir)
            raise PatchApplyError(f"Failed to start butler: {e}") from e

        if returncode != 0:
            logger.error(f"butler exited with code {returncode}. Output:\n{output}")
            self.clean_staging(target_dir)
            self._schedule_patch_removal(patch_file)
            raise PatchApplyError(
                f"butler apply failed with exit code {returncode}", output=output
            )

        logger.debug(f"butler output:\n{output}")
        self.clean_staging(target_dir)
        self._schedule_patch_removal(patch_file)
        self.profile.mark_client_executable(target_dir)
        emit_progress(on_progress, ProgressStage.INSTALL, 100, "Installation complete")

    def _run(
        self, command: list[str], cancel_event: threading.Event | None
    ) -> tuple[str, int]:
        process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            **self.profile.tool_popen_kwargs(),
        )
        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Cancellation requested, stopping butler")
                process.kill()
                process.communicate()
                raise InstallCancelledError("Patch application cancelled")
            try:
                output, _ = process.communicate(timeout=BUTLER_POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                continue
            return output or "", process.returncode

    def _schedule_patch_removal(self, patch_file: Path) -> None:
        """
        Delete the patch after a grace delay so butler has released its handle.
        A file that changed in the meantime (a new download) is left alone.

        The timer is not a daemon thread, so a process that exits right after
        `apply` still waits out the delay and deletes the artifact.
        """
        try:
            stat = patch_file.stat()
        except FileNotFoundError:
            return
        signature = (stat.st_size, stat.st_mtime_ns)

        def remove() -> None:
            try:
                current = patch_file.stat()
                if (current.st_size, current.st_mtime_ns) != signature:
                    logger.debug(f"Patch file {patch_file} changed, not deleting it")
                    return
                patch_file.unlink()
                logger.debug(f"Deleted patch file {patch_file}")
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to delete patch file {patch_file}: {e}")

        self._cleanup_timer = threading.Timer(self.patch_delete_delay, remove)
        self._cleanup_timer.daemon = False
        self._cleanup_timer.start()
