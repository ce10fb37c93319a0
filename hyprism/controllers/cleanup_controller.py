from pathlib import Path

from loguru import logger

from hyprism.models.instance import InstanceKey, normalize_branch
from hyprism.utils.butler.wrapper import is_stray_patch_file
from hyprism.utils.exception import FilesystemError
from hyprism.utils.generic import (
    delete_files_only_extension,
    delete_files_with_condition,
)
from hyprism.utils.install_lock import INSTALLATION_LOCK, InstallationLock
from hyprism.utils.instance_paths import InstanceLayout

TRANSIENT_DOWNLOAD_SUFFIXES = (".tmp", ".partial", ".downloading")


class CleanupController:
    """
    Removal of stale and partial artifacts.

    Everything here is best-effort except explicit instance deletion: failures
    are logged and the remaining items are still processed. User data is never
    touched by cleanup or repair.
    """

    def __init__(
        self, layout: InstanceLayout, lock: InstallationLock | None = None
    ) -> None:
        self.layout = layout
        self.profile = layout.profile
        self.lock = lock or INSTALLATION_LOCK

    def cleanup_incomplete_downloads(self) -> list[Path]:
        """
        Remove transient download files from the shared folders and recover the
        default instance from an interrupted install.

        Runs implicitly at the start of every install.

        :return: the files that were removed
        """
        removed: list[Path] = []
        for folder in (self.layout.cache_dir, self.layout.jre_dir, self.layout.butler_dir):
            removed.extend(
                delete_files_with_condition(
                    folder, lambda name: name.endswith(TRANSIENT_DOWNLOAD_SUFFIXES)
                )
            )
        if removed:
            logger.info(f"Removed {len(removed)} incomplete download(s)")

        self.recover_interrupted_install(InstanceKey())
        return removed

    def recover_interrupted_install(self, key: InstanceKey) -> bool:
        """
        If the `.installing` marker of `key` exists, the client files are from
        an install that never finished: remove them together with the marker.

        :return: True if an interrupted install was found
        """
        marker = self.layout.installing_marker(key)
        if not marker.exists():
            return False

        client_dir = self.profile.client_dir(self.layout.game_dir(key))
        logger.warning(f"Interrupted install detected for {key}, removing {client_dir}")
        self.profile.clear_directory(client_dir)
        try:
            marker.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove install marker {marker}: {e}")
        return True

    def repair_installation(self, branch: str = "release", version: int = 0) -> None:
        """
        Reset an instance so the next install starts from scratch: clear the
        staging directory and stray patch files, drop a partial client and
        delete every cached patch artifact.

        :raises ConcurrencyError: if an install is in progress
        """
        key = InstanceKey(branch=normalize_branch(branch), version=version)
        with self.lock.hold(f"repair of {key}"):
            logger.info(f"Repairing installation {key}")
            game_dir = self.layout.game_dir(key)

            if not self.profile.clear_directory(self.layout.staging_dir(key)):
                logger.warning(f"Could not fully clear staging directory of {key}")
            delete_files_with_condition(game_dir, is_stray_patch_file)
            self.recover_interrupted_install(key)

            removed = delete_files_only_extension(self.layout.cache_dir, (".pwr",))
            removed += delete_files_with_condition(
                self.layout.cache_dir,
                lambda name: name.endswith(TRANSIENT_DOWNLOAD_SUFFIXES),
            )
            logger.info(f"Repair of {key} complete, removed {len(removed)} cached file(s)")

    def delete_instance(self, branch: str, version: int) -> None:
        """
        Remove an instance folder, user data included.

        :raises FilesystemError: if the instance does not exist or could not be removed
        :raises ConcurrencyError: if an install is in progress
        """
        key = InstanceKey(branch=normalize_branch(branch), version=version)
        with self.lock.hold(f"deletion of {key}"):
            instance_dir = self.layout.instance_dir(key)
            if not instance_dir.exists():
                raise FilesystemError(f"Instance {key} does not exist")
            logger.info(f"Deleting instance {key} at {instance_dir}")
            if not self.profile.clear_directory(instance_dir):
                raise FilesystemError(f"Failed to delete instance folder {instance_dir}")
