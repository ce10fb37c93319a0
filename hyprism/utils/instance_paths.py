"""
On-disk layout of instances and shared launcher folders.

    <data_root>/
        cache/            downloaded patch artifacts (<N>.pwr)
        butler/           patch tool
        jre/              Java runtime
        logs/  crashes/
        Instances/<branch>/<latest|N>/
            game/         client files (game/Client/...)
                staging-temp/   scratch space of the patch tool
                .installing     interrupted-install marker
            UserData/
            version.txt
"""

from pathlib import Path

from loguru import logger

from hyprism.models.instance import LATEST_SEGMENT, InstalledInstance, InstanceKey
from hyprism.models.settings import Settings
from hyprism.utils.app_info import AppInfo
from hyprism.utils.exception import FilesystemError
from hyprism.utils.platform_profile import PlatformProfile, current_platform_profile

INSTANCES_FOLDER_NAME = "Instances"
GAME_FOLDER_NAME = "game"
USER_DATA_FOLDER_NAME = "UserData"
STAGING_FOLDER_NAME = "staging-temp"
INSTALLING_MARKER_NAME = ".installing"
VERSION_FILE_NAME = "version.txt"


class InstanceLayout:
    def __init__(
        self,
        data_root: Path,
        instances_root: Path | None = None,
        profile: PlatformProfile | None = None,
    ) -> None:
        self.data_root = Path(data_root)
        self.instances_root = (
            Path(instances_root)
            if instances_root
            else self.data_root / INSTANCES_FOLDER_NAME
        )
        self.profile = profile or current_platform_profile()

    @classmethod
    def from_settings(
        cls, settings: Settings, data_root: Path | None = None
    ) -> "InstanceLayout":
        """Layout rooted at the application data folder, honouring a custom instance folder."""
        instances_root = (
            Path(settings.custom_instance_dir) if settings.custom_instance_dir else None
        )
        return cls(data_root or AppInfo().app_storage_folder, instances_root)

    # Shared folders

    @property
    def cache_dir(self) -> Path:
        return self.data_root / "cache"

    @property
    def butler_dir(self) -> Path:
        return self.data_root / "butler"

    @property
    def jre_dir(self) -> Path:
        return self.data_root / "jre"

    @property
    def logs_dir(self) -> Path:
        return self.data_root / "logs"

    @property
    def crashes_dir(self) -> Path:
        return self.data_root / "crashes"

    # Per-instance paths

    def instance_dir(self, key: InstanceKey) -> Path:
        return self.instances_root / key.branch / key.version_segment

    def game_dir(self, key: InstanceKey) -> Path:
        return self.instance_dir(key) / GAME_FOLDER_NAME

    def user_data_dir(self, key: InstanceKey) -> Path:
        return self.instance_dir(key) / USER_DATA_FOLDER_NAME

    def staging_dir(self, key: InstanceKey) -> Path:
        return self.game_dir(key) / STAGING_FOLDER_NAME

    def installing_marker(self, key: InstanceKey) -> Path:
        return self.game_dir(key) / INSTALLING_MARKER_NAME

    def version_file(self, key: InstanceKey) -> Path:
        return self.instance_dir(key) / VERSION_FILE_NAME

    def client_path(self, key: InstanceKey) -> Path:
        return self.profile.client_path(self.game_dir(key))

    def create_instance_folders(self, key: InstanceKey) -> Path:
        """
        Create the game and user-data folders of an instance.

        :return: the game directory
        :raises FilesystemError: if a folder cannot be created
        """
        for folder in (self.game_dir(key), self.user_data_dir(key)):
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FilesystemError(
                    f"Failed to create instance folder {folder}: {e}"
                ) from e
        return self.game_dir(key)

    def ensure_shared_folders(self) -> None:
        for folder in (
            self.cache_dir,
            self.butler_dir,
            self.jre_dir,
            self.logs_dir,
            self.crashes_dir,
        ):
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FilesystemError(f"Failed to create folder {folder}: {e}") from e

    def is_version_installed(self, key: InstanceKey) -> bool:
        return self.client_path(key).exists()

    def read_version_marker(self, key: InstanceKey) -> int | None:
        """Installed version recorded for the instance, or None if unknown."""
        try:
            text = self.version_file(key).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read version marker of {key}: {e}")
            return None
        try:
            return int(text)
        except ValueError:
            logger.warning(f"Ignoring invalid version marker of {key}: {text!r}")
            return None

    def write_version_marker(self, key: InstanceKey, version: int) -> None:
        path = self.version_file(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(str(version), encoding="utf-8")
        except OSError as e:
            raise FilesystemError(f"Failed to write version marker {path}: {e}") from e
        logger.debug(f"Recorded version {version} for {key}")

    def installed_instances(self, branch: str | None = None) -> list[InstalledInstance]:
        """
        Instances with a client executable present, latest first and then by
        descending version, grouped by branch name.
        """
        found: list[InstalledInstance] = []
        if not self.instances_root.is_dir():
            return found

        branch_dirs = sorted(p for p in self.instances_root.iterdir() if p.is_dir())
        for branch_dir in branch_dirs:
            if branch is not None and branch_dir.name != branch:
                continue
            for version_dir in branch_dir.iterdir():
                if not version_dir.is_dir():
                    continue
                if version_dir.name == LATEST_SEGMENT:
                    version = 0
                elif version_dir.name.isdigit():
                    version = int(version_dir.name)
                else:
                    continue
                key = InstanceKey(branch=branch_dir.name, version=version)
                if not self.is_version_installed(key):
                    continue
                found.append(
                    InstalledInstance(
                        key=key,
                        path=str(version_dir),
                        installed_version=self.read_version_marker(key),
                    )
                )

        found.sort(
            key=lambda item: (
                item.key.branch,
                0 if item.key.version == 0 else 1,
                -item.key.version,
            )
        )
        return found
