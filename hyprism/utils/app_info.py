import os
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from pathlib import Path

from platformdirs import PlatformDirs

DATA_DIR_ENV_VAR = "HYPRISM_DATA_DIR"


class AppInfo:
    """
    Singleton class that provides information about the application and its related directories.

    The data root is determined using the `platformdirs` package, ensuring platform-specific
    conventions are adhered to. It can be overridden with the `HYPRISM_DATA_DIR`
    environment variable, which is mostly useful for portable installs and tests.

    Examples:
        >>> print(AppInfo().app_name)
        >>> print(AppInfo().app_storage_folder)
    """

    _instance: "None | AppInfo" = None

    def __new__(cls) -> "AppInfo":
        """
        Create a new instance or return the existing singleton instance of the `AppInfo` class.
        """
        if not cls._instance:
            cls._instance = super(AppInfo, cls).__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_is_initialized") and self._is_initialized:
            return

        self._app_name = "HyPrism"

        try:
            self._app_version = package_version("hyprism-core")
        except PackageNotFoundError:
            self._app_version = "Unknown version"

        platform_dirs = PlatformDirs(appname=self._app_name, appauthor=False)
        override = os.environ.get(DATA_DIR_ENV_VAR, "")
        if override:
            self._app_storage_folder = Path(override)
            self._user_log_folder = self._app_storage_folder / "logs"
        else:
            self._app_storage_folder = Path(platform_dirs.user_data_dir)
            self._user_log_folder = Path(platform_dirs.user_log_dir)

        self._settings_file: Path = self._app_storage_folder / "settings.json"

        # Make sure important directories exist
        self._app_storage_folder.mkdir(parents=True, exist_ok=True)
        self._user_log_folder.mkdir(parents=True, exist_ok=True)

        self._is_initialized: bool = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next access re-reads the environment."""
        cls._instance = None

    @property
    def app_name(self) -> str:
        return self._app_name

    @property
    def app_version(self) -> str:
        return self._app_version

    @property
    def app_storage_folder(self) -> Path:
        """
        Get the path to the folder where instances, caches and tooling are stored.

        Returns:
            Path: The path to the user-specific data folder.
        """
        return self._app_storage_folder

    @property
    def app_settings_file(self) -> Path:
        return self._settings_file

    @property
    def user_log_folder(self) -> Path:
        """
        Get the path to the folder where launcher logs are stored for the user.

        Returns:
            Path: The path to the user-specific log folder.
        """
        return self._user_log_folder
