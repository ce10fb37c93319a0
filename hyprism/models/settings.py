import json
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from hyprism.models.instance import KNOWN_BRANCHES, RELEASE_BRANCH, normalize_branch
from hyprism.utils.app_info import AppInfo

DEFAULT_PATCH_BASE_URL = "https://game-patches.hytale.com/patches"
DEFAULT_BUTLER_URL_TEMPLATE = (
    "https://broth.itch.zone/butler/{os}-{arch}/LATEST/archive/default"
)
DEFAULT_RUNTIME_URL_TEMPLATE = (
    "https://api.adoptium.net/v3/binary/latest/25/ga/{os}/{arch}/jre/hotspot/normal/eclipse"
)


class Settings:
    """
    Launcher settings persisted to `settings.json` in the application data folder.

    Debug logging is mirrored by the presence of a `DEBUG` file next to the
    settings file so the logger can be configured before settings are parsed.
    """

    def __init__(self, settings_file: Path | None = None) -> None:
        self._settings_file = settings_file or AppInfo().app_settings_file
        self._debug_file = self._settings_file.parent / "DEBUG"

        # Player
        self.player_name: str = "Player"

        # Instance selection
        self.version_type: str = RELEASE_BRANCH
        self.selected_version: int = 0
        self.custom_instance_dir: str = ""
        self.auto_update_latest: bool = True

        # Sources
        self.patch_base_url: str = DEFAULT_PATCH_BASE_URL
        self.butler_url_template: str = DEFAULT_BUTLER_URL_TEMPLATE
        self.runtime_url_template: str = DEFAULT_RUNTIME_URL_TEMPLATE
        self.download_max_retries: int = 5

        # Logging
        self.debug_logging_enabled: bool = False

    @property
    def settings_file(self) -> Path:
        return self._settings_file

    def load(self) -> None:
        if self._debug_file.exists() and self._debug_file.is_file():
            self.debug_logging_enabled = True
        else:
            self.debug_logging_enabled = False

        try:
            with open(str(self._settings_file), "r") as file:
                data = json.load(file)
        except FileNotFoundError:
            logger.info(f"No settings file at {self._settings_file}, writing defaults")
            self.save()
            return
        except JSONDecodeError:
            logger.error(f"Settings file {self._settings_file} is not valid JSON")
            raise

        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self._settings_file} must contain a JSON object")

        # The DEBUG marker file is authoritative
        data.pop("debug_logging_enabled", None)
        self._from_dict(data)

    def save(self) -> None:
        if self.debug_logging_enabled:
            self._debug_file.touch(exist_ok=True)
        else:
            self._debug_file.unlink(missing_ok=True)

        self._settings_file.parent.mkdir(parents=True, exist_ok=True)
        with open(str(self._settings_file), "w") as file:
            json.dump(self._to_dict(), file, indent=4)

    def set_value(self, key: str, raw_value: str) -> Any:
        """
        Set a public setting from its string form, coercing to the type of the
        current value.

        :return: the coerced value that was stored
        :raises KeyError: for unknown or private keys
        :raises ValueError: if the value cannot be coerced
        """
        if key.startswith("_") or key not in self._to_dict():
            raise KeyError(key)
        current = getattr(self, key)
        value: Any
        if isinstance(current, bool):
            lowered = raw_value.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                value = True
            elif lowered in ("0", "false", "no", "off"):
                value = False
            else:
                raise ValueError(f"Expected a boolean for {key}, got {raw_value!r}")
        elif isinstance(current, int):
            value = int(raw_value)
        else:
            value = raw_value
        self._from_dict({key: value})
        return getattr(self, key)

    def _from_dict(self, data: Dict[str, Any]) -> None:
        for key, value in data.items():
            if key.startswith("_") or not hasattr(self, key):
                logger.debug(f"Ignoring unknown setting: {key}")
                continue
            setattr(self, key, value)

        branch = normalize_branch(str(self.version_type))
        if branch not in KNOWN_BRANCHES:
            logger.warning(
                f"Unknown version type {self.version_type!r}, falling back to {RELEASE_BRANCH}"
            )
            branch = RELEASE_BRANCH
        self.version_type = branch

        try:
            self.selected_version = max(0, int(self.selected_version))
        except (TypeError, ValueError):
            logger.warning(f"Invalid selected version {self.selected_version!r}, using 0")
            self.selected_version = 0

        try:
            self.download_max_retries = max(1, int(self.download_max_retries))
        except (TypeError, ValueError):
            self.download_max_retries = 5

    def _to_dict(self, skip_private: bool = True) -> Dict[str, Any]:
        data = {}
        for key, value in self.__dict__.items():
            if skip_private and key.startswith("_"):
                continue
            data[key] = value
        return data
