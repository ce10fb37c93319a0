import json
from pathlib import Path

import pytest

from hyprism.models.settings import DEFAULT_PATCH_BASE_URL, Settings


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    return tmp_path / "config" / "settings.json"


def test_load_missing_file_writes_defaults(settings_file: Path) -> None:
    settings = Settings(settings_file)
    settings.load()

    assert settings_file.exists()
    data = json.loads(settings_file.read_text())
    assert data["version_type"] == "release"
    assert data["patch_base_url"] == DEFAULT_PATCH_BASE_URL
    assert data["download_max_retries"] == 5


def test_round_trip(settings_file: Path) -> None:
    settings = Settings(settings_file)
    settings.player_name = "Steve"
    settings.version_type = "pre-release"
    settings.selected_version = 4
    settings.save()

    loaded = Settings(settings_file)
    loaded.load()

    assert loaded.player_name == "Steve"
    assert loaded.version_type == "pre-release"
    assert loaded.selected_version == 4


def test_load_normalizes_values(settings_file: Path) -> None:
    settings_file.parent.mkdir(parents=True)
    settings_file.write_text(
        json.dumps(
            {
                "version_type": "PreRelease",
                "selected_version": -3,
                "download_max_retries": 0,
                "something_new": True,
            }
        )
    )

    settings = Settings(settings_file)
    settings.load()

    assert settings.version_type == "pre-release"
    assert settings.selected_version == 0
    assert settings.download_max_retries == 1
    assert not hasattr(settings, "something_new")


def test_unknown_branch_falls_back_to_release(settings_file: Path) -> None:
    settings_file.parent.mkdir(parents=True)
    settings_file.write_text(json.dumps({"version_type": "nightly"}))

    settings = Settings(settings_file)
    settings.load()

    assert settings.version_type == "release"


def test_invalid_json_raises(settings_file: Path) -> None:
    settings_file.parent.mkdir(parents=True)
    settings_file.write_text("{not json")

    with pytest.raises(json.JSONDecodeError):
        Settings(settings_file).load()


def test_non_object_root_raises(settings_file: Path) -> None:
    settings_file.parent.mkdir(parents=True)
    settings_file.write_text("[1, 2, 3]")

    with pytest.raises(ValueError):
        Settings(settings_file).load()


def test_debug_file_is_authoritative(settings_file: Path) -> None:
    settings = Settings(settings_file)
    settings.debug_logging_enabled = True
    settings.save()
    assert (settings_file.parent / "DEBUG").exists()

    data = json.loads(settings_file.read_text())
    data["debug_logging_enabled"] = False
    settings_file.write_text(json.dumps(data))

    loaded = Settings(settings_file)
    loaded.load()
    assert loaded.debug_logging_enabled is True

    loaded.debug_logging_enabled = False
    loaded.save()
    assert not (settings_file.parent / "DEBUG").exists()


def test_set_value_coerces_types(settings_file: Path) -> None:
    settings = Settings(settings_file)

    assert settings.set_value("auto_update_latest", "no") is False
    assert settings.set_value("selected_version", "12") == 12
    assert settings.set_value("player_name", "Alex") == "Alex"
    assert settings.set_value("version_type", "prerelease") == "pre-release"


def test_set_value_rejects_bad_input(settings_file: Path) -> None:
    settings = Settings(settings_file)

    with pytest.raises(KeyError):
        settings.set_value("_settings_file", "/tmp/x")
    with pytest.raises(KeyError):
        settings.set_value("does_not_exist", "1")
    with pytest.raises(ValueError):
        settings.set_value("selected_version", "twelve")
    with pytest.raises(ValueError):
        settings.set_value("auto_update_latest", "maybe")


def test_default_settings_file_follows_data_dir(isolated_data_dir: Path) -> None:
    assert Settings().settings_file == isolated_data_dir / "settings.json"
