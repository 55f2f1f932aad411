"""Tests for the user preferences file."""
import json

import pytest

from config_manager import ConfigManager


@pytest.fixture
def settings_path(tmp_path):
    return tmp_path / "settings.json"


def test_defaults_without_file(settings_path):
    config = ConfigManager(str(settings_path))
    assert config.get("defaults", "output_format") == "tga"
    assert config.get("defaults", "overwrite") is True
    assert config.get("recent_files") == []
    assert not settings_path.exists()


def test_defaults_are_not_shared(settings_path):
    first = ConfigManager(str(settings_path))
    first.set("defaults", "output_format", value="png")
    second = ConfigManager(str(settings_path))
    assert second.get("defaults", "output_format") == "tga"


def test_save_and_reload(settings_path):
    config = ConfigManager(str(settings_path))
    config.set("defaults", "random_seed", value=42)
    assert config.save()

    reloaded = ConfigManager(str(settings_path))
    assert reloaded.get("defaults", "random_seed") == 42


def test_partial_file_is_merged_with_defaults(settings_path):
    settings_path.write_text(json.dumps({"defaults": {"overwrite": False}, "extra": 1}))
    config = ConfigManager(str(settings_path))
    assert config.get("defaults", "overwrite") is False
    assert config.get("defaults", "output_format") == "tga"
    assert config.get("paths", "last_input_dir") is None


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_unreadable_file_falls_back_to_defaults(settings_path, content):
    settings_path.write_text(content)
    config = ConfigManager(str(settings_path))
    assert config.get("defaults", "output_format") == "tga"


def test_get_missing_key_returns_default(settings_path):
    config = ConfigManager(str(settings_path))
    assert config.get("defaults", "missing", default="x") == "x"
    assert config.get("recent_files", "deeper", default=3) == 3


def test_set_creates_nested_sections(settings_path):
    config = ConfigManager(str(settings_path))
    config.set("new", "section", value=5)
    assert config.get("new", "section") == 5


def test_save_to_unwritable_path(tmp_path):
    config = ConfigManager(str(tmp_path / "missing" / "settings.json"))
    assert config.save() is False


def test_last_paths(settings_path, tmp_path):
    config = ConfigManager(str(settings_path))
    config.update_last_path("input", str(tmp_path / "in.tga"))
    config.update_last_path("output", str(tmp_path))
    assert config.get("paths", "last_input_dir") == str(tmp_path)
    assert config.get("paths", "last_output_dir") == str(tmp_path)


def test_recent_files_are_capped_and_deduplicated(settings_path):
    config = ConfigManager(str(settings_path))
    files = [f"/images/{i}.tga" for i in range(12)]
    for path in files:
        config.add_recent_file(path)

    config.add_recent_file(files[5])
    recent = config.get("recent_files")
    assert len(recent) == 10
    assert recent[0] == files[5]
    assert recent.count(files[5]) == 1
    assert files[0] not in recent
