"""Tests for settings loading (roomchat.settings.yaml)."""
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from roomchat import config
from roomchat.config import (
    AppSettings,
    LoggingSettings,
    StorageSettings,
    WindowSettings,
    load_config,
)


@pytest.fixture(autouse=True)
def clean_config_cache(monkeypatch):
    """Keep the global settings cache and env var out of each test."""
    monkeypatch.delenv(config.SETTINGS_ENV_VAR, raising=False)
    config.reset_config()
    yield
    config.reset_config()


def write_settings(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestDefaults:
    def test_defaults(self):
        settings = AppSettings()
        assert settings.window.page_size == 20
        assert settings.window.extend_delay_ms == 800
        assert settings.window.top_threshold_px == 0.0
        assert settings.replies.throttle_ms == 2000
        assert settings.replies.base_delay_ms == 1000
        assert settings.replies.jitter_ms == 600
        assert settings.replies.queue_replies is False
        assert settings.seed.count == 60

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            WindowSettings(page_size=0)
        with pytest.raises(ValidationError):
            WindowSettings(top_threshold_px=-1)

    def test_log_level_normalized(self):
        assert LoggingSettings(level="DEBUG").level == "debug"
        with pytest.raises(ValidationError):
            LoggingSettings(level="chatty")


class TestStoragePaths:
    def test_memory_passes_through(self):
        storage = StorageSettings(messages_db=":memory:")
        assert storage.messages_path() == ":memory:"

    def test_relative_names_join_data_dir(self):
        storage = StorageSettings(data_dir="/var/roomchat")
        assert storage.rooms_path() == str(Path("/var/roomchat") / "rooms.duckdb")

    def test_absolute_names_are_kept(self, tmp_path):
        target = str(tmp_path / "msgs.duckdb")
        assert StorageSettings(messages_db=target).messages_path() == target


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_config(tmp_path / "absent.yaml")
        assert settings == AppSettings()

    def test_yaml_overrides(self, tmp_path):
        path = write_settings(tmp_path / "roomchat.settings.yaml", {
            "window": {"page_size": 10},
            "replies": {"throttle_ms": 500, "queue_replies": True},
        })
        settings = load_config(path)
        assert settings.window.page_size == 10
        assert settings.replies.throttle_ms == 500
        assert settings.replies.queue_replies is True
        assert settings.replies.base_delay_ms == 1000

    def test_relative_data_dir_resolves_against_file(self, tmp_path):
        path = write_settings(tmp_path / "roomchat.settings.yaml", {
            "storage": {"data_dir": "./data"},
        })
        settings = load_config(path)
        assert Path(settings.storage.data_dir) == tmp_path.resolve() / "data"

    def test_env_var_locates_file(self, tmp_path, monkeypatch):
        path = write_settings(tmp_path / "custom.yaml", {"seed": {"count": 7}})
        monkeypatch.setenv(config.SETTINGS_ENV_VAR, str(path))
        assert load_config().seed.count == 7

    def test_invalid_values_are_rejected(self, tmp_path):
        path = write_settings(tmp_path / "bad.yaml", {"replies": {"jitter_ms": -1}})
        with pytest.raises(ValidationError):
            load_config(path)

    def test_get_config_is_cached(self, tmp_path, monkeypatch):
        path = write_settings(tmp_path / "cached.yaml", {"seed": {"count": 3}})
        monkeypatch.setenv(config.SETTINGS_ENV_VAR, str(path))
        first = config.get_config()
        assert config.get_config() is first
        config.reset_config()
        assert config.get_config() is not first
