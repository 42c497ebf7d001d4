"""Tests for configuration loading."""

from pathlib import Path

import pytest

from chowder.cli.config import Config, Settings, default_data_dir, load_config
from chowder.storage.factory import NATIVE, WEB
from chowder.sync.api import DEFAULT_RETRIES, DEFAULT_TIMEOUT
from chowder.sync.engine import DEFAULT_INTERVAL


def write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestConfigFile:
    def test_reads_mapping(self, tmp_path):
        path = write_config(tmp_path / "c.yaml", "api:\n  url: https://x\n")

        assert Config.from_file(path) == {"api": {"url": "https://x"}}

    def test_empty_file(self, tmp_path):
        assert Config.from_file(write_config(tmp_path / "c.yaml", "")) == {}

    def test_invalid_yaml(self, tmp_path):
        path = write_config(tmp_path / "c.yaml", "api: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            Config.from_file(path)

    def test_not_a_mapping(self, tmp_path):
        path = write_config(tmp_path / "c.yaml", "- one\n- two\n")

        with pytest.raises(ValueError, match="mapping"):
            Config.from_file(path)

    def test_merge_is_deep(self):
        merged = Config.merge_configs(
            {"api": {"url": "a", "timeout": 5}}, {"api": {"url": "b"}}
        )

        assert merged == {"api": {"url": "b", "timeout": 5}}


class TestLoadConfig:
    def test_defaults(self):
        settings = Settings.from_mapping(load_config())

        assert settings.runtime == NATIVE
        assert settings.api_url is None
        assert settings.sync_interval == DEFAULT_INTERVAL
        assert settings.api_timeout == DEFAULT_TIMEOUT
        assert settings.api_retries == DEFAULT_RETRIES
        assert settings.data_dir == default_data_dir()

    def test_user_config(self, tmp_path):
        write_config(
            tmp_path / "config" / "chowder" / "config.yaml",
            "runtime: web\nsync:\n  interval: 5\n",
        )

        settings = Settings.from_mapping(load_config())

        assert settings.runtime == WEB
        assert settings.sync_interval == 5.0

    def test_explicit_file_wins_over_user_config(self, tmp_path):
        write_config(
            tmp_path / "config" / "chowder" / "config.yaml",
            "api:\n  url: https://user\n  retries: 7\n",
        )
        explicit = write_config(tmp_path / "explicit.yaml", "api:\n  url: https://explicit\n")

        settings = Settings.from_mapping(load_config(explicit))

        assert settings.api_url == "https://explicit"
        assert settings.api_retries == 7

    def test_environment_wins(self, tmp_path, monkeypatch):
        explicit = write_config(tmp_path / "explicit.yaml", "api:\n  url: https://file\n")
        monkeypatch.setenv("CHOWDER_API_URL", "https://env")
        monkeypatch.setenv("CHOWDER_API_TOKEN", "t0ken")
        monkeypatch.setenv("CHOWDER_DATA_DIR", str(tmp_path / "elsewhere"))
        monkeypatch.setenv("CHOWDER_SYNC_INTERVAL", "12.5")

        settings = Settings.from_mapping(load_config(explicit))

        assert settings.api_url == "https://env"
        assert settings.api_token == "t0ken"
        assert settings.data_dir == tmp_path / "elsewhere"
        assert settings.sync_interval == 12.5

    def test_default_data_dir_follows_xdg(self, tmp_path):
        assert default_data_dir() == tmp_path / "data" / "chowder"


class TestSettings:
    def test_unknown_runtime(self):
        with pytest.raises(ValueError, match="Unknown runtime"):
            Settings.from_mapping({"runtime": "desktop"})

    def test_bad_number(self):
        with pytest.raises(ValueError, match="Invalid configuration value"):
            Settings.from_mapping({"sync": {"interval": "often"}})

    def test_runtime_is_case_insensitive(self):
        assert Settings.from_mapping({"runtime": "WEB"}).runtime == WEB
