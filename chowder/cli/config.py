"""Configuration management for the CLI."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from chowder.storage.factory import NATIVE, RUNTIMES
from chowder.sync.api import DEFAULT_RETRIES, DEFAULT_TIMEOUT
from chowder.sync.engine import DEFAULT_INTERVAL


class Config:
    """Configuration management for the CLI application."""

    @staticmethod
    def from_file(path: Path) -> dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ValueError(f"Error reading config file: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return data

    @staticmethod
    def get_config_paths() -> list[Path]:
        """Get the default configuration file paths to check."""
        paths = []

        # User config
        xdg_config_home = Path(
            os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        )
        paths.append(xdg_config_home / "chowder" / "config.yaml")

        # Project config
        paths.append(Path(".chowder.yaml"))
        paths.append(Path("chowder.yaml"))

        return paths

    @staticmethod
    def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
        """Merge multiple configuration dictionaries."""
        result = {}
        for config in configs:
            result = _deep_merge(result, config)
        return result


@dataclass
class Settings:
    """Typed view of the merged configuration."""

    data_dir: Path
    runtime: str = NATIVE
    api_url: str | None = None
    api_token: str | None = None
    sync_interval: float = DEFAULT_INTERVAL
    api_timeout: float = DEFAULT_TIMEOUT
    api_retries: int = DEFAULT_RETRIES

    @classmethod
    def from_mapping(cls, config: dict[str, Any]) -> "Settings":
        """Build settings from a merged configuration mapping."""
        api = config.get("api") or {}
        sync = config.get("sync") or {}

        runtime = str(config.get("runtime") or NATIVE).lower()
        if runtime not in RUNTIMES:
            raise ValueError(
                f"Unknown runtime {runtime!r}; expected one of {', '.join(RUNTIMES)}"
            )

        data_dir = config.get("data_dir")
        try:
            return cls(
                data_dir=Path(data_dir).expanduser() if data_dir else default_data_dir(),
                runtime=runtime,
                api_url=api.get("url"),
                api_token=api.get("token"),
                sync_interval=float(sync.get("interval", DEFAULT_INTERVAL)),
                api_timeout=float(api.get("timeout", DEFAULT_TIMEOUT)),
                api_retries=int(api.get("retries", DEFAULT_RETRIES)),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid configuration value: {e}") from e


def default_data_dir() -> Path:
    """Default data directory under XDG data home."""
    xdg_data_home = Path(
        os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")
    )
    return xdg_data_home / "chowder"


def get_config_paths() -> list[Path]:
    """Get configuration paths in precedence order."""
    return Config.get_config_paths()


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from files and environment variables.

    Default locations are merged first (later ones win), then an explicit
    ``path``, then environment overrides.
    """
    config: dict[str, Any] = {}

    for candidate in get_config_paths():
        if candidate.exists():
            config = Config.merge_configs(config, Config.from_file(candidate))

    if path is not None:
        config = Config.merge_configs(config, Config.from_file(path))

    # Override with environment variables
    env_overrides: dict[str, Any] = {}
    if data_dir := os.environ.get("CHOWDER_DATA_DIR"):
        env_overrides["data_dir"] = data_dir
    if runtime := os.environ.get("CHOWDER_RUNTIME"):
        env_overrides["runtime"] = runtime
    if api_url := os.environ.get("CHOWDER_API_URL"):
        env_overrides.setdefault("api", {})["url"] = api_url
    if api_token := os.environ.get("CHOWDER_API_TOKEN"):
        env_overrides.setdefault("api", {})["token"] = api_token
    if interval := os.environ.get("CHOWDER_SYNC_INTERVAL"):
        env_overrides["sync"] = {"interval": interval}

    return Config.merge_configs(config, env_overrides)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
