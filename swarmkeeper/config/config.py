"""Configuration management for swarmkeeper.

Provides centralized configuration with TOML support, validation and
hierarchical loading from defaults -> config file -> environment -> CLI.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from swarmkeeper.models import (
    Config,
    EngineConfig,
    HealthConfig,
    MetadataConfig,
    ObservabilityConfig,
    SeedingConfig,
    StatsConfig,
)
from swarmkeeper.utils.exceptions import ConfigurationError
from swarmkeeper.utils.logging_config import setup_logging

# Global configuration instance
_config_manager: ConfigManager | None = None

# Later entries win, so the namespaced variables override the bare ones.
ENV_MAPPINGS: dict[str, str] = {
    "DOWNLOAD_DIR": "seeding.download_dir",
    "TORRENT_URLS": "seeding.sources",
    "SWARMKEEPER_DOWNLOAD_DIR": "seeding.download_dir",
    "SWARMKEEPER_SOURCES": "seeding.sources",
    "SWARMKEEPER_STATS_INTERVAL": "stats.interval",
    "SWARMKEEPER_STATS_FILE": "stats.stats_file",
    "SWARMKEEPER_HEALTH_INTERVAL": "health.interval",
    "SWARMKEEPER_PEER_FLOOR": "health.peer_floor",
    "SWARMKEEPER_METADATA_TIMEOUT": "metadata.metadata_timeout",
    "SWARMKEEPER_COMPLETION_POLL_INTERVAL": "metadata.completion_poll_interval",
    "SWARMKEEPER_HTTP_TIMEOUT": "metadata.http_timeout",
    "SWARMKEEPER_LISTEN_PORT": "engine.listen_port",
    "SWARMKEEPER_ENABLE_DHT": "engine.enable_dht",
    "SWARMKEEPER_ENABLE_PEX": "engine.enable_pex",
    "SWARMKEEPER_LOG_LEVEL": "observability.log_level",
    "SWARMKEEPER_LOG_FILE": "observability.log_file",
    "SWARMKEEPER_STRUCTURED_LOGGING": "observability.structured_logging",
    "SWARMKEEPER_SHUTDOWN_GRACE": "shutdown_grace",
}

_NULLABLE_PATHS = frozenset({"metadata.metadata_timeout", "observability.log_file"})


def _parse_env_value(raw: str, path: str) -> str | None:
    # Pydantic coerces the remaining strings to the field types.
    if path in _NULLABLE_PATHS and raw.strip().lower() in {"", "none", "null"}:
        return None
    return raw


def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = d
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(
        self,
        config_file: str | Path | None = None,
        overrides: dict[str, Any] | None = None,
        configure_logging: bool = True,
    ):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for swarmkeeper.toml
            overrides: Dotted-path values applied last (command-line flags)
            configure_logging: Whether to apply the observability settings

        """
        self._explicit_file = config_file is not None
        self.config_file = self._find_config_file(config_file)
        self.overrides = overrides or {}
        self.config = self._load_config()
        if configure_logging:
            self._setup_logging()

    def _find_config_file(self, config_file: str | Path | None) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file).expanduser()

        search_paths = [
            Path.cwd() / "swarmkeeper.toml",
            Path.home() / ".config" / "swarmkeeper" / "swarmkeeper.toml",
        ]
        for path in search_paths:
            if path.exists():
                return path
        return None

    def _load_config(self) -> Config:
        """Load configuration from file, environment and overrides."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            if self.config_file.exists():
                try:
                    with open(self.config_file, encoding="utf-8") as f:
                        config_data.update(toml.load(f))
                except (OSError, toml.TomlDecodeError) as e:
                    if self._explicit_file:
                        msg = f"Failed to load config file {self.config_file}: {e}"
                        raise ConfigurationError(msg) from e
                    logging.warning(
                        "Failed to load config file %s: %s", self.config_file, e
                    )
            elif self._explicit_file:
                msg = f"Config file not found: {self.config_file}"
                raise ConfigurationError(msg)

        config_data = self._merge_config(config_data, self._get_env_config())

        cli_config: dict[str, Any] = {}
        for path, value in self.overrides.items():
            if value is not None:
                _set_nested(cli_config, path, value)
        config_data = self._merge_config(config_data, cli_config)

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}
        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))
        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)

    def export(self) -> str:
        """Export the effective configuration as TOML."""
        return toml.dumps(self.config.model_dump(mode="json", exclude_none=True))


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(
    config_file: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file, overrides)
    return _config_manager


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None, configure_logging=False)
    _config_manager.config = new_config
    _config_manager._setup_logging()  # noqa: SLF001


def reset_config() -> None:
    """Forget the global configuration (used by tests)."""
    global _config_manager
    _config_manager = None


__all__ = [
    "Config",
    "ConfigManager",
    "EngineConfig",
    "HealthConfig",
    "MetadataConfig",
    "ObservabilityConfig",
    "SeedingConfig",
    "StatsConfig",
    "get_config",
    "init_config",
    "reset_config",
    "set_config",
]
