"""Configuration loading for swarmkeeper."""

from __future__ import annotations

from swarmkeeper.config.config import (
    ConfigManager,
    get_config,
    init_config,
    reset_config,
    set_config,
)
from swarmkeeper.models import Config

__all__ = [
    "Config",
    "ConfigManager",
    "get_config",
    "init_config",
    "reset_config",
    "set_config",
]
