"""Shared utilities and infrastructure.

This module contains common utilities used throughout the application.
"""

from __future__ import annotations

from swarmkeeper.utils.exceptions import (
    AcquisitionError,
    ConfigurationError,
    SwarmkeeperError,
)
from swarmkeeper.utils.logging_config import get_logger, setup_logging
from swarmkeeper.utils.tasks import BackgroundTaskGroup

__all__ = [
    "AcquisitionError",
    "BackgroundTaskGroup",
    "ConfigurationError",
    "SwarmkeeperError",
    "get_logger",
    "setup_logging",
]
