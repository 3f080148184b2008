"""Source parsing: magnet links and torrent descriptors."""

from __future__ import annotations

from swarmkeeper.core.descriptor import (
    Descriptor,
    cache_name_for,
    is_http_url,
    load_descriptor,
)
from swarmkeeper.core.magnet import MagnetInfo, is_magnet, parse_magnet

__all__ = [
    "Descriptor",
    "MagnetInfo",
    "cache_name_for",
    "is_http_url",
    "is_magnet",
    "load_descriptor",
    "parse_magnet",
]
