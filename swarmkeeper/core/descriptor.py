"""Torrent descriptor loading and cache naming."""

from __future__ import annotations

import hashlib
import posixpath
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path

import torf

from swarmkeeper.utils.exceptions import DescriptorError


@dataclass(frozen=True)
class Descriptor:
    """A validated `.torrent` file on disk."""

    path: Path
    name: str
    info_hash: bytes
    trackers: list[str] = field(default_factory=list)
    total_length: int = 0


def is_http_url(source: str) -> bool:
    """Return True for http:// and https:// locators."""
    scheme = urllib.parse.urlparse(source).scheme.lower()
    return scheme in ("http", "https")


def cache_name_for(url: str) -> str:
    """Return the cache file name for a descriptor locator.

    The name is the final path segment of the URL. Locators without one fall
    back to a name derived from the URL itself.
    """
    segment = posixpath.basename(urllib.parse.urlparse(url).path)
    segment = urllib.parse.unquote(segment)
    if segment and segment not in (".", "..") and "/" not in segment:
        return segment
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()  # nosec B324 - naming only
    return f"{digest}.torrent"


def load_descriptor(path: str | Path) -> Descriptor:
    """Read and validate a descriptor file.

    Raises:
        DescriptorError: If the file is missing, not bencoded or not valid metainfo

    """
    path = Path(path)
    try:
        torrent = torf.Torrent.read(str(path))
    except torf.TorfError as e:
        msg = f"Failed to load torrent descriptor {path}: {e}"
        raise DescriptorError(msg, {"path": str(path)}) from e

    trackers = [str(url) for tier in (torrent.trackers or []) for url in tier]
    return Descriptor(
        path=path,
        name=torrent.name or path.stem,
        info_hash=bytes.fromhex(torrent.infohash),
        trackers=trackers,
        total_length=torrent.size or 0,
    )
