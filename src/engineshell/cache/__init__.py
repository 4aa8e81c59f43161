"""Content-addressed cache APIs."""

import os
from pathlib import Path

from .keys import ManifestCacheInput, cache_key
from .store import ArtifactCacheStore


def default_cache_dir() -> Path:
    override = os.environ.get("ENGINESHELL_CACHE_DIR")
    if override:
        return Path(override)
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / "engineshell"


__all__ = ["ArtifactCacheStore", "ManifestCacheInput", "cache_key", "default_cache_dir"]
