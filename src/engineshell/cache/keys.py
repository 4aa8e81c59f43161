"""Cache key derivation."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ManifestCacheInput:
    """Identity of one dated toolchain channel manifest."""

    channel: str
    date: str
    dist_url: str


def cache_key(inputs: ManifestCacheInput) -> str:
    canonical = json.dumps(_to_payload(inputs), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _to_payload(inputs: ManifestCacheInput) -> dict[str, Any]:
    return {
        "channel": inputs.channel,
        "date": inputs.date,
        "dist_url": inputs.dist_url.rstrip("/"),
    }
