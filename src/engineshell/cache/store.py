"""Content-addressed store for immutable downloads such as dated channel manifests.

Each entry is a directory named by its cache key holding the payload and a
``manifest.json`` that records the inputs and the payload digest. Entries are
verified on every read.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from engineshell.cache.keys import ManifestCacheInput, _to_payload, cache_key
from engineshell.errors import ReproducibilityError

ARTIFACT_NAME = "artifact.bin"
MANIFEST_NAME = "manifest.json"


class ArtifactCacheStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def load(self, *, key: str, expected_inputs: ManifestCacheInput) -> bytes | None:
        entry = self.root / key
        if not (entry / ARTIFACT_NAME).exists() or not (entry / MANIFEST_NAME).exists():
            return None

        manifest = _read_manifest(entry / MANIFEST_NAME)
        payload = (entry / ARTIFACT_NAME).read_bytes()
        expected = {
            "key": key,
            "inputs": _to_payload(expected_inputs),
            "artifact_sha256": hashlib.sha256(payload).hexdigest(),
        }
        for name, value in expected.items():
            if manifest.get(name) != value:
                raise ReproducibilityError(
                    f"Cache entry `{name}` does not match.",
                    hint="Delete the cache entry and refetch.",
                    context={"operation": "cache_load", "key": key, "path": str(entry)},
                )
        return payload

    def save(self, *, inputs: ManifestCacheInput, artifact: bytes) -> str:
        key = cache_key(inputs)
        entry = self.root / key
        entry.mkdir(parents=True, exist_ok=True)
        manifest = {
            "key": key,
            "inputs": _to_payload(inputs),
            "artifact_sha256": hashlib.sha256(artifact).hexdigest(),
        }
        # Payload first: a manifest without its payload reads as a miss.
        _replace(entry / ARTIFACT_NAME, artifact)
        encoded = json.dumps(manifest, indent=2, sort_keys=True) + "\n"
        _replace(entry / MANIFEST_NAME, encoded.encode("utf-8"))
        return key

    def fetch(
        self,
        inputs: ManifestCacheInput,
        download: Callable[[], bytes | None],
    ) -> bytes | None:
        """Return the cached payload for *inputs*, calling *download* on a miss."""
        cached = self.load(key=cache_key(inputs), expected_inputs=inputs)
        if cached is not None:
            return cached
        payload = download()
        if payload is not None:
            self.save(inputs=inputs, artifact=payload)
        return payload


def _read_manifest(path: Path) -> dict[str, Any]:
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        parsed = None
    if not isinstance(parsed, dict):
        raise ReproducibilityError(
            "Cache manifest is unreadable.",
            hint="Delete the cache entry and refetch.",
            context={"operation": "cache_load", "path": str(path)},
        )
    return parsed


def _replace(path: Path, data: bytes) -> None:
    staging = path.with_name(f".{path.name}.tmp")
    staging.write_bytes(data)
    os.replace(staging, path)
