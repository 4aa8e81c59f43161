import json
from pathlib import Path

import pytest

from engineshell.cache import ArtifactCacheStore, ManifestCacheInput, cache_key, default_cache_dir
from engineshell.errors import ReproducibilityError


def test_cache_key_includes_all_canonical_inputs() -> None:
    base = ManifestCacheInput(channel="nightly", date="2024-10-01", dist_url="https://dist")
    other_date = ManifestCacheInput(channel="nightly", date="2024-10-02", dist_url="https://dist")
    trailing_slash = ManifestCacheInput(
        channel="nightly",
        date="2024-10-01",
        dist_url="https://dist/",
    )

    assert cache_key(base) != cache_key(other_date)
    assert cache_key(base) == cache_key(trailing_slash)


def test_cache_roundtrip_and_miss(tmp_path: Path) -> None:
    store = ArtifactCacheStore(tmp_path / "cache")
    inputs = ManifestCacheInput(channel="nightly", date="2024-10-01", dist_url="https://dist")

    assert store.load(key=cache_key(inputs), expected_inputs=inputs) is None
    key = store.save(inputs=inputs, artifact=b"payload")

    assert store.load(key=key, expected_inputs=inputs) == b"payload"


def test_cache_manifest_verification_detects_mismatch(tmp_path: Path) -> None:
    store = ArtifactCacheStore(tmp_path / "cache")
    inputs = ManifestCacheInput(channel="nightly", date="2024-10-01", dist_url="https://dist")
    key = store.save(inputs=inputs, artifact=b"payload")

    manifest_path = tmp_path / "cache" / key / "manifest.json"
    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    manifest["inputs"]["channel"] = "beta"
    manifest_path.write_text(json.dumps(manifest), encoding="utf-8")

    with pytest.raises(ReproducibilityError):
        store.load(key=key, expected_inputs=inputs)


def test_cache_detects_tampered_artifact(tmp_path: Path) -> None:
    store = ArtifactCacheStore(tmp_path / "cache")
    inputs = ManifestCacheInput(channel="nightly", date="2024-10-01", dist_url="https://dist")
    key = store.save(inputs=inputs, artifact=b"payload")

    (tmp_path / "cache" / key / "artifact.bin").write_bytes(b"tampered")

    with pytest.raises(ReproducibilityError):
        store.load(key=key, expected_inputs=inputs)


def test_default_cache_dir_honours_environment(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("ENGINESHELL_CACHE_DIR", raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg"))
    assert default_cache_dir() == tmp_path / "xdg" / "engineshell"

    monkeypatch.setenv("ENGINESHELL_CACHE_DIR", str(tmp_path / "explicit"))
    assert default_cache_dir() == tmp_path / "explicit"


def test_cache_fetch_downloads_only_on_miss(tmp_path: Path) -> None:
    store = ArtifactCacheStore(tmp_path / "cache")
    inputs = ManifestCacheInput(channel="nightly", date="2024-10-01", dist_url="https://dist")
    calls: list[str] = []

    def download() -> bytes:
        calls.append(inputs.date)
        return b"payload"

    assert store.fetch(inputs, download) == b"payload"
    assert store.fetch(inputs, download) == b"payload"
    assert calls == ["2024-10-01"]


def test_cache_fetch_does_not_store_unpublished_dates(tmp_path: Path) -> None:
    store = ArtifactCacheStore(tmp_path / "cache")
    inputs = ManifestCacheInput(channel="nightly", date="2024-10-02", dist_url="https://dist")

    assert store.fetch(inputs, lambda: None) is None
    assert store.load(key=cache_key(inputs), expected_inputs=inputs) is None
