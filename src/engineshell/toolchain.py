"""Rust toolchain resolution against dated channel manifests.

A nightly is selected the way rust-overlay's ``selectLatestNightlyWith``
does it: walk backwards from the newest date and take the first nightly in
which every component of the requested profile, plus every requested
extension, is available for the host target.
"""

from __future__ import annotations

import datetime as dt
import tomllib
import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import urlopen

from engineshell.cache import ArtifactCacheStore, ManifestCacheInput
from engineshell.errors import ResolutionError, ValidationError
from engineshell.models import ToolchainRequest, ToolchainResolution
from engineshell.platforms import rust_target
from engineshell.policy import Policy, ensure_network_allowed, ensure_toolchain_pinned

DIST_URL = "https://static.rust-lang.org/dist"


class UnpinnedToolchainWarning(UserWarning):
    """Warning raised when the toolchain tracks the latest nightly."""


class ManifestSource(Protocol):
    def load(self, channel: str, date: str) -> Mapping[str, Any] | None:
        """Return the parsed channel manifest for *date*, or None if none was published."""


@dataclass(slots=True)
class HttpManifestSource:
    """Fetches ``channel-rust-<channel>.toml`` from the dist server, with caching."""

    dist_url: str = DIST_URL
    cache: ArtifactCacheStore | None = None
    policy: Policy | None = None

    def load(self, channel: str, date: str) -> Mapping[str, Any] | None:
        if self.cache is None:
            payload = self._download(channel, date)
        else:
            inputs = ManifestCacheInput(channel=channel, date=date, dist_url=self.dist_url)
            payload = self.cache.fetch(inputs, lambda: self._download(channel, date))
        if payload is None:
            return None
        return _parse_channel_manifest(payload, date=date)

    def _download(self, channel: str, date: str) -> bytes | None:
        if self.policy is not None:
            ensure_network_allowed(policy=self.policy, operation="fetch_toolchain_manifest")
        url = f"{self.dist_url.rstrip('/')}/{date}/channel-rust-{channel}.toml"
        try:
            with urlopen(url) as response:  # noqa: S310 - fixed https dist endpoint
                return response.read()
        except HTTPError as exc:
            # Nightlies are not published every day.
            if exc.code == 404:
                return None
            raise ResolutionError(
                "Failed to fetch toolchain channel manifest.",
                hint="Check network access to the Rust dist server.",
                context={"operation": "resolve_toolchain", "url": url, "status": str(exc.code)},
            ) from exc
        except URLError as exc:
            raise ResolutionError(
                "Rust dist server is unreachable.",
                hint="Check network access, or pin toolchain.date to a cached build.",
                context={"operation": "resolve_toolchain", "url": url, "reason": str(exc.reason)},
            ) from exc


@dataclass(slots=True)
class StaticManifestSource:
    """In-memory manifests keyed by date, for offline use and tests."""

    manifests: dict[str, Mapping[str, Any]] = field(default_factory=dict)
    requested: list[str] = field(default_factory=list)

    def load(self, channel: str, date: str) -> Mapping[str, Any] | None:
        self.requested.append(date)
        return self.manifests.get(date)


def resolve_toolchain(
    request: ToolchainRequest,
    *,
    system: str,
    source: ManifestSource,
    today: dt.date | None = None,
    policy: Policy | None = None,
) -> ToolchainResolution:
    target = rust_target(system)
    if policy is not None:
        ensure_toolchain_pinned(policy=policy, date=request.date)

    if request.date is not None:
        start = _parse_date(request.date)
        candidates = [start]
    else:
        warnings.warn(
            f"Toolchain tracks the latest {request.channel} build; "
            "pin toolchain.date for a reproducible shell.",
            UnpinnedToolchainWarning,
            stacklevel=2,
        )
        start = today or dt.datetime.now(dt.UTC).date()
        candidates = [start - dt.timedelta(days=offset) for offset in range(request.search_days)]

    for candidate in candidates:
        date = candidate.isoformat()
        manifest = source.load(request.channel, date)
        if manifest is None:
            continue
        components = _available_components(manifest, request=request, target=target)
        if components is None:
            continue
        return ToolchainResolution(
            channel=request.channel,
            date=date,
            version=_rustc_version(manifest),
            target=target,
            components=components,
            extensions=request.extensions,
            pinned=request.date is not None,
        )

    raise ResolutionError(
        "No toolchain build matches the requested profile and extensions.",
        hint="Pin an older toolchain.date or drop an unavailable extension.",
        context={
            "operation": "resolve_toolchain",
            "channel": request.channel,
            "profile": request.profile,
            "extensions": ",".join(request.extensions),
            "target": target,
            "newest": candidates[0].isoformat(),
            "oldest": candidates[-1].isoformat(),
        },
    )


def _available_components(
    manifest: Mapping[str, Any],
    *,
    request: ToolchainRequest,
    target: str,
) -> tuple[str, ...] | None:
    profiles = manifest.get("profiles", {})
    profile_components = profiles.get(request.profile)
    if not isinstance(profile_components, list):
        return None
    wanted = [*profile_components, *request.extensions]
    renames = manifest.get("renames", {})
    packages = manifest.get("pkg", {})
    for name in wanted:
        package_name = renames.get(name, {}).get("to", name)
        targets = packages.get(package_name, {}).get("target", {})
        entry = targets.get(target) or targets.get("*")
        if not entry or not entry.get("available", False):
            return None
    return tuple(dict.fromkeys(wanted))


def _rustc_version(manifest: Mapping[str, Any]) -> str:
    version = manifest.get("pkg", {}).get("rustc", {}).get("version")
    if not isinstance(version, str) or not version:
        raise ResolutionError(
            "Channel manifest does not report a rustc version.",
            context={"operation": "resolve_toolchain", "date": str(manifest.get("date", ""))},
        )
    return version


def _parse_channel_manifest(payload: bytes, *, date: str) -> Mapping[str, Any]:
    try:
        return tomllib.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ResolutionError(
            "Channel manifest is not valid TOML.",
            context={"operation": "resolve_toolchain", "date": date},
        ) from exc


def _parse_date(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(
            "toolchain.date must be a YYYY-MM-DD date.",
            context={"date": value},
        ) from exc
