"""Core typed dataclasses for manifests, resolutions and provisioned shells."""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import cbor2

ShellVariant = Literal["packaged", "pinned"]
SourceKind = Literal["github", "git", "path"]

DEFAULT_EXTENSIONS = ("rust-analyzer", "rust-src")
EMBEDDER_HEADER_PATH = "shell/platform/embedder/embedder.h"
ENGINE_LIBRARY = "libflutter_engine.so"


@dataclass(frozen=True, slots=True)
class PinnedSource:
    """A declared input: flake-style location plus how it is consumed."""

    name: str
    url: str
    flake: bool = True
    follows: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolchainRequest:
    channel: str = "nightly"
    profile: str = "default"
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    date: str | None = None
    search_days: int = 60


@dataclass(frozen=True, slots=True)
class ToolchainResolution:
    channel: str
    date: str
    version: str
    target: str
    components: tuple[str, ...]
    extensions: tuple[str, ...] = ()
    pinned: bool = False


@dataclass(frozen=True, slots=True)
class ShellSpec:
    variant: ShellVariant = "packaged"
    index_input: str = "nixpkgs"
    overlay_input: str = "rust-overlay"
    engine_input: str | None = None
    tools: tuple[str, ...] = ()
    engine_attr: str = "flutterPackages-source.stable.engine"
    engine_subdir: str = ""
    version_attr: str = "flutter"
    libclang_attr: str = "llvmPackages.libclang.lib"
    header: str | None = None
    drift_check: bool = False
    formatter_attr: str = "nixfmt-rfc-style"


@dataclass(frozen=True, slots=True)
class ShellManifest:
    inputs: Mapping[str, PinnedSource]
    toolchain: ToolchainRequest = field(default_factory=ToolchainRequest)
    shell: ShellSpec = field(default_factory=ShellSpec)

    def input(self, name: str) -> PinnedSource | None:
        return self.inputs.get(name)


@dataclass(frozen=True, slots=True)
class ProvisionedShell:
    """Tools and environment bindings for one development session."""

    system: str
    toolchain: ToolchainResolution
    tools: Mapping[str, Path]
    env: Mapping[str, str]
    header_path: Path | None = None

    @property
    def path_entries(self) -> tuple[str, ...]:
        return tuple(str(path / "bin") for _, path in sorted(self.tools.items()))

    def environ(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return *base* (default: process env) with the shell bindings applied."""
        merged = dict(os.environ if base is None else base)
        merged.update(self.env)
        existing = merged.get("PATH", "")
        merged["PATH"] = os.pathsep.join([*self.path_entries, *([existing] if existing else [])])
        return merged

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self) -> bytes:
        return cbor2.dumps(self._payload(), canonical=True)

    def fingerprint(self) -> str:
        return hashlib.sha256(self.to_cbor()).hexdigest()

    def _payload(self) -> dict[str, object]:
        return {
            "system": self.system,
            "toolchain": {
                "channel": self.toolchain.channel,
                "date": self.toolchain.date,
                "version": self.toolchain.version,
                "target": self.toolchain.target,
                "components": list(self.toolchain.components),
            },
            "tools": {name: str(path) for name, path in sorted(self.tools.items())},
            "env": dict(sorted(self.env.items())),
            "header": str(self.header_path) if self.header_path is not None else None,
        }
