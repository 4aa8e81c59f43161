"""In-process package index for testing and development.

Produces deterministic placeholder package directories without invoking
``nix``.  Paths depend only on the system and attribute, so repeated
resolutions yield identical bindings.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path

from engineshell.errors import BackendExecutionError
from engineshell.models import ENGINE_LIBRARY, ToolchainResolution

TOOLCHAIN_BINARIES = ("cargo", "rustc", "rustfmt", "rust-analyzer")


@dataclass(slots=True)
class InProcessPackageIndex:
    root: Path
    versions: dict[str, str] = field(default_factory=dict)
    name: str = "inprocess"
    realised: list[str] = field(default_factory=list)

    def realise(self, attr: str, *, system: str) -> Path:
        self.realised.append(attr)
        out = self._store_path(f"{system}:{attr}", attr)
        (out / "bin").mkdir(parents=True, exist_ok=True)
        (out / "lib").mkdir(exist_ok=True)
        program = attr.split(".")[-1]
        _write_script(out / "bin" / program, f"# {attr}")
        if attr.endswith("engine"):
            for library_dir in (out, out / "out" / "host_release"):
                library_dir.mkdir(parents=True, exist_ok=True)
                (library_dir / ENGINE_LIBRARY).write_bytes(b"\x7fELF placeholder\n")
        return out

    def version(self, attr: str, *, system: str) -> str:
        try:
            return self.versions[attr]
        except KeyError:
            raise BackendExecutionError(
                "Package has no version in the in-process index.",
                context={"backend": self.name, "operation": "version", "attr": attr},
            ) from None

    def realise_toolchain(
        self,
        resolution: ToolchainResolution,
        *,
        profile: str,
        system: str,
    ) -> Path:
        label = f"rust-{resolution.channel}-{resolution.date}-{profile}"
        self.realised.append(label)
        out = self._store_path(f"{system}:{label}:{','.join(resolution.components)}", label)
        (out / "bin").mkdir(parents=True, exist_ok=True)
        for binary in TOOLCHAIN_BINARIES:
            _write_script(out / "bin" / binary, f"echo '{resolution.version}'")
        return out

    def _store_path(self, identity: str, label: str) -> Path:
        digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()[:32]
        out = self.root / f"{digest}-{label}"
        out.mkdir(parents=True, exist_ok=True)
        return out


def _write_script(path: Path, body: str) -> None:
    path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    path.chmod(0o755)
