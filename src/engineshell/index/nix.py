"""Nix-backed package index.

Every lookup is evaluated against the locked nixpkgs revision, so the same
lockfile always yields the same store paths.  The Rust toolchain is built
from the locked rust-overlay via ``nix build --impure --expr``.

This backend requires:
- Linux host
- ``nix`` available in PATH
"""

from __future__ import annotations

import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path

from engineshell.errors import BackendExecutionError
from engineshell.index.base import toolchain_expression
from engineshell.models import ToolchainResolution

NIX_FEATURES = ("--extra-experimental-features", "nix-command flakes")


@dataclass(slots=True)
class NixPackageIndex:
    nixpkgs_ref: str
    overlay_ref: str
    name: str = "nix"
    nix_args: list[str] = field(default_factory=list)

    def realise(self, attr: str, *, system: str) -> Path:
        installable = f"{self.nixpkgs_ref}#legacyPackages.{system}.{attr}"
        output = self._run(
            ["build", "--no-link", "--print-out-paths", installable],
            operation="realise",
            attr=attr,
        )
        return Path(output.splitlines()[0])

    def version(self, attr: str, *, system: str) -> str:
        installable = f"{self.nixpkgs_ref}#legacyPackages.{system}.{attr}.version"
        return self._run(["eval", "--raw", installable], operation="version", attr=attr)

    def realise_toolchain(
        self,
        resolution: ToolchainResolution,
        *,
        profile: str,
        system: str,
    ) -> Path:
        expression = toolchain_expression(
            resolution,
            nixpkgs_ref=self.nixpkgs_ref,
            overlay_ref=self.overlay_ref,
            profile=profile,
            system=system,
        )
        output = self._run(
            ["build", "--no-link", "--print-out-paths", "--impure", "--expr", expression],
            operation="realise_toolchain",
            attr=f"rust-bin.{resolution.channel}.{resolution.date}",
        )
        return Path(output.splitlines()[0])

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self, argv: list[str], *, operation: str, attr: str) -> str:
        self._ensure_prerequisites()
        cmd = ["nix", *NIX_FEATURES, *argv, *self.nix_args]
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0 or not result.stdout.strip():
            raise BackendExecutionError(
                "nix evaluation failed.",
                hint="Check the locked inputs and the nix output for details.",
                context={
                    "backend": self.name,
                    "operation": operation,
                    "attr": attr,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr[-2000:] if result.stderr else "",
                },
            )
        return result.stdout.strip()

    def _ensure_prerequisites(self) -> None:
        if not sys.platform.startswith("linux"):
            raise BackendExecutionError(
                "The nix package index requires a Linux host.",
                context={"backend": self.name, "operation": "prepare"},
            )
        if shutil.which("nix") is None:
            raise BackendExecutionError(
                "The nix package index requires `nix` in PATH.",
                hint="Install Nix: https://nixos.org/download.html",
                context={"backend": self.name, "operation": "prepare"},
            )
