"""Protocol for package-index backends."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Protocol

from engineshell.models import ToolchainResolution


class PackageIndex(Protocol):
    name: str

    def realise(self, attr: str, *, system: str) -> Path:
        """Build (or substitute) package *attr* and return its output path."""

    def version(self, attr: str, *, system: str) -> str:
        """Return the version string the index reports for *attr*."""

    def realise_toolchain(
        self,
        resolution: ToolchainResolution,
        *,
        profile: str,
        system: str,
    ) -> Path:
        """Realise the resolved Rust toolchain and return its output path."""


TOOLCHAIN_EXPR_TEMPLATE = textwrap.dedent("""\
    let
      pkgs = (builtins.getFlake "{nixpkgs}").legacyPackages.{system};
      rust-bin = (builtins.getFlake "{overlay}").lib.mkRustBin {{ }} pkgs;
    in
    rust-bin.{channel}."{date}".{profile}.override {{
      extensions = [ {extensions} ];
    }}
""")


def toolchain_expression(
    resolution: ToolchainResolution,
    *,
    nixpkgs_ref: str,
    overlay_ref: str,
    profile: str,
    system: str,
) -> str:
    """Nix expression selecting exactly the resolved nightly with its extensions."""
    return TOOLCHAIN_EXPR_TEMPLATE.format(
        nixpkgs=nixpkgs_ref,
        overlay=overlay_ref,
        system=system,
        channel=resolution.channel,
        date=resolution.date,
        profile=profile,
        extensions=" ".join(f'"{name}"' for name in resolution.extensions),
    )
