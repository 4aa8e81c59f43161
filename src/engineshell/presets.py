"""The two shell variants and their starter manifests."""

from __future__ import annotations

import textwrap
from pathlib import Path

from engineshell.errors import ValidationError
from engineshell.models import ShellSpec, ShellVariant

VARIANT_DEFAULTS: dict[ShellVariant, ShellSpec] = {
    # Engine comes from the package index; no vendored header.
    "packaged": ShellSpec(
        variant="packaged",
        engine_attr="flutterPackages-source.stable.engine",
    ),
    # Engine source pinned at a tag; header vendored and drift-checked.
    "pinned": ShellSpec(
        variant="pinned",
        engine_input="flutter-engine",
        tools=("cargo-watch", "cargo-expand", "rust-bindgen"),
        engine_attr="flutter.engine",
        engine_subdir="out/host_release",
        header="embedder.h",
        drift_check=True,
    ),
}

MANIFEST_TEMPLATES: dict[ShellVariant, str] = {
    "packaged": textwrap.dedent("""\
        [inputs.nixpkgs]
        url = "github:nixos/nixpkgs/nixos-unstable"

        [inputs.rust-overlay]
        url = "github:oxalica/rust-overlay"
        follows = { nixpkgs = "nixpkgs" }

        [toolchain]
        channel = "nightly"
        profile = "default"
        extensions = ["rust-analyzer", "rust-src"]

        [shell]
        variant = "packaged"
    """),
    "pinned": textwrap.dedent("""\
        [inputs.nixpkgs]
        url = "github:nixos/nixpkgs/nixos-unstable"

        [inputs.rust-overlay]
        url = "github:oxalica/rust-overlay"
        follows = { nixpkgs = "nixpkgs" }

        [inputs.flutter-engine]
        url = "github:flutter/engine/{engine_ref}"
        flake = false

        [toolchain]
        channel = "nightly"
        profile = "default"
        extensions = ["rust-analyzer", "rust-src"]

        [shell]
        variant = "pinned"
        engine-input = "flutter-engine"
        tools = ["cargo-watch", "cargo-expand", "rust-bindgen"]
    """),
}


def variant_defaults(variant: str) -> ShellSpec:
    try:
        return VARIANT_DEFAULTS[variant]  # type: ignore[index]
    except KeyError:
        raise ValidationError(
            f"Unknown shell variant: {variant}",
            hint="Use one of: " + ", ".join(sorted(VARIANT_DEFAULTS)),
        ) from None


def write_manifest_template(
    path: str | Path,
    *,
    variant: ShellVariant,
    engine_ref: str = "3.24.0",
    force: bool = False,
) -> Path:
    manifest_path = Path(path)
    if manifest_path.exists() and not force:
        raise ValidationError(
            "Manifest already exists.",
            hint="Pass --force to overwrite it.",
            context={"path": str(manifest_path)},
        )
    variant_defaults(variant)
    content = MANIFEST_TEMPLATES[variant].replace("{engine_ref}", engine_ref)
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    manifest_path.write_text(content, encoding="utf-8")
    return manifest_path
