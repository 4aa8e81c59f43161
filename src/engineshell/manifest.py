"""Manifest (``engineshell.toml``) loading and validation."""

from __future__ import annotations

import dataclasses
import tomllib
from pathlib import Path
from typing import Any

from engineshell.errors import ValidationError
from engineshell.models import PinnedSource, ShellManifest, ShellSpec, ToolchainRequest
from engineshell.presets import variant_defaults
from engineshell.sources import parse_source_url

DEFAULT_MANIFEST = "engineshell.toml"

_SHELL_KEYS = {
    "variant": "variant",
    "index-input": "index_input",
    "overlay-input": "overlay_input",
    "engine-input": "engine_input",
    "tools": "tools",
    "engine-attr": "engine_attr",
    "engine-subdir": "engine_subdir",
    "version-attr": "version_attr",
    "libclang-attr": "libclang_attr",
    "header": "header",
    "drift-check": "drift_check",
    "formatter-attr": "formatter_attr",
}


def load_manifest(path: str | Path) -> ShellManifest:
    manifest_path = Path(path)
    try:
        raw = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ValidationError(
            "Manifest does not exist.",
            hint="Run `engineshell init` to create one.",
            context={"path": str(manifest_path)},
        ) from exc
    return parse_manifest(raw, source=str(manifest_path))


def parse_manifest(raw: str, *, source: str = DEFAULT_MANIFEST) -> ShellManifest:
    try:
        payload = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ValidationError(
            "Invalid manifest TOML.",
            hint=str(exc),
            context={"path": source},
        ) from exc

    inputs = _parse_inputs(payload.get("inputs", {}))
    toolchain = _parse_toolchain(payload.get("toolchain", {}))
    shell = _parse_shell(payload.get("shell", {}))
    manifest = ShellManifest(inputs=inputs, toolchain=toolchain, shell=shell)
    validate_manifest(manifest)
    return manifest


def validate_manifest(manifest: ShellManifest) -> None:
    shell = manifest.shell
    for role, name in (("index", shell.index_input), ("overlay", shell.overlay_input)):
        if name not in manifest.inputs:
            raise ValidationError(
                f"The {role} input `{name}` is not declared.",
                hint=f"Add an [inputs.{name}] table to the manifest.",
            )
    for name, source in manifest.inputs.items():
        for child, target in source.follows.items():
            if target.split("/")[0] not in manifest.inputs:
                raise ValidationError(
                    "Input follows an undeclared input.",
                    context={"input": name, "follows": f"{child} -> {target}"},
                )

    if shell.engine_input is None:
        if shell.header is not None or shell.drift_check:
            raise ValidationError(
                "Header vendoring and drift checks need an engine source input.",
                hint="Set shell.engine-input to the pinned engine input name.",
            )
        return
    engine = manifest.inputs.get(shell.engine_input)
    if engine is None:
        raise ValidationError(
            f"The engine input `{shell.engine_input}` is not declared.",
            hint=f"Add an [inputs.{shell.engine_input}] table with flake = false.",
        )
    if engine.flake:
        raise ValidationError(
            "The engine source input must be a plain checkout.",
            hint="Set flake = false on the engine input.",
            context={"input": engine.name},
        )


def _parse_inputs(raw: Any) -> dict[str, PinnedSource]:
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("Manifest must declare at least one [inputs.<name>] table.")
    inputs: dict[str, PinnedSource] = {}
    for name, table in raw.items():
        if not isinstance(table, dict):
            raise ValidationError("Input declarations must be tables.", context={"input": name})
        url = table.get("url")
        if not isinstance(url, str):
            raise ValidationError("Input requires a `url` string.", context={"input": name})
        parse_source_url(url)
        flake = table.get("flake", True)
        follows = table.get("follows", {})
        if not isinstance(flake, bool):
            raise ValidationError("Input `flake` must be a boolean.", context={"input": name})
        if not isinstance(follows, dict) or not all(
            isinstance(value, str) for value in follows.values()
        ):
            raise ValidationError(
                "Input `follows` must map names to input names.",
                context={"input": name},
            )
        inputs[name] = PinnedSource(name=name, url=url, flake=flake, follows=dict(follows))
    return inputs


def _parse_toolchain(raw: Any) -> ToolchainRequest:
    if not isinstance(raw, dict):
        raise ValidationError("[toolchain] must be a table.")
    defaults = ToolchainRequest()
    extensions = raw.get("extensions", list(defaults.extensions))
    if not isinstance(extensions, list) or not all(isinstance(item, str) for item in extensions):
        raise ValidationError("toolchain.extensions must be a list of strings.")
    date = raw.get("date")
    if date is not None and not isinstance(date, str):
        # TOML parses bare dates into datetime.date.
        date = date.isoformat() if hasattr(date, "isoformat") else None
        if date is None:
            raise ValidationError("toolchain.date must be a YYYY-MM-DD date.")
    search_days = raw.get("search-days", defaults.search_days)
    if not isinstance(search_days, int) or search_days < 1:
        raise ValidationError("toolchain.search-days must be a positive integer.")
    return ToolchainRequest(
        channel=str(raw.get("channel", defaults.channel)),
        profile=str(raw.get("profile", defaults.profile)),
        extensions=tuple(extensions),
        date=date,
        search_days=search_days,
    )


def _parse_shell(raw: Any) -> ShellSpec:
    if not isinstance(raw, dict):
        raise ValidationError("[shell] must be a table.")
    unknown = sorted(set(raw) - set(_SHELL_KEYS))
    if unknown:
        raise ValidationError(
            "Unknown [shell] keys.",
            context={"keys": ",".join(unknown)},
        )
    defaults = variant_defaults(str(raw.get("variant", "packaged")))
    overrides: dict[str, Any] = {}
    for key, value in raw.items():
        field_name = _SHELL_KEYS[key]
        if field_name == "tools":
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ValidationError("shell.tools must be a list of package names.")
            value = tuple(value)
        overrides[field_name] = value
    return dataclasses.replace(defaults, **overrides)
