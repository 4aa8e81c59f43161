"""Environment provisioner: pinned sources in, development shell out."""

from __future__ import annotations

import datetime as dt
import json
import os
import shlex
import subprocess
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from .cache import ArtifactCacheStore, default_cache_dir
from .drift import DriftReport, check_engine_drift, emit_drift_warning
from .engine import check_engine_library, copy_embedder_header
from .errors import LockfileError, ValidationError
from .fetch import fetch_git
from .graph import SHELL_NODE, build_graph, input_node
from .index import NixPackageIndex, PackageIndex
from .lockfile import (
    LockedInput,
    Lockfile,
    build_lockfile,
    lockfile_digest,
    missing_inputs,
    read_lockfile,
    write_lockfile,
)
from .models import ProvisionedShell, ShellManifest, ToolchainResolution
from .observability import StructuredLogger
from .platforms import current_system, ensure_supported
from .policy import Policy
from .toolchain import HttpManifestSource, ManifestSource, resolve_toolchain

LIBCLANG_PATH = "LIBCLANG_PATH"
FLUTTER_ENGINE = "FLUTTER_ENGINE"
DEFAULT_LOCKFILE = "flake.lock"


@dataclass(frozen=True, slots=True)
class ProvisionResult:
    shell: ProvisionedShell
    lock_digest: str
    drift: DriftReport | None = None


@dataclass(slots=True)
class Provisioner:
    """Resolves a manifest's pinned sources into a :class:`ProvisionedShell`."""

    manifest: ShellManifest
    workdir: Path = field(default_factory=Path.cwd)
    lockfile_path: Path | None = None
    cache_dir: Path = field(default_factory=default_cache_dir)
    system: str | None = None
    index: PackageIndex | None = None
    manifest_source: ManifestSource | None = None
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    console: Console = field(default_factory=lambda: Console(stderr=True))
    frozen: bool = False
    today: dt.date | None = None

    def __post_init__(self) -> None:
        self.workdir = Path(self.workdir)
        if self.lockfile_path is None:
            self.lockfile_path = self.workdir / DEFAULT_LOCKFILE
        self.cache_dir = Path(self.cache_dir)

    # ------------------------------------------------------------------
    # Lockfile
    # ------------------------------------------------------------------

    def lock(self, *, update: Collection[str] = ()) -> Path:
        """Pin every input, re-resolving the names in *update*."""
        existing = self._read_existing_lock()
        lockfile = build_lockfile(
            self.manifest,
            existing=existing,
            update=update,
            policy=self.policy,
        )
        path = write_lockfile(lockfile, self._lock_path())
        self.logger.log(
            operation="lock",
            system=None,
            node=None,
            message="Wrote lockfile.",
            extra={"path": str(path), "updated": sorted(update)},
        )
        return path

    def load_lock(self) -> Lockfile:
        """Read the lockfile, locking new or changed inputs unless frozen."""
        existing = self._read_existing_lock()
        missing = missing_inputs(self.manifest, existing)
        if not missing and existing is not None:
            return existing
        if self.frozen:
            raise LockfileError(
                "Lockfile is stale for the declared inputs.",
                hint="Run `engineshell lock` and commit the updated lockfile.",
                context={
                    "operation": "provision",
                    "mode": "frozen",
                    "inputs": ",".join(missing),
                    "path": str(self._lock_path()),
                },
            )
        self.lock()
        return read_lockfile(self._lock_path())

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def provision(self) -> ProvisionResult:
        lockfile = self.load_lock()
        system = ensure_supported(self.system or current_system())
        index = self.index or self._nix_index(lockfile)
        shell_spec = self.manifest.shell

        state: dict[str, Any] = {}
        env: dict[str, str] = {}
        drift: DriftReport | None = None
        for node in build_graph(self.manifest).order():
            if node.startswith("input:"):
                state[node] = self._resolve_input(node.removeprefix("input:"), lockfile, system)
            elif node == "toolchain":
                state[node] = self._resolve_toolchain(index, system)
            elif node == "libclang":
                libclang = index.realise(shell_spec.libclang_attr, system=system) / "lib"
                env[LIBCLANG_PATH] = str(libclang)
                self._log("resolve", system, node, "Resolved libclang.", path=str(libclang))
            elif node == "engine":
                engine_dir = self._resolve_engine(index, system)
                env[FLUTTER_ENGINE] = str(engine_dir)
            elif node == "tools":
                state[node] = {
                    tool: index.realise(tool, system=system) for tool in shell_spec.tools
                }
                self._log("resolve", system, node, "Resolved tools.", tools=list(shell_spec.tools))
            elif node == "header" and shell_spec.engine_input and shell_spec.header:
                source_root = state[input_node(shell_spec.engine_input)]
                state[node] = copy_embedder_header(source_root, self.workdir / shell_spec.header)
                self._log("copy_header", system, node, "Copied embedder header.")
            elif node == "drift":
                drift = self._check_drift(index, lockfile, system)
            elif node == SHELL_NODE:
                toolchain, toolchain_path = state["toolchain"]
                tools = {"rust-toolchain": toolchain_path, **state["tools"]}
                state[node] = ProvisionedShell(
                    system=system,
                    toolchain=toolchain,
                    tools=tools,
                    env=env,
                    header_path=state.get("header"),
                )

        shell: ProvisionedShell = state[SHELL_NODE]
        self._log(
            "provision",
            system,
            SHELL_NODE,
            "Provisioned shell.",
            fingerprint=shell.fingerprint(),
        )
        return ProvisionResult(shell=shell, lock_digest=lockfile_digest(lockfile), drift=drift)

    def check_drift(self) -> DriftReport | None:
        """Run only the engine version consistency check."""
        engine_input = self.manifest.shell.engine_input
        if engine_input is None:
            raise ValidationError(
                "Drift checks need an engine source input.",
                hint="Use the pinned shell variant.",
            )
        lockfile = self.load_lock()
        system = ensure_supported(self.system or current_system())
        index = self.index or self._nix_index(lockfile)
        return self._check_drift(index, lockfile, system)

    def write_report(self, result: ProvisionResult, path: str | Path) -> Path:
        report_path = Path(path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        shell = result.shell
        payload = {
            "system": shell.system,
            "fingerprint": shell.fingerprint(),
            "lock_digest": result.lock_digest,
            "env": dict(sorted(shell.env.items())),
            "tools": {name: str(tool) for name, tool in sorted(shell.tools.items())},
            "toolchain": {
                "date": shell.toolchain.date,
                "version": shell.toolchain.version,
                "pinned": shell.toolchain.pinned,
            },
            "drift": (
                {
                    "input": result.drift.input_name,
                    "locked_ref": result.drift.locked_ref,
                    "package_version": result.drift.package_version,
                }
                if result.drift is not None
                else None
            ),
            "logs": self.logger.to_dicts(),
        }
        report_path.write_text(
            json.dumps(payload, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return report_path

    def format_files(self, paths: Sequence[str]) -> int:
        """Run the index's formatter over *paths* and return its exit code."""
        lockfile = self.load_lock()
        system = ensure_supported(self.system or current_system())
        index = self.index or self._nix_index(lockfile)
        formatter = index.realise(self.manifest.shell.formatter_attr, system=system)
        completed = subprocess.run(
            [str(formatter / "bin" / "nixfmt"), *paths],
            cwd=self.workdir,
            check=False,
        )
        return completed.returncode

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _lock_path(self) -> Path:
        return self.lockfile_path or self.workdir / DEFAULT_LOCKFILE

    def _read_existing_lock(self) -> Lockfile | None:
        if not self._lock_path().exists():
            return None
        return read_lockfile(self._lock_path())

    def _nix_index(self, lockfile: Lockfile) -> NixPackageIndex:
        shell = self.manifest.shell
        return NixPackageIndex(
            nixpkgs_ref=self._locked(lockfile, shell.index_input).flake_ref(),
            overlay_ref=self._locked(lockfile, shell.overlay_input).flake_ref(),
        )

    def _locked(self, lockfile: Lockfile, name: str) -> LockedInput:
        entry = lockfile.entry(name)
        if entry is None:
            raise LockfileError(
                "Lockfile has no entry for a declared input.",
                hint="Run `engineshell lock`.",
                context={"input": name, "path": str(self._lock_path())},
            )
        return entry

    def _resolve_input(self, name: str, lockfile: Lockfile, system: str) -> Path | str:
        entry = self._locked(lockfile, name)
        if entry.flake:
            # Flake inputs are consumed by the package index through their ref.
            self._log("resolve_input", system, input_node(name), "Using locked flake input.")
            return entry.flake_ref()
        if entry.type == "path" or entry.rev is None:
            return Path(entry.path or "")
        result = fetch_git(
            entry.clone_url(),
            ref=entry.rev,
            cache_dir=self.cache_dir / "sources",
            policy=self.policy,
        )
        self._log(
            "fetch_source",
            system,
            input_node(name),
            "Fetched pinned source.",
            commit=result.commit,
            tree=result.tree_hash,
        )
        return result.path

    def _resolve_toolchain(
        self,
        index: PackageIndex,
        system: str,
    ) -> tuple[ToolchainResolution, Path]:
        request = self.manifest.toolchain
        source = self.manifest_source or HttpManifestSource(
            cache=ArtifactCacheStore(self.cache_dir / "manifests"),
            policy=self.policy,
        )
        resolution = resolve_toolchain(
            request,
            system=system,
            source=source,
            today=self.today,
            policy=self.policy,
        )
        if not resolution.pinned:
            self._log(
                "resolve_toolchain",
                system,
                "toolchain",
                "Toolchain tracks the latest nightly.",
                level="warning",
            )
        path = index.realise_toolchain(resolution, profile=request.profile, system=system)
        self._log(
            "resolve_toolchain",
            system,
            "toolchain",
            "Resolved toolchain.",
            date=resolution.date,
            version=resolution.version,
        )
        return resolution, path

    def _resolve_engine(self, index: PackageIndex, system: str) -> Path:
        shell = self.manifest.shell
        root = index.realise(shell.engine_attr, system=system)
        engine_dir = root / shell.engine_subdir if shell.engine_subdir else root
        if not check_engine_library(engine_dir):
            self._log("resolve", system, "engine", "Engine library missing.", level="warning")
        self._log("resolve", system, "engine", "Resolved engine.", path=str(engine_dir))
        return engine_dir

    def _check_drift(
        self,
        index: PackageIndex,
        lockfile: Lockfile,
        system: str,
    ) -> DriftReport | None:
        engine_input = self.manifest.shell.engine_input or ""
        version = index.version(self.manifest.shell.version_attr, system=system)
        report = check_engine_drift(lockfile, input_name=engine_input, package_version=version)
        if report is None:
            self._log("drift_check", system, "drift", "Engine version matches lockfile.")
            return None
        emit_drift_warning(report, self.console)
        self._log(
            "drift_check",
            system,
            "drift",
            "Engine version differs from lockfile.",
            level="warning",
            locked_ref=report.locked_ref,
            package_version=report.package_version,
        )
        return report

    def _log(
        self,
        operation: str,
        system: str | None,
        node: str | None,
        message: str,
        *,
        level: str = "info",
        **extra: Any,
    ) -> None:
        self.logger.log(
            operation=operation,
            system=system,
            node=node,
            message=message,
            level=level,
            extra=extra or None,
        )


def export_lines(shell: ProvisionedShell) -> str:
    """POSIX ``export`` statements applying *shell* to the current session."""
    lines = [f"export {name}={shlex.quote(value)}" for name, value in sorted(shell.env.items())]
    if shell.path_entries:
        prefix = os.pathsep.join(shlex.quote(entry) for entry in shell.path_entries)
        lines.append(f'export PATH={prefix}:"$PATH"')
    return "\n".join(lines) + "\n"


def run_in_shell(shell: ProvisionedShell, argv: Sequence[str] | None, *, cwd: Path) -> int:
    """Run *argv* (default: the user's ``$SHELL``) with the shell bindings applied."""
    command = list(argv) if argv else [os.environ.get("SHELL", "/bin/sh")]
    completed = subprocess.run(command, cwd=cwd, env=shell.environ(), check=False)
    return completed.returncode
