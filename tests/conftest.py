from __future__ import annotations

import datetime as dt
import io
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from engineshell.index import InProcessPackageIndex
from engineshell.manifest import load_manifest
from engineshell.platforms import RUST_TARGETS
from engineshell.provision import Provisioner
from engineshell.toolchain import StaticManifestSource

NIXPKGS_REV = "a" * 40
OVERLAY_REV = "b" * 40
ENGINE_TAG = "3.24.0"
TOOLCHAIN_DATE = "2024-10-01"
HEADER_TEXT = "// embedder.h\n#define FLUTTER_ENGINE_VERSION 1\n"

DEFAULT_PROFILE = ["rustc", "cargo", "rust-std", "rust-docs", "rustfmt", "clippy"]

ChannelManifestFactory = Callable[..., dict[str, Any]]


def run_git(argv: list[str], *, cwd: Path) -> str:
    completed = subprocess.run(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
    return completed.stdout.strip()


def create_repo(path: Path, files: dict[str, str] | None = None) -> tuple[Path, str]:
    path.mkdir(parents=True, exist_ok=True)
    run_git(["init"], cwd=path)
    run_git(["checkout", "-b", "main"], cwd=path)
    run_git(["config", "user.email", "engineshell@example.com"], cwd=path)
    run_git(["config", "user.name", "Engine Shell Test"], cwd=path)
    run_git(["config", "commit.gpgsign", "false"], cwd=path)

    for relative, content in (files or {"README.md": "hello repo\n"}).items():
        target = path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    run_git(["add", "."], cwd=path)
    run_git(["commit", "-m", "initial"], cwd=path)
    return path, run_git(["rev-parse", "HEAD"], cwd=path)


@pytest.fixture
def engine_repo(tmp_path: Path) -> tuple[Path, str]:
    """A local engine repository tagged with ENGINE_TAG."""
    repo, commit = create_repo(
        tmp_path / "engine-src",
        {"shell/platform/embedder/embedder.h": HEADER_TEXT, "README.md": "engine\n"},
    )
    run_git(["tag", ENGINE_TAG], cwd=repo)
    return repo, commit


@pytest.fixture
def annotated_engine_tag(engine_repo: tuple[Path, str]) -> str:
    """Replace the lightweight ENGINE_TAG with an annotated one; returns the tag object id."""
    repo, _ = engine_repo
    run_git(["config", "tag.gpgsign", "false"], cwd=repo)
    run_git(["tag", "-d", ENGINE_TAG], cwd=repo)
    run_git(["tag", "-a", ENGINE_TAG, "-m", "release"], cwd=repo)
    return run_git(["rev-parse", ENGINE_TAG], cwd=repo)


@pytest.fixture
def channel_manifest() -> ChannelManifestFactory:
    def factory(
        date: str,
        *,
        targets: Sequence[str] = tuple(RUST_TARGETS.values()),
        missing: Sequence[str] = (),
    ) -> dict[str, Any]:
        packages: dict[str, Any] = {}
        for name in [*DEFAULT_PROFILE, "rust-src", "rust-analyzer-preview"]:
            keys = ["*"] if name == "rust-src" else list(targets)
            packages[name] = {
                "version": f"1.83.0-nightly ({date})",
                "target": {key: {"available": name not in missing} for key in keys},
            }
        packages["rustc"]["version"] = f"rustc 1.83.0-nightly (0123456789 {date})"
        return {
            "date": date,
            "pkg": packages,
            "profiles": {"default": list(DEFAULT_PROFILE), "minimal": ["rustc", "cargo"]},
            "renames": {"rust-analyzer": {"to": "rust-analyzer-preview"}},
        }

    return factory


@pytest.fixture
def inprocess_index(tmp_path: Path) -> InProcessPackageIndex:
    return InProcessPackageIndex(root=tmp_path / "store", versions={"flutter": ENGINE_TAG})


@pytest.fixture
def capture_console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, force_terminal=False, width=200), buffer


@pytest.fixture
def make_repo() -> Callable[..., tuple[Path, str]]:
    return create_repo


@pytest.fixture
def manifest_source(channel_manifest: ChannelManifestFactory) -> StaticManifestSource:
    return StaticManifestSource(manifests={TOOLCHAIN_DATE: channel_manifest(TOOLCHAIN_DATE)})


@pytest.fixture
def packaged_manifest(tmp_path: Path) -> Path:
    path = tmp_path / "project" / "engineshell.toml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        _manifest_text(variant="packaged", engine_url=None, date=TOOLCHAIN_DATE),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def pinned_manifest(tmp_path: Path, engine_repo: tuple[Path, str]) -> Path:
    repo, _ = engine_repo
    path = tmp_path / "project" / "engineshell.toml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        _manifest_text(
            variant="pinned",
            engine_url=f"git+file://{repo}?ref={ENGINE_TAG}",
            date=TOOLCHAIN_DATE,
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def make_provisioner(
    tmp_path: Path,
    inprocess_index: InProcessPackageIndex,
    manifest_source: StaticManifestSource,
    capture_console: tuple[Console, io.StringIO],
) -> Callable[..., Provisioner]:
    console, _ = capture_console

    def factory(manifest_path: Path, **overrides: Any) -> Provisioner:
        options: dict[str, Any] = {
            "manifest": load_manifest(manifest_path),
            "workdir": manifest_path.parent,
            "cache_dir": tmp_path / "cache",
            "system": "x86_64-linux",
            "index": inprocess_index,
            "manifest_source": manifest_source,
            "console": console,
            "today": dt.date(2024, 10, 3),
        }
        options.update(overrides)
        return Provisioner(**options)

    return factory


def _manifest_text(*, variant: str, engine_url: str | None, date: str | None) -> str:
    sections = [
        f'[inputs.nixpkgs]\nurl = "github:nixos/nixpkgs/{NIXPKGS_REV}"\n',
        "[inputs.rust-overlay]\n"
        f'url = "github:oxalica/rust-overlay?rev={OVERLAY_REV}"\n'
        'follows = { nixpkgs = "nixpkgs" }\n',
    ]
    if engine_url is not None:
        sections.append(f'[inputs.flutter-engine]\nurl = "{engine_url}"\nflake = false\n')
    sections.append("[toolchain]\n" + (f'date = "{date}"\n' if date else ""))
    sections.append(f'[shell]\nvariant = "{variant}"\n')
    return "\n".join(sections)
