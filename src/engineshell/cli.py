"""Command-line entry point.

Usage:
    engineshell init --variant pinned
    engineshell lock [--update flutter-engine]
    engineshell shell [-- command ...]
    eval "$(engineshell env)"
    engineshell check
    engineshell fmt flake.nix
    engineshell systems
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.text import Text

from engineshell.cache import default_cache_dir
from engineshell.errors import EngineShellError
from engineshell.manifest import DEFAULT_MANIFEST, load_manifest
from engineshell.platforms import SUPPORTED_SYSTEMS
from engineshell.policy import Policy
from engineshell.presets import VARIANT_DEFAULTS, write_manifest_template
from engineshell.provision import (
    FLUTTER_ENGINE,
    LIBCLANG_PATH,
    Provisioner,
    export_lines,
    run_in_shell,
)

console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="engineshell",
        description="Provision a reproducible shell for Flutter engine embedder bindings.",
    )
    parser.add_argument("--manifest", type=Path, default=Path(DEFAULT_MANIFEST))
    parser.add_argument("--lockfile", type=Path, default=None, help="Default: ./flake.lock")
    parser.add_argument("--system", default=None, help="Target system, e.g. x86_64-linux")
    parser.add_argument("--cache-dir", type=Path, default=None)
    parser.add_argument("--offline", action="store_true", help="Refuse network access")
    parser.add_argument("--frozen", action="store_true", help="Fail instead of updating the lock")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Reject unlocked git refs and an unpinned nightly toolchain",
    )
    parser.add_argument("--report", type=Path, default=None, help="Write a JSON report here")
    sub = parser.add_subparsers(dest="command", required=True)

    init_p = sub.add_parser("init", help="Write a starter manifest")
    init_p.add_argument("--variant", choices=sorted(VARIANT_DEFAULTS), default="packaged")
    init_p.add_argument("--engine-ref", default="3.24.0", help="Engine tag for the pinned variant")
    init_p.add_argument("--force", action="store_true", help="Overwrite an existing manifest")

    lock_p = sub.add_parser("lock", help="Pin every declared input")
    lock_p.add_argument("--update", action="append", default=[], metavar="INPUT")

    shell_p = sub.add_parser("shell", help="Provision and enter the development shell")
    shell_p.add_argument("argv", nargs=argparse.REMAINDER, help="Command to run instead of $SHELL")

    sub.add_parser("env", help="Print export statements for the shell bindings")
    sub.add_parser("check", help="Compare the pinned engine ref with the packaged version")

    fmt_p = sub.add_parser("fmt", help="Run the formatter over files")
    fmt_p.add_argument("paths", nargs="*", default=["flake.nix"])

    sub.add_parser("systems", help="List supported systems")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return _dispatch(args)
    except EngineShellError as exc:
        console.print(Text.assemble(("error", "bold red"), f" [{exc.code}] ", str(exc)))
        return 1


def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "systems":
        for system in SUPPORTED_SYSTEMS:
            print(system)
        return 0
    if args.command == "init":
        path = write_manifest_template(
            args.manifest,
            variant=args.variant,
            engine_ref=args.engine_ref,
            force=args.force,
        )
        console.print(f"Wrote {path}")
        return 0

    provisioner = _provisioner(args)
    if args.command == "lock":
        path = provisioner.lock(update=args.update)
        console.print(f"Wrote {path}")
        return 0
    if args.command == "check":
        report = provisioner.check_drift()
        if report is None:
            console.print("Engine version matches the lockfile.")
        return 0
    if args.command == "fmt":
        return provisioner.format_files(args.paths)

    result = provisioner.provision()
    if args.report is not None:
        provisioner.write_report(result, args.report)
    if args.command == "env":
        print(export_lines(result.shell), end="")
        return 0

    argv = args.argv[1:] if args.argv[:1] == ["--"] else args.argv
    console.print(
        Text.assemble(
            ("entering shell", "bold green"),
            f" {result.shell.system} rust {result.shell.toolchain.version}\n",
            f"  {LIBCLANG_PATH}={result.shell.env[LIBCLANG_PATH]}\n",
            f"  {FLUTTER_ENGINE}={result.shell.env[FLUTTER_ENGINE]}",
        )
    )
    return run_in_shell(result.shell, argv, cwd=provisioner.workdir)


def _provisioner(args: argparse.Namespace) -> Provisioner:
    manifest_path: Path = args.manifest
    policy = Policy(
        mutable_ref_policy="error" if args.strict else "warn",
        network_mode="offline" if args.offline else "online",
        require_pinned_toolchain=args.strict,
    )
    workdir = manifest_path.resolve().parent
    return Provisioner(
        manifest=load_manifest(manifest_path),
        workdir=workdir,
        lockfile_path=args.lockfile,
        cache_dir=args.cache_dir or default_cache_dir(),
        system=args.system,
        policy=policy,
        frozen=args.frozen,
        console=console,
    )
