"""Supported systems and host detection."""

from __future__ import annotations

import platform
import sys
from collections.abc import Callable
from typing import TypeVar

from engineshell.errors import ValidationError

T = TypeVar("T")

# Systems the package index exposes for flakes.
FLAKE_EXPOSED_SYSTEMS = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "armv6l-linux",
    "armv7l-linux",
    "i686-linux",
    "aarch64-darwin",
    "powerpc64le-linux",
    "riscv64-linux",
    "x86_64-freebsd",
)

LINUX_SYSTEMS = (
    "aarch64-linux",
    "armv5tel-linux",
    "armv6l-linux",
    "armv7a-linux",
    "armv7l-linux",
    "i686-linux",
    "loongarch64-linux",
    "m68k-linux",
    "microblaze-linux",
    "mips-linux",
    "mips64-linux",
    "mipsel-linux",
    "powerpc64-linux",
    "powerpc64le-linux",
    "riscv32-linux",
    "riscv64-linux",
    "s390x-linux",
    "x86_64-linux",
)

SUPPORTED_SYSTEMS = tuple(system for system in FLAKE_EXPOSED_SYSTEMS if system in LINUX_SYSTEMS)

RUST_TARGETS = {
    "x86_64-linux": "x86_64-unknown-linux-gnu",
    "aarch64-linux": "aarch64-unknown-linux-gnu",
    "armv6l-linux": "arm-unknown-linux-gnueabihf",
    "armv7l-linux": "armv7-unknown-linux-gnueabihf",
    "i686-linux": "i686-unknown-linux-gnu",
    "powerpc64le-linux": "powerpc64le-unknown-linux-gnu",
    "riscv64-linux": "riscv64gc-unknown-linux-gnu",
}

_MACHINE_ALIASES = {
    "amd64": "x86_64",
    "arm64": "aarch64",
    "ppc64le": "powerpc64le",
}


def for_all_systems(fn: Callable[[str], T]) -> dict[str, T]:
    """Evaluate *fn* once per supported system."""
    return {system: fn(system) for system in SUPPORTED_SYSTEMS}


def current_system() -> str:
    if not sys.platform.startswith("linux"):
        raise ValidationError(
            "Only Linux hosts are supported.",
            context={"platform": sys.platform},
        )
    machine = platform.machine().lower()
    return f"{_MACHINE_ALIASES.get(machine, machine)}-linux"


def ensure_supported(system: str) -> str:
    if system not in SUPPORTED_SYSTEMS:
        raise ValidationError(
            f"Unsupported system: {system}",
            hint="Supported systems: " + ", ".join(SUPPORTED_SYSTEMS),
        )
    return system


def rust_target(system: str) -> str:
    return RUST_TARGETS[ensure_supported(system)]
