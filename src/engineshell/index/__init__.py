"""Package-index interfaces and implementations."""

from .base import PackageIndex, toolchain_expression
from .inprocess import InProcessPackageIndex
from .nix import NixPackageIndex

__all__ = [
    "InProcessPackageIndex",
    "NixPackageIndex",
    "PackageIndex",
    "toolchain_expression",
]
