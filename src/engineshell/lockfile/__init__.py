"""Lockfile model, serialization, and input locking."""

from .io import lockfile_digest, parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from .model import LockedInput, Lockfile
from .resolve import build_lockfile, missing_inputs

__all__ = [
    "LockedInput",
    "Lockfile",
    "build_lockfile",
    "lockfile_digest",
    "missing_inputs",
    "parse_lockfile",
    "read_lockfile",
    "serialize_lockfile",
    "write_lockfile",
]
