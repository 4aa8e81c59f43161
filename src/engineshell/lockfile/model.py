"""Lockfile typed model."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from engineshell.sources import SourceLocation

# A follows edge is a path of input names; a plain string names a lock node.
InputTarget = tuple[str, ...] | str


@dataclass(frozen=True, slots=True)
class LockedInput:
    name: str
    type: str
    rev: str | None = None
    ref: str | None = None
    owner: str | None = None
    repo: str | None = None
    url: str | None = None
    path: str | None = None
    nar_hash: str | None = None
    last_modified: int | None = None
    flake: bool = True
    inputs: Mapping[str, InputTarget] = field(default_factory=dict)

    @property
    def reference(self) -> str | None:
        """The human-facing pin: the declared ref when present, else the revision."""
        return self.ref or self.rev or self.path

    def flake_ref(self) -> str:
        """Immutable flake reference for handing to ``nix``."""
        if self.type == "github":
            return f"github:{self.owner}/{self.repo}/{self.rev}"
        if self.type == "git":
            return f"git+{self.url}?rev={self.rev}"
        return f"path:{self.path}"

    def clone_url(self) -> str:
        if self.type == "github":
            return f"https://github.com/{self.owner}/{self.repo}.git"
        if self.type == "git":
            return self.url or ""
        return self.path or ""

    def matches(self, location: SourceLocation) -> bool:
        """Whether this entry was locked from the same declared location."""
        if location.kind != self.type or location.clone_url != self.clone_url():
            return False
        if location.rev is not None:
            return location.rev == self.rev
        return location.ref == self.ref


@dataclass(frozen=True, slots=True)
class Lockfile:
    version: int = 7
    root_inputs: Mapping[str, str] = field(default_factory=dict)
    nodes: Mapping[str, LockedInput] = field(default_factory=dict)

    def entry(self, input_name: str) -> LockedInput | None:
        node = self.root_inputs.get(input_name)
        if node is None:
            return None
        return self.nodes.get(node)
