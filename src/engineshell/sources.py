"""Flake-style source reference parsing.

Supported forms::

    github:<owner>/<repo>[/<ref-or-rev>]
    git+https://host/path.git?ref=<ref>&rev=<rev>
    git+file:///abs/path?ref=<ref>
    path:/abs/path
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from engineshell.errors import ValidationError
from engineshell.models import SourceKind

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")


@dataclass(frozen=True, slots=True)
class SourceLocation:
    kind: SourceKind
    clone_url: str
    ref: str | None = None
    rev: str | None = None
    owner: str | None = None
    repo: str | None = None

    @property
    def mutable(self) -> bool:
        return self.rev is None


def parse_source_url(url: str) -> SourceLocation:
    if not url:
        raise ValidationError("Source reference must be non-empty.")
    if url.startswith("github:"):
        return _parse_github(url)
    if url.startswith("git+"):
        return _parse_git(url)
    if url.startswith("path:"):
        path = url.removeprefix("path:")
        if not path:
            raise ValidationError("path: reference requires a path.", context={"url": url})
        return SourceLocation(kind="path", clone_url=path)
    raise ValidationError(
        "Unsupported source reference scheme.",
        hint="Use github:, git+https:, git+file: or path: references.",
        context={"url": url},
    )


def _parse_github(url: str) -> SourceLocation:
    body, _, query = url.removeprefix("github:").partition("?")
    parts = [part for part in body.split("/") if part]
    if len(parts) < 2:
        raise ValidationError(
            "github: reference requires an owner and a repository.",
            context={"url": url},
        )
    owner, repo = parts[0], parts[1]
    ref: str | None = "/".join(parts[2:]) or None
    rev: str | None = None
    params = parse_qs(query)
    if "ref" in params:
        ref = params["ref"][0]
    if "rev" in params:
        rev = params["rev"][0]
    if ref is not None and COMMIT_PATTERN.fullmatch(ref):
        ref, rev = None, ref
    return SourceLocation(
        kind="github",
        clone_url=f"https://github.com/{owner}/{repo}.git",
        ref=ref,
        rev=rev,
        owner=owner,
        repo=repo,
    )


def _parse_git(url: str) -> SourceLocation:
    split = urlsplit(url.removeprefix("git+"))
    params = parse_qs(split.query)
    if not split.path:
        raise ValidationError("git reference requires a repository path.", context={"url": url})
    return SourceLocation(
        kind="git",
        clone_url=f"{split.scheme}://{split.netloc}{split.path}",
        ref=params["ref"][0] if "ref" in params else None,
        rev=params["rev"][0] if "rev" in params else None,
    )
