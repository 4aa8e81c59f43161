import pytest

from engineshell.errors import ValidationError
from engineshell.sources import parse_source_url


def test_github_reference_with_branch_is_mutable() -> None:
    location = parse_source_url("github:nixos/nixpkgs/nixos-unstable")

    assert location.kind == "github"
    assert location.owner == "nixos"
    assert location.repo == "nixpkgs"
    assert location.ref == "nixos-unstable"
    assert location.rev is None
    assert location.mutable is True
    assert location.clone_url == "https://github.com/nixos/nixpkgs.git"


def test_github_reference_with_commit_is_immutable() -> None:
    commit = "0123456789abcdef0123456789abcdef01234567"

    location = parse_source_url(f"github:oxalica/rust-overlay/{commit}")

    assert location.ref is None
    assert location.rev == commit
    assert location.mutable is False


def test_github_reference_query_parameters() -> None:
    location = parse_source_url("github:flutter/engine?ref=3.24.0")

    assert location.ref == "3.24.0"
    assert location.rev is None


def test_git_reference_keeps_transport_url() -> None:
    location = parse_source_url("git+file:///srv/engine?ref=3.24.0&rev=" + "c" * 40)

    assert location.kind == "git"
    assert location.clone_url == "file:///srv/engine"
    assert location.ref == "3.24.0"
    assert location.rev == "c" * 40


def test_path_reference() -> None:
    location = parse_source_url("path:/srv/engine")

    assert location.kind == "path"
    assert location.clone_url == "/srv/engine"


@pytest.mark.parametrize(
    "url",
    ["", "github:nixos", "path:", "https://github.com/flutter/engine", "git+file://"],
)
def test_invalid_references_are_rejected(url: str) -> None:
    with pytest.raises(ValidationError):
        parse_source_url(url)
