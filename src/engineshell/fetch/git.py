"""Pinned git sources, checked out once per commit into the cache directory."""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import warnings
from dataclasses import dataclass
from pathlib import Path

from engineshell.errors import PolicyError, ReproducibilityError, ResolutionError, ValidationError
from engineshell.policy import (
    MutableRefPolicy,
    Policy,
    ensure_network_allowed,
    mutable_ref_policy_from,
)
from engineshell.sources import COMMIT_PATTERN


class MutableRefWarning(UserWarning):
    """Warning raised when fetching a mutable git ref."""


@dataclass(frozen=True, slots=True)
class GitFetchResult:
    path: Path
    commit: str
    tree_hash: str
    mutable_ref: bool


def fetch_git(
    repo: str,
    *,
    ref: str,
    cache_dir: str | Path,
    tree_hash: str | None = None,
    mutable_ref_policy: MutableRefPolicy | None = None,
    policy: Policy | None = None,
) -> GitFetchResult:
    """Check out *ref* of *repo* under ``cache_dir/<commit>``.

    A full commit id that is already cached is served without touching the
    network, so locked inputs keep working offline.
    """
    if not ref:
        raise ValidationError("fetch_git() requires a ref.")
    if mutable_ref_policy is None:
        mutable_ref_policy = mutable_ref_policy_from(policy) if policy is not None else "warn"
    mutable_ref = not COMMIT_PATTERN.fullmatch(ref)
    _enforce_mutable_ref_policy(ref=ref, policy=mutable_ref_policy, mutable_ref=mutable_ref)

    cache_root = Path(cache_dir)
    cache_root.mkdir(parents=True, exist_ok=True)
    commit = None if mutable_ref else ref
    if commit is None or not (cache_root / commit).exists():
        if policy is not None:
            ensure_network_allowed(policy=policy, operation="fetch_git")
        commit = resolve_commit(repo, ref=ref)

    checkout_path = cache_root / commit
    if checkout_path.exists():
        actual_tree = _verify_cached_checkout(
            checkout_path=checkout_path,
            commit=commit,
            tree_hash=tree_hash,
        )
    else:
        actual_tree = _checkout(repo, commit=commit, destination=checkout_path, tree_hash=tree_hash)
    return GitFetchResult(
        path=checkout_path,
        commit=commit,
        tree_hash=actual_tree,
        mutable_ref=mutable_ref,
    )


def resolve_commit(repo: str, *, ref: str | None) -> str:
    """Resolve *ref* (default ``HEAD``) in *repo* to a full commit id."""
    if ref is not None and COMMIT_PATTERN.fullmatch(ref):
        return ref
    wanted = ref or "HEAD"
    # ls-remote lists the peeled commit of an annotated tag only when asked for it.
    output = _run_git(["ls-remote", repo, wanted, f"{wanted}^{{}}"])
    lines = [line.split() for line in output.splitlines() if line.strip()]
    if not lines:
        raise ResolutionError(
            "Unable to resolve git ref.",
            hint="Ensure the repository and ref are valid and reachable.",
            context={"operation": "resolve_commit", "repo": repo, "ref": wanted},
        )
    # An annotated tag is listed as the tag object and as its peeled ``^{}`` commit.
    for sha, name in lines:
        if name.endswith("^{}"):
            return sha
    return lines[0][0]


def _checkout(repo: str, *, commit: str, destination: Path, tree_hash: str | None) -> str:
    staging = Path(tempfile.mkdtemp(prefix="engineshell-git-", dir=str(destination.parent)))
    try:
        _run_git(["clone", "--quiet", "--no-checkout", repo, str(staging)])
        _run_git(["checkout", "--quiet", "--detach", commit], cwd=staging)
        actual_tree = _run_git(["rev-parse", "HEAD^{tree}"], cwd=staging)
        if tree_hash and actual_tree != tree_hash:
            raise ReproducibilityError(
                "Git tree hash mismatch.",
                hint="Pin the expected tree hash to the resolved immutable revision.",
                context={
                    "operation": "fetch_git",
                    "repo": repo,
                    "commit": commit,
                    "expected": tree_hash,
                    "actual": actual_tree,
                },
            )
        shutil.move(str(staging), destination)
    finally:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
    return actual_tree


def _enforce_mutable_ref_policy(*, ref: str, policy: MutableRefPolicy, mutable_ref: bool) -> None:
    if not mutable_ref or policy == "allow":
        return
    if policy == "warn":
        warnings.warn(
            f"Mutable git ref `{ref}` was requested; result is not inherently reproducible.",
            MutableRefWarning,
            stacklevel=3,
        )
        return
    if policy == "error":
        raise PolicyError(
            "Mutable git refs are not allowed by policy.",
            hint="Lock the input to a full 40-char commit or relax mutable_ref_policy.",
            context={"operation": "fetch_git", "ref": ref, "policy": policy},
        )
    raise ValidationError(f"Unsupported mutable_ref_policy value: {policy}")


def _verify_cached_checkout(*, checkout_path: Path, commit: str, tree_hash: str | None) -> str:
    cached_commit = _run_git(["rev-parse", "HEAD"], cwd=checkout_path)
    cached_tree = _run_git(["rev-parse", "HEAD^{tree}"], cwd=checkout_path)
    if cached_commit != commit or (tree_hash and cached_tree != tree_hash):
        raise ReproducibilityError(
            "Cached git checkout does not match the pinned commit.",
            hint="Delete the cache entry and refetch the pinned source.",
            context={
                "operation": "fetch_git",
                "path": str(checkout_path),
                "expected_commit": commit,
                "actual_commit": cached_commit,
                "expected_tree": tree_hash or "",
                "actual_tree": cached_tree,
            },
        )
    return cached_tree


def _run_git(argv: list[str], cwd: Path | None = None) -> str:
    completed = subprocess.run(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise ResolutionError(
            "Git command failed.",
            hint="Check the input URL and ref, and that git is installed.",
            context={
                "operation": "fetch_git",
                "argv": " ".join(argv),
                "stderr": completed.stderr.strip(),
            },
        )
    return completed.stdout.strip()
