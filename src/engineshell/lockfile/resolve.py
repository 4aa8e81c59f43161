"""Lock declared inputs to immutable revisions."""

from __future__ import annotations

from collections.abc import Callable, Collection

from engineshell.errors import ValidationError
from engineshell.fetch.git import resolve_commit
from engineshell.lockfile.model import InputTarget, LockedInput, Lockfile
from engineshell.models import PinnedSource, ShellManifest
from engineshell.policy import Policy, ensure_network_allowed
from engineshell.sources import parse_source_url

CommitResolver = Callable[[str, str | None], str]


def _git_resolver(repo: str, ref: str | None) -> str:
    return resolve_commit(repo, ref=ref)


def build_lockfile(
    manifest: ShellManifest,
    *,
    existing: Lockfile | None = None,
    update: Collection[str] = (),
    policy: Policy | None = None,
    resolver: CommitResolver | None = None,
) -> Lockfile:
    """Pin every manifest input, keeping still-valid entries from *existing*.

    An entry is re-resolved when it is missing, named in *update*, or was
    locked from a different declared location than the manifest now gives.
    """
    resolve = resolver or _git_resolver
    unknown = sorted(set(update) - set(manifest.inputs))
    if unknown:
        raise ValidationError(
            "Cannot update inputs that are not declared.",
            context={"operation": "lock", "inputs": ",".join(unknown)},
        )

    nodes: dict[str, LockedInput] = {}
    for name, source in sorted(manifest.inputs.items()):
        location = parse_source_url(source.url)
        previous = existing.entry(name) if existing is not None else None
        if previous is not None and name not in update and _is_current(previous, source):
            nodes[name] = previous
            continue

        rev: str | None = None
        if location.kind != "path":
            if location.rev is not None:
                rev = location.rev
            else:
                if policy is not None:
                    ensure_network_allowed(policy=policy, operation="lock")
                rev = resolve(location.clone_url, location.ref)

        nodes[name] = LockedInput(
            name=name,
            type=location.kind,
            rev=rev,
            ref=location.ref,
            owner=location.owner,
            repo=location.repo,
            url=location.clone_url if location.kind == "git" else None,
            path=location.clone_url if location.kind == "path" else None,
            flake=source.flake,
            inputs=_follows_edges(source),
        )

    return Lockfile(root_inputs={name: name for name in nodes}, nodes=nodes)


def missing_inputs(manifest: ShellManifest, lockfile: Lockfile | None) -> tuple[str, ...]:
    """Inputs declared in *manifest* without a matching lock entry."""
    missing: list[str] = []
    for name, source in sorted(manifest.inputs.items()):
        entry = lockfile.entry(name) if lockfile is not None else None
        if entry is None or not _is_current(entry, source):
            missing.append(name)
    return tuple(missing)


def _follows_edges(source: PinnedSource) -> dict[str, InputTarget]:
    return {child: tuple(target.split("/")) for child, target in sorted(source.follows.items())}


def _is_current(entry: LockedInput, source: PinnedSource) -> bool:
    return (
        entry.matches(parse_source_url(source.url))
        and entry.flake == source.flake
        and dict(entry.inputs) == _follows_edges(source)
    )
