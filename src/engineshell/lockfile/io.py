"""Lockfile parser and serializer (``flake.lock`` layout)."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

from engineshell.errors import LockfileError
from engineshell.lockfile.model import InputTarget, LockedInput, Lockfile

ROOT_NODE = "root"


def serialize_lockfile(lockfile: Lockfile) -> str:
    nodes: dict[str, Any] = {
        name: _node_payload(item) for name, item in sorted(lockfile.nodes.items())
    }
    nodes[ROOT_NODE] = {"inputs": dict(sorted(lockfile.root_inputs.items()))}
    payload = {"nodes": nodes, "root": ROOT_NODE, "version": lockfile.version}
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_lockfile(raw: str) -> Lockfile:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid lockfile JSON.", hint=str(exc)) from exc

    if not isinstance(payload, dict):
        raise LockfileError("Invalid lockfile payload type.")

    version = _required_int(payload, "version")
    root_name = _required_str(payload, "root")
    nodes_raw = _required_dict(payload, "nodes")
    root_raw = nodes_raw.get(root_name)
    if not isinstance(root_raw, dict):
        raise LockfileError("Lockfile root node is missing.", context={"root": root_name})

    root_inputs: dict[str, str] = {}
    for name, target in root_raw.get("inputs", {}).items():
        if not isinstance(target, str):
            raise LockfileError("Invalid lockfile root input.", context={"input": str(name)})
        root_inputs[name] = target

    nodes = {
        name: _parse_node(name, item) for name, item in nodes_raw.items() if name != root_name
    }
    return Lockfile(version=version, root_inputs=root_inputs, nodes=nodes)


def read_lockfile(path: str | Path) -> Lockfile:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Lockfile does not exist.",
            hint="Run `engineshell lock` to pin the declared inputs.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw)


def write_lockfile(lockfile: Lockfile, path: str | Path) -> Path:
    lock_path = Path(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text(serialize_lockfile(lockfile), encoding="utf-8")
    return lock_path


def lockfile_digest(lockfile: Lockfile) -> str:
    return hashlib.sha256(serialize_lockfile(lockfile).encode("utf-8")).hexdigest()


def _node_payload(item: LockedInput) -> dict[str, Any]:
    locked: dict[str, Any] = {"type": item.type}
    original: dict[str, Any] = {"type": item.type}
    if item.type == "github":
        locked.update(owner=item.owner, repo=item.repo, rev=item.rev)
        original.update(owner=item.owner, repo=item.repo)
    elif item.type == "git":
        locked.update(url=item.url, rev=item.rev)
        original.update(url=item.url)
    else:
        locked.update(path=item.path)
        original.update(path=item.path)
    if item.ref is not None:
        original["ref"] = item.ref
        if item.type == "git":
            locked["ref"] = item.ref
    if item.nar_hash is not None:
        locked["narHash"] = item.nar_hash
    if item.last_modified is not None:
        locked["lastModified"] = item.last_modified

    node: dict[str, Any] = {"locked": locked, "original": original}
    if not item.flake:
        node["flake"] = False
    if item.inputs:
        node["inputs"] = {
            name: target if isinstance(target, str) else list(target)
            for name, target in sorted(item.inputs.items())
        }
    return node


def _parse_node(name: str, item: Any) -> LockedInput:
    if not isinstance(item, dict):
        raise LockfileError("Invalid node entry in lockfile.", context={"node": name})
    locked = _required_dict(item, "locked")
    original = item.get("original", {})
    if not isinstance(original, dict):
        raise LockfileError("Invalid lockfile `original` value.", context={"node": name})

    kind = _required_str(locked, "type")
    if kind not in ("github", "git", "path"):
        raise LockfileError(
            "Unsupported locked input type.",
            context={"node": name, "type": kind},
        )
    rev = locked.get("rev")
    if kind != "path" and not isinstance(rev, str):
        raise LockfileError("Locked input is missing its revision.", context={"node": name})

    inputs: dict[str, InputTarget] = {}
    for input_name, target in item.get("inputs", {}).items():
        if isinstance(target, list) and all(isinstance(part, str) for part in target):
            inputs[input_name] = tuple(target)
        elif isinstance(target, str):
            inputs[input_name] = target
        else:
            raise LockfileError(
                "Invalid lockfile input edge.",
                context={"node": name, "input": str(input_name)},
            )

    last_modified = locked.get("lastModified")
    return LockedInput(
        name=name,
        type=kind,
        rev=rev,
        ref=original.get("ref", locked.get("ref")),
        owner=locked.get("owner"),
        repo=locked.get("repo"),
        url=locked.get("url"),
        path=locked.get("path"),
        nar_hash=locked.get("narHash"),
        last_modified=last_modified if isinstance(last_modified, int) else None,
        flake=item.get("flake", True) is not False,
        inputs=inputs,
    )


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value
