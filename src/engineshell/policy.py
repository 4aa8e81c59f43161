"""Policy configuration and enforcement helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from engineshell.errors import PolicyError

MutableRefPolicy = Literal["warn", "error", "allow"]
NetworkMode = Literal["online", "offline"]


@dataclass(frozen=True, slots=True)
class Policy:
    mutable_ref_policy: MutableRefPolicy = "warn"
    network_mode: NetworkMode = "online"
    require_pinned_toolchain: bool = False


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Drop --offline or lock the inputs while online first.",
            context={"operation": operation},
        )


def ensure_toolchain_pinned(*, policy: Policy, date: str | None) -> None:
    if policy.require_pinned_toolchain and date is None:
        raise PolicyError(
            "An unpinned nightly toolchain is not allowed by policy.",
            hint="Set `toolchain.date` in the manifest or relax require_pinned_toolchain.",
            context={"operation": "resolve_toolchain"},
        )


def mutable_ref_policy_from(policy: Policy) -> MutableRefPolicy:
    return policy.mutable_ref_policy
