"""Public package entrypoint for the engine embedder shell provisioner."""

from .drift import DriftReport, check_engine_drift
from .errors import (
    BackendExecutionError,
    EngineShellError,
    LockfileError,
    PolicyError,
    ProvisionError,
    ReproducibilityError,
    ResolutionError,
    ValidationError,
)
from .manifest import load_manifest, parse_manifest
from .models import (
    PinnedSource,
    ProvisionedShell,
    ShellManifest,
    ShellSpec,
    ToolchainRequest,
    ToolchainResolution,
)
from .policy import Policy
from .provision import ProvisionResult, Provisioner

__all__ = [
    "BackendExecutionError",
    "DriftReport",
    "EngineShellError",
    "LockfileError",
    "PinnedSource",
    "Policy",
    "PolicyError",
    "ProvisionError",
    "ProvisionResult",
    "ProvisionedShell",
    "Provisioner",
    "ReproducibilityError",
    "ResolutionError",
    "ShellManifest",
    "ShellSpec",
    "ToolchainRequest",
    "ToolchainResolution",
    "ValidationError",
    "check_engine_drift",
    "load_manifest",
    "parse_manifest",
]
