"""Advisory comparison of the pinned engine ref against the packaged engine version."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.text import Text

from engineshell.errors import LockfileError
from engineshell.lockfile.model import Lockfile


@dataclass(frozen=True, slots=True)
class DriftReport:
    input_name: str
    locked_ref: str
    package_version: str


def check_engine_drift(
    lockfile: Lockfile,
    *,
    input_name: str,
    package_version: str,
) -> DriftReport | None:
    """Return a report when the locked ref and the package version differ."""
    entry = lockfile.entry(input_name)
    if entry is None or entry.reference is None:
        raise LockfileError(
            "Lockfile has no reference for the engine input.",
            hint="Run `engineshell lock` to pin the engine input.",
            context={"operation": "drift_check", "input": input_name},
        )
    if entry.reference == package_version:
        return None
    return DriftReport(
        input_name=input_name,
        locked_ref=entry.reference,
        package_version=package_version,
    )


def render_drift_warning(report: DriftReport) -> Text:
    return Text.assemble(
        ("warning: ", "bold yellow"),
        ("the pinned engine source and the packaged Flutter version differ\n", "yellow"),
        (f"  lockfile `{report.input_name}` ref: ", "dim"),
        (report.locked_ref, "bold red"),
        "\n",
        ("  package index version: ", "dim"),
        (report.package_version, "bold green"),
        "\n",
        (
            f"Consider updating the `{report.input_name}` input to match, "
            "and regenerate any binding code that depends on embedder.h.",
            "yellow",
        ),
    )


def emit_drift_warning(report: DriftReport, console: Console) -> None:
    # Refs are printed unbroken whatever the terminal width.
    console.print(render_drift_warning(report), soft_wrap=True)
