import io

import pytest
from rich.console import Console

from engineshell.drift import check_engine_drift, emit_drift_warning, render_drift_warning
from engineshell.errors import LockfileError
from engineshell.lockfile import LockedInput, Lockfile


def _lockfile(*, ref: str | None, rev: str = "e" * 40) -> Lockfile:
    entry = LockedInput(
        name="flutter-engine",
        type="github",
        rev=rev,
        ref=ref,
        owner="flutter",
        repo="engine",
        flake=False,
    )
    return Lockfile(
        root_inputs={"flutter-engine": "flutter-engine"},
        nodes={"flutter-engine": entry},
    )


def test_no_report_when_versions_match() -> None:
    report = check_engine_drift(
        _lockfile(ref="3.24.0"),
        input_name="flutter-engine",
        package_version="3.24.0",
    )

    assert report is None


def test_report_carries_both_values() -> None:
    report = check_engine_drift(
        _lockfile(ref="3.22.0"),
        input_name="flutter-engine",
        package_version="3.24.0",
    )

    assert report is not None
    assert report.locked_ref == "3.22.0"
    assert report.package_version == "3.24.0"


def test_rev_is_compared_when_no_ref_was_declared() -> None:
    report = check_engine_drift(
        _lockfile(ref=None),
        input_name="flutter-engine",
        package_version="3.24.0",
    )

    assert report is not None
    assert report.locked_ref == "e" * 40


def test_missing_engine_entry_is_a_lockfile_error() -> None:
    with pytest.raises(LockfileError):
        check_engine_drift(Lockfile(), input_name="flutter-engine", package_version="3.24.0")


def test_rendered_warning_names_both_values_verbatim() -> None:
    report = check_engine_drift(
        _lockfile(ref="3.22.0"),
        input_name="flutter-engine",
        package_version="3.24.0",
    )
    assert report is not None
    console = Console(file=io.StringIO(), record=True, width=200)

    emit_drift_warning(report, console)

    text = console.export_text()
    assert "3.22.0" in text
    assert "3.24.0" in text
    assert "embedder.h" in text
    assert render_drift_warning(report).plain.startswith("warning: ")


def test_rendered_warning_is_colorized() -> None:
    report = check_engine_drift(
        _lockfile(ref="3.22.0"),
        input_name="flutter-engine",
        package_version="3.24.0",
    )
    assert report is not None

    styles = {str(span.style) for span in render_drift_warning(report).spans}

    assert "bold yellow" in styles


def test_long_refs_are_not_wrapped_at_default_width() -> None:
    ref = "path:/srv/checkouts/flutter/" + "engine-source-pinned-for-embedder-bindings-" * 2
    report = check_engine_drift(
        _lockfile(ref=ref),
        input_name="flutter-engine",
        package_version="3.24.0",
    )
    assert report is not None
    buffer = io.StringIO()
    console = Console(file=buffer, width=80)

    emit_drift_warning(report, console)

    output = buffer.getvalue()
    assert len(ref) > console.width
    assert ref in output
    assert "3.24.0" in output
