import pytest

from engineshell.errors import ValidationError
from engineshell.platforms import (
    RUST_TARGETS,
    SUPPORTED_SYSTEMS,
    current_system,
    ensure_supported,
    for_all_systems,
    rust_target,
)


def test_supported_systems_are_linux_flake_systems() -> None:
    assert SUPPORTED_SYSTEMS == (
        "x86_64-linux",
        "aarch64-linux",
        "armv6l-linux",
        "armv7l-linux",
        "i686-linux",
        "powerpc64le-linux",
        "riscv64-linux",
    )
    assert set(RUST_TARGETS) == set(SUPPORTED_SYSTEMS)


def test_for_all_systems_evaluates_each_system_once() -> None:
    calls: list[str] = []

    def evaluate(system: str) -> str:
        calls.append(system)
        return rust_target(system)

    result = for_all_systems(evaluate)

    assert calls == list(SUPPORTED_SYSTEMS)
    assert result["riscv64-linux"] == "riscv64gc-unknown-linux-gnu"


@pytest.mark.parametrize(
    "system",
    ["x86_64-darwin", "aarch64-darwin", "x86_64-freebsd", "s390x-linux"],
)
def test_non_supported_systems_are_rejected(system: str) -> None:
    with pytest.raises(ValidationError):
        ensure_supported(system)


def test_current_system_maps_machine_aliases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("engineshell.platforms.sys.platform", "linux")
    monkeypatch.setattr("engineshell.platforms.platform.machine", lambda: "AMD64")

    assert current_system() == "x86_64-linux"


def test_current_system_rejects_non_linux_hosts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("engineshell.platforms.sys.platform", "darwin")

    with pytest.raises(ValidationError):
        current_system()
