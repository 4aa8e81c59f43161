import pytest

from engineshell.errors import ValidationError
from engineshell.graph import SHELL_NODE, ResolutionGraph, build_graph
from engineshell.manifest import parse_manifest

INPUTS = """\
[inputs.nixpkgs]
url = "github:nixos/nixpkgs/nixos-unstable"

[inputs.rust-overlay]
url = "github:oxalica/rust-overlay"
follows = { nixpkgs = "nixpkgs" }
"""


def test_packaged_graph_orders_inputs_before_derived_nodes() -> None:
    order = build_graph(parse_manifest(INPUTS)).order()

    assert order[-1] == SHELL_NODE
    assert order.index("input:nixpkgs") < order.index("input:rust-overlay")
    assert order.index("input:rust-overlay") < order.index("toolchain")
    assert "header" not in order
    assert "drift" not in order


def test_pinned_graph_includes_header_and_drift() -> None:
    manifest = parse_manifest(
        INPUTS
        + """
[inputs.flutter-engine]
url = "github:flutter/engine/3.24.0"
flake = false

[shell]
variant = "pinned"
"""
    )

    order = build_graph(manifest).order()

    assert order.index("input:flutter-engine") < order.index("header")
    assert order.index("engine") < order.index("drift")
    assert order.index("drift") < order.index(SHELL_NODE)
    assert build_graph(manifest).order() == order


def test_cycle_is_reported() -> None:
    graph = ResolutionGraph()
    graph.add("input:a", "input:b")
    graph.add("input:b", "input:a")

    with pytest.raises(ValidationError, match="cycle"):
        graph.order()
