"""Resolution graph: pinned sources feed derived nodes, all feeding the shell."""

from __future__ import annotations

from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter

from engineshell.errors import ValidationError
from engineshell.models import ShellManifest

SHELL_NODE = "shell"


def input_node(name: str) -> str:
    return f"input:{name}"


@dataclass(slots=True)
class ResolutionGraph:
    edges: dict[str, set[str]] = field(default_factory=dict)

    def add(self, node: str, *dependencies: str) -> None:
        self.edges.setdefault(node, set()).update(dependencies)
        for dependency in dependencies:
            self.edges.setdefault(dependency, set())

    def order(self) -> tuple[str, ...]:
        """Nodes in dependency order; ties broken by name for stable output."""
        sorter = TopologicalSorter(self.edges)
        try:
            sorter.prepare()
        except CycleError as exc:
            raise ValidationError(
                "Resolution graph has a cycle.",
                hint="Check `follows` declarations between inputs.",
                context={"cycle": " -> ".join(exc.args[1])},
            ) from exc
        ordered: list[str] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready())
            ordered.extend(ready)
            sorter.done(*ready)
        return tuple(ordered)


def build_graph(manifest: ShellManifest) -> ResolutionGraph:
    shell = manifest.shell
    graph = ResolutionGraph()
    for name, source in sorted(manifest.inputs.items()):
        graph.add(
            input_node(name),
            *(input_node(target.split("/")[0]) for target in source.follows.values()),
        )

    index = input_node(shell.index_input)
    graph.add("toolchain", index, input_node(shell.overlay_input))
    graph.add("libclang", index)
    graph.add("engine", index)
    graph.add("tools", index)
    shell_deps = ["toolchain", "libclang", "engine", "tools"]
    if shell.engine_input is not None and shell.header is not None:
        graph.add("header", input_node(shell.engine_input))
        shell_deps.append("header")
    if shell.engine_input is not None and shell.drift_check:
        graph.add("drift", "engine", input_node(shell.engine_input))
        shell_deps.append("drift")
    graph.add(SHELL_NODE, *shell_deps)
    return graph
