"""Dependency graph analysis.

Works over any collection of nodes exposing an ``id`` and a ``depends_on``
list (plans, components, tasks). Cycle detection is a depth-first search that
follows each node's dependency list in its literal order, so the cycles it
reports are reproducible across runs. Dependencies that point at unknown ids
are treated as leaves here; reporting them is the validation engine's job.
"""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

import rustworkx as rx

__all__ = [
    "DependencyGraph",
    "Dependent",
    "build_dependency_graph",
    "dependency_map",
    "detect_cycles",
    "format_cycle",
]


class Dependent(Protocol):
    """Anything with an identifier and a list of dependency ids."""

    @property
    def id(self) -> str: ...

    @property
    def depends_on(self) -> Sequence[str]: ...


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    """Structure of a dependency graph.

    Attributes:
        nodes: Node ids in input order.
        edges: ``(dependent, dependency)`` pairs between known nodes.
        roots: Nodes nothing else depends on.
        leaves: Nodes that depend on nothing known.
        topological_order: Dependencies before dependents; empty with cycles.
        has_cycles: Whether any cycle exists.
        cycles: Every cycle found, each closed by repeating its first node.
    """

    nodes: tuple[str, ...]
    edges: tuple[tuple[str, str], ...]
    roots: tuple[str, ...]
    leaves: tuple[str, ...]
    topological_order: tuple[str, ...]
    has_cycles: bool
    cycles: tuple[tuple[str, ...], ...]


def dependency_map(items: Iterable[Dependent]) -> dict[str, list[str]]:
    """Build an adjacency map from each item's id to its raw dependency ids."""
    return {item.id: list(item.depends_on) for item in items}


def detect_cycles(graph: Mapping[str, Sequence[str]]) -> list[list[str]]:
    """Find dependency cycles with a depth-first search.

    Every node is tried as a root in mapping order; nodes already fully
    processed are skipped. When the search reaches a node that is still on
    the current path, the path from that node's first occurrence to the
    current node is emitted, with the repeated node at both ends. The search
    keeps an explicit stack, so long dependency chains do not hit the
    interpreter's recursion limit.

    Args:
        graph: Adjacency map from node id to dependency ids.

    Returns:
        The cycles found, e.g. ``[["a", "b", "c", "a"]]``. A node that
        depends on itself yields ``[node, node]``.
    """
    visited: set[str] = set()
    on_stack: set[str] = set()
    path: list[str] = []
    cycles: list[list[str]] = []

    def enter(node: str) -> Iterator[str]:
        visited.add(node)
        on_stack.add(node)
        path.append(node)
        return iter(graph.get(node, ()))

    for root in graph:
        if root in visited:
            continue

        pending = [enter(root)]
        while pending:
            dependency = next(pending[-1], None)
            if dependency is None:
                _ = pending.pop()
                on_stack.discard(path.pop())
            elif dependency in on_stack:
                start = path.index(dependency)
                cycles.append([*path[start:], dependency])
            elif dependency not in visited:
                pending.append(enter(dependency))

    return cycles


def format_cycle(cycle: Sequence[str]) -> str:
    """Render a cycle as ``a -> b -> a``."""
    return " -> ".join(cycle)


def build_dependency_graph(graph: Mapping[str, Sequence[str]]) -> DependencyGraph:
    """Analyze the structure of a dependency graph.

    Args:
        graph: Adjacency map from node id to dependency ids.

    Returns:
        The graph's edges, roots, leaves, topological order and cycles.
    """
    digraph: rx.PyDiGraph[str, None] = rx.PyDiGraph(check_cycle=False)
    node_indices: dict[str, int] = {}

    for node in graph:
        node_indices[node] = digraph.add_node(node)

    edges: list[tuple[str, str]] = []
    for node, dependencies in graph.items():
        for dependency in dependencies:
            if dependency in node_indices:
                _ = digraph.add_edge(node_indices[node], node_indices[dependency], None)
                edges.append((node, dependency))

    roots = tuple(node for node, idx in node_indices.items() if digraph.in_degree(idx) == 0)
    leaves = tuple(
        node for node, idx in node_indices.items() if digraph.out_degree(idx) == 0
    )

    cycles = detect_cycles(graph)
    topological_order: tuple[str, ...] = ()
    if not cycles:
        try:
            # Edges point from dependent to dependency, so reverse the sort.
            ordered = rx.topological_sort(digraph)
            topological_order = tuple(digraph[idx] for idx in reversed(ordered))
        except rx.DAGHasCycle:
            topological_order = ()

    return DependencyGraph(
        nodes=tuple(node_indices),
        edges=tuple(edges),
        roots=roots,
        leaves=leaves,
        topological_order=topological_order,
        has_cycles=bool(cycles),
        cycles=tuple(tuple(cycle) for cycle in cycles),
    )
