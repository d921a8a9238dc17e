from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from workflow_studio.graph.models import Edge, Node


@dataclass(slots=True)
class CycleDetectionResult:
    has_cycle: bool
    cycle_path: list[str] = field(default_factory=list)


def build_adjacency(edges: Iterable[Edge], nodes: Iterable[Node] = ()) -> dict[str, list[str]]:
    adjacency: dict[str, list[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge.target)
    return adjacency


def detect_cycles(nodes: list[Node], edges: list[Edge]) -> CycleDetectionResult:
    """Find one directed cycle, if any, using white/gray/black DFS.

    Roots are tried in node order, so repeated calls on the same graph report
    the same cycle. The returned path starts and ends at the node where the
    back-edge closes, e.g. ``["a", "b", "c", "a"]``.
    """
    adjacency = build_adjacency(edges, nodes)
    visited: set[str] = set()
    active: set[str] = set()
    parent: dict[str, str] = {}

    for node in nodes:
        if node.id in visited:
            continue
        cycle_start = _visit(node.id, adjacency, visited, active, parent)
        if cycle_start is not None:
            return CycleDetectionResult(
                has_cycle=True,
                cycle_path=_reconstruct_cycle(cycle_start, parent),
            )

    return CycleDetectionResult(has_cycle=False, cycle_path=[])


def _visit(
    root: str,
    adjacency: dict[str, list[str]],
    visited: set[str],
    active: set[str],
    parent: dict[str, str],
) -> str | None:
    # Explicit stack of (node, next neighbor index); mirrors recursive DFS order.
    visited.add(root)
    active.add(root)
    stack: list[tuple[str, int]] = [(root, 0)]

    while stack:
        node_id, index = stack[-1]
        neighbors = adjacency.get(node_id, [])
        if index >= len(neighbors):
            stack.pop()
            active.discard(node_id)
            continue

        stack[-1] = (node_id, index + 1)
        neighbor = neighbors[index]
        if neighbor in active:
            parent[neighbor] = node_id
            return neighbor
        if neighbor not in visited:
            parent[neighbor] = node_id
            visited.add(neighbor)
            active.add(neighbor)
            stack.append((neighbor, 0))

    return None


def _reconstruct_cycle(cycle_start: str, parent: dict[str, str]) -> list[str]:
    path = [cycle_start]
    current = parent.get(cycle_start)
    while current is not None and current != cycle_start:
        path.append(current)
        current = parent.get(current)
    path.append(cycle_start)
    path.reverse()
    return path
