from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from workflow_studio.graph.cycles import build_adjacency
from workflow_studio.graph.models import Edge, Node


SELF_LOOP_REASON = "Cannot connect a node to itself"
DUPLICATE_REASON = "Connection already exists"
END_OUTGOING_REASON = "End nodes cannot have outgoing connections"
START_INCOMING_REASON = "Start nodes cannot have incoming connections"
CYCLE_REASON = "This connection would create an infinite loop"


@dataclass(slots=True)
class ConnectionResult:
    valid: bool
    reason: str | None = None


def would_create_cycle(source_id: str, target_id: str, edges: Iterable[Edge]) -> bool:
    """Return True if some path ``target => ... => source`` already exists."""
    adjacency = build_adjacency(edges)
    visited: set[str] = set()
    stack = [target_id]

    while stack:
        node_id = stack.pop()
        if node_id == source_id:
            return True
        if node_id in visited:
            continue
        visited.add(node_id)
        for neighbor in adjacency.get(node_id, []):
            if neighbor not in visited:
                stack.append(neighbor)

    return False


def check_connection_rules(source: Node, target: Node, existing_edges: list[Edge]) -> ConnectionResult:
    """Structural edge rules without the cycle check."""
    if source.id == target.id:
        return ConnectionResult(valid=False, reason=SELF_LOOP_REASON)

    if any(edge.source == source.id and edge.target == target.id for edge in existing_edges):
        return ConnectionResult(valid=False, reason=DUPLICATE_REASON)

    if source.kind == "end":
        return ConnectionResult(valid=False, reason=END_OUTGOING_REASON)

    if target.kind == "start":
        return ConnectionResult(valid=False, reason=START_INCOMING_REASON)

    return ConnectionResult(valid=True)


def validate_connection(source: Node, target: Node, existing_edges: list[Edge]) -> ConnectionResult:
    result = check_connection_rules(source, target, existing_edges)
    if not result.valid:
        return result

    if would_create_cycle(source.id, target.id, existing_edges):
        return ConnectionResult(valid=False, reason=CYCLE_REASON)

    return ConnectionResult(valid=True)
