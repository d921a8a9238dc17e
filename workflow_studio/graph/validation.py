from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from workflow_studio.graph.cycles import detect_cycles
from workflow_studio.graph.models import (
    ALLOWED_NODE_KINDS,
    Edge,
    GraphModelError,
    Node,
    StartConfig,
    config_from_dict,
)


CYCLE_ARROW = " → "


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ImportValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class JsonValidationResult:
    valid: bool
    data: object = None
    error: str | None = None


def validate_workflow(nodes: list[Node], edges: list[Edge]) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not nodes:
        errors.append("Workflow is empty. Add at least a Start and End node.")
        return ValidationResult(valid=False, errors=errors, warnings=warnings)

    start_nodes = [node for node in nodes if node.kind == "start"]
    end_nodes = [node for node in nodes if node.kind == "end"]

    if not start_nodes:
        errors.append("Workflow must have at least one Start node")

    if not end_nodes:
        warnings.append("Workflow has no End node. Execution will stop after the last connected node.")

    cycle = detect_cycles(nodes, edges)
    if cycle.has_cycle:
        labels = {node.id: node.label for node in nodes}
        rendered = CYCLE_ARROW.join(labels.get(node_id) or node_id for node_id in cycle.cycle_path)
        errors.append(f"Infinite loop detected: {rendered}")

    sources = {edge.source for edge in edges}
    targets = {edge.target for edge in edges}

    for node in start_nodes:
        if node.id not in sources:
            warnings.append(f'Start node "{node.label}" has no outgoing connections')

    for node in end_nodes:
        if node.id not in targets:
            warnings.append(f'End node "{node.label}" has no incoming connections')

    for node in nodes:
        if node.kind in {"start", "end"}:
            continue
        has_incoming = node.id in targets
        has_outgoing = node.id in sources
        if not has_incoming and not has_outgoing:
            warnings.append(f'Node "{node.label}" is not connected to the workflow')
        elif not has_incoming:
            warnings.append(f'Node "{node.label}" has no incoming connections')
        elif not has_outgoing:
            warnings.append(f'Node "{node.label}" has no outgoing connections')

    for node in start_nodes:
        config = node.config
        if not isinstance(config, StartConfig) or not isinstance(config.payload, dict):
            warnings.append(f'Start node "{node.label}" has invalid payload configuration')

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_imported_workflow(data: object) -> ImportValidationResult:
    """Structural gate for workflow documents; collects every problem found."""
    errors: list[str] = []

    if not isinstance(data, dict):
        errors.append("Invalid workflow data: expected an object")
        return ImportValidationResult(valid=False, errors=errors)

    nodes = data.get("nodes")
    edges = data.get("edges")
    node_ids: set[str] = set()

    if not isinstance(nodes, list):
        errors.append('Invalid workflow: "nodes" must be an array')
    else:
        for index, node in enumerate(nodes):
            if not isinstance(node, dict):
                errors.append(f"Node at index {index} must be an object")
                continue
            _validate_imported_node(node, index, node_ids, errors)

    if not isinstance(edges, list):
        errors.append('Invalid workflow: "edges" must be an array')
    else:
        for index, edge in enumerate(edges):
            if not isinstance(edge, dict):
                errors.append(f"Edge at index {index} must be an object")
                continue
            _validate_imported_edge(edge, index, errors)

        if isinstance(nodes, list):
            for edge in edges:
                if not isinstance(edge, dict):
                    continue
                source = edge.get("source")
                target = edge.get("target")
                if source and str(source) not in node_ids:
                    errors.append(f'Edge "{edge.get("id")}" references non-existent source node "{source}"')
                if target and str(target) not in node_ids:
                    errors.append(f'Edge "{edge.get("id")}" references non-existent target node "{target}"')

    viewport = data.get("viewport")
    if viewport is not None and not isinstance(viewport, dict):
        errors.append('Invalid workflow: "viewport" must be an object')

    return ImportValidationResult(valid=not errors, errors=errors)


def validate_json(text: str) -> JsonValidationResult:
    try:
        return JsonValidationResult(valid=True, data=json.loads(text))
    except json.JSONDecodeError as exc:
        return JsonValidationResult(valid=False, error=f"Invalid JSON: {exc.msg}")


def _validate_imported_node(
    node: dict[str, Any],
    index: int,
    node_ids: set[str],
    errors: list[str],
) -> None:
    node_id = node.get("id")
    display = node_id or index

    if not isinstance(node_id, str) or not node_id:
        errors.append(f'Node at index {index} is missing "id" field')
    elif node_id in node_ids:
        errors.append(f'Duplicate node id "{node_id}"')
    else:
        node_ids.add(node_id)

    node_type = node.get("type")
    if not isinstance(node_type, str):
        node_type = None if node_type is None else str(node_type)
    if not node_type:
        errors.append(f'Node at index {index} is missing "type" field')
    elif node_type not in ALLOWED_NODE_KINDS:
        errors.append(f'Node "{display}" has invalid type "{node_type}"')

    position = node.get("position")
    if (
        not isinstance(position, dict)
        or not _is_number(position.get("x"))
        or not _is_number(position.get("y"))
    ):
        errors.append(f'Node "{display}" has invalid position')

    data = node.get("data")
    if not isinstance(data, dict) or not data.get("nodeType"):
        errors.append(f'Node "{display}" has invalid data structure')
        return

    if node_type in ALLOWED_NODE_KINDS and data.get("nodeType") != node_type:
        errors.append(
            f'Node "{display}" has data.nodeType "{data.get("nodeType")}" that does not match type "{node_type}"'
        )
        return

    if node_type in ALLOWED_NODE_KINDS:
        try:
            config_from_dict(node_type, data.get("config"))
        except GraphModelError as exc:
            errors.append(f'Node "{display}" has invalid config: {exc}')


def _validate_imported_edge(edge: dict[str, Any], index: int, errors: list[str]) -> None:
    if not edge.get("id"):
        errors.append(f'Edge at index {index} is missing "id" field')
    if not edge.get("source"):
        errors.append(f'Edge at index {index} is missing "source" field')
    if not edge.get("target"):
        errors.append(f'Edge at index {index} is missing "target" field')


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
