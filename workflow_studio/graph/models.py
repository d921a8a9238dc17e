from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Literal, Union


NodeKind = Literal["start", "transform", "condition", "end"]
LogStatus = Literal["success", "error", "skipped"]

ALLOWED_NODE_KINDS = ("start", "transform", "condition", "end")
ALLOWED_TRANSFORM_OPERATIONS = {
    "uppercase",
    "lowercase",
    "append",
    "prepend",
    "multiply",
    "add",
    "replace",
}
ALLOWED_CONDITION_OPERATORS = {
    "equals",
    "notEquals",
    "contains",
    "greaterThan",
    "lessThan",
    "greaterThanOrEqual",
    "lessThanOrEqual",
    "isEmpty",
    "isNotEmpty",
    "isEven",
    "isOdd",
    "isDivisibleBy",
}
UNARY_CONDITION_OPERATORS = {"isEmpty", "isNotEmpty", "isEven", "isOdd"}
CONDITION_BRANCH_HANDLES = ("true", "false")

SYSTEM_NODE_ID = "system"


class GraphModelError(ValueError):
    """Raised when a node, edge, or document payload is malformed."""


@dataclass(slots=True, frozen=True)
class NodeKindInfo:
    kind: NodeKind
    label: str
    description: str


NODE_KIND_INFO: dict[str, NodeKindInfo] = {
    "start": NodeKindInfo("start", "Start", "Begin workflow with payload"),
    "transform": NodeKindInfo("transform", "Transform", "Modify data fields"),
    "condition": NodeKindInfo("condition", "If-Else", "Conditional branching"),
    "end": NodeKindInfo("end", "End", "Terminate workflow"),
}


@dataclass(slots=True)
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, payload: object) -> Position:
        if not isinstance(payload, dict):
            raise GraphModelError("Position must be an object with numeric 'x' and 'y'.")
        x = payload.get("x")
        y = payload.get("y")
        if not _is_number(x) or not _is_number(y):
            raise GraphModelError("Position must be an object with numeric 'x' and 'y'.")
        return cls(x=x, y=y)


@dataclass(slots=True)
class StartConfig:
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"payload": copy.deepcopy(self.payload)}


@dataclass(slots=True)
class TransformConfig:
    operation: str = "uppercase"
    field: str = "message"
    value: str | int | float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"operation": self.operation, "field": self.field}
        if self.value is not None:
            data["value"] = self.value
        return data


@dataclass(slots=True)
class ConditionConfig:
    field: str = "message"
    operator: str = "equals"
    value: str | int | float | bool | None = ""

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


@dataclass(slots=True)
class EndConfig:
    label: str = "End"

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label}


NodeConfig = Union[StartConfig, TransformConfig, ConditionConfig, EndConfig]

CONFIG_TYPES: dict[str, type] = {
    "start": StartConfig,
    "transform": TransformConfig,
    "condition": ConditionConfig,
    "end": EndConfig,
}


def default_config(kind: str) -> NodeConfig:
    if kind == "start":
        return StartConfig(payload={"message": "Hello World"})
    if kind == "transform":
        return TransformConfig(operation="uppercase", field="message", value="")
    if kind == "condition":
        return ConditionConfig(field="message", operator="equals", value="")
    if kind == "end":
        return EndConfig(label="End")
    raise GraphModelError(f"Unknown node kind '{kind}'.")


def default_label(kind: str) -> str:
    info = NODE_KIND_INFO.get(kind)
    return info.label if info is not None else "Node"


def config_from_dict(kind: str, payload: object) -> NodeConfig:
    """Build the typed config for ``kind`` from a loose JSON mapping.

    Missing keys fall back to the kind's defaults so partially-filled configs
    coming from older documents stay loadable.
    """
    if kind not in CONFIG_TYPES:
        raise GraphModelError(f"Unknown node kind '{kind}'.")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise GraphModelError(f"Config for {kind} node must be an object.")

    if kind == "start":
        raw_payload = payload.get("payload", {})
        # Kept as-is even when not a mapping; the workflow validator warns about it.
        return StartConfig(payload=copy.deepcopy(raw_payload))

    if kind == "transform":
        operation = payload.get("operation", "uppercase")
        if operation not in ALLOWED_TRANSFORM_OPERATIONS:
            raise GraphModelError(f"Unsupported transform operation '{operation}'.")
        return TransformConfig(
            operation=str(operation),
            field=str(payload.get("field", "message")),
            value=payload.get("value"),
        )

    if kind == "condition":
        operator = payload.get("operator", "equals")
        if operator not in ALLOWED_CONDITION_OPERATORS:
            raise GraphModelError(f"Unsupported condition operator '{operator}'.")
        return ConditionConfig(
            field=str(payload.get("field", "message")),
            operator=str(operator),
            value=payload.get("value", ""),
        )

    return EndConfig(label=str(payload.get("label", "End")))


@dataclass(slots=True)
class Node:
    id: str
    kind: NodeKind
    position: Position = field(default_factory=Position)
    label: str = ""
    config: NodeConfig | None = None

    def __post_init__(self) -> None:
        if self.kind not in CONFIG_TYPES:
            raise GraphModelError(f"Node '{self.id}' has invalid type '{self.kind}'.")
        if self.config is None:
            self.config = default_config(self.kind)
        expected = CONFIG_TYPES[self.kind]
        if not isinstance(self.config, expected):
            raise GraphModelError(
                f"Node '{self.id}' of type '{self.kind}' requires {expected.__name__}, "
                f"got {type(self.config).__name__}."
            )
        if not self.label:
            self.label = default_label(self.kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "position": self.position.to_dict(),
            "data": {
                "label": self.label,
                "config": self.config.to_dict(),
                "nodeType": self.kind,
            },
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Node:
        data = payload.get("data") or {}
        kind = payload.get("type") or data.get("nodeType")
        if kind not in CONFIG_TYPES:
            raise GraphModelError(f"Node '{payload.get('id')}' has invalid type '{kind}'.")
        return cls(
            id=str(payload["id"]),
            kind=kind,
            position=Position.from_dict(payload.get("position")),
            label=str(data.get("label") or default_label(kind)),
            config=config_from_dict(kind, data.get("config")),
        )


@dataclass(slots=True)
class Edge:
    id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    label: str | None = None
    animated: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "source": self.source, "target": self.target}
        if self.source_handle is not None:
            data["sourceHandle"] = self.source_handle
        if self.target_handle is not None:
            data["targetHandle"] = self.target_handle
        if self.label is not None:
            data["label"] = self.label
        if self.animated:
            data["animated"] = True
        return data

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Edge:
        return cls(
            id=str(payload["id"]),
            source=str(payload["source"]),
            target=str(payload["target"]),
            source_handle=payload.get("sourceHandle"),
            target_handle=payload.get("targetHandle"),
            label=payload.get("label"),
            animated=bool(payload.get("animated", False)),
        )


@dataclass(slots=True, frozen=True)
class ExecutionLogEntry:
    node_id: str
    node_name: str
    node_kind: NodeKind
    input: dict[str, Any]
    output: dict[str, Any]
    timestamp: str
    status: LogStatus
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "nodeType": self.node_kind,
            "input": copy.deepcopy(self.input),
            "output": copy.deepcopy(self.output),
            "timestamp": self.timestamp,
            "status": self.status,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ExecutionLogEntry:
        return cls(
            node_id=str(payload["nodeId"]),
            node_name=str(payload.get("nodeName", "")),
            node_kind=payload.get("nodeType", "start"),
            input=dict(payload.get("input") or {}),
            output=dict(payload.get("output") or {}),
            timestamp=str(payload.get("timestamp", "")),
            status=payload.get("status", "success"),
            message=payload.get("message"),
        )


@dataclass(slots=True)
class Viewport:
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "zoom": self.zoom}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Viewport:
        return cls(
            x=payload.get("x", 0.0),
            y=payload.get("y", 0.0),
            zoom=payload.get("zoom", 1.0),
        )


@dataclass(slots=True)
class Snapshot:
    nodes: list[Node]
    edges: list[Edge]

    @classmethod
    def capture(cls, nodes: list[Node], edges: list[Edge]) -> Snapshot:
        return cls(nodes=copy.deepcopy(list(nodes)), edges=copy.deepcopy(list(edges)))

    def copy(self) -> Snapshot:
        return Snapshot.capture(self.nodes, self.edges)


@dataclass(slots=True)
class WorkflowDocument:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    viewport: Viewport | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }
        if self.viewport is not None:
            data["viewport"] = self.viewport.to_dict()
        return data

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> WorkflowDocument:
        """Build a document from an already structurally-validated mapping."""
        viewport = payload.get("viewport")
        return cls(
            nodes=[Node.from_dict(item) for item in payload.get("nodes", [])],
            edges=[Edge.from_dict(item) for item in payload.get("edges", [])],
            viewport=Viewport.from_dict(viewport) if isinstance(viewport, dict) else None,
        )


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
