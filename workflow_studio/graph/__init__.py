from workflow_studio.graph.connection import ConnectionResult, validate_connection, would_create_cycle
from workflow_studio.graph.cycles import CycleDetectionResult, build_adjacency, detect_cycles
from workflow_studio.graph.executor import ExecutionResult, WorkflowExecutionError, WorkflowExecutor
from workflow_studio.graph.history import WorkflowHistory
from workflow_studio.graph.hooks import EXECUTION_EVENTS, STORE_EVENTS, EventInvocation, EventRegistry
from workflow_studio.graph.models import (
    ConditionConfig,
    Edge,
    EndConfig,
    ExecutionLogEntry,
    GraphModelError,
    Node,
    Position,
    Snapshot,
    StartConfig,
    TransformConfig,
    Viewport,
    WorkflowDocument,
)
from workflow_studio.graph.store import EdgeResult, ImportResult, WorkflowStore
from workflow_studio.graph.validation import (
    ImportValidationResult,
    ValidationResult,
    validate_imported_workflow,
    validate_json,
    validate_workflow,
)

__all__ = [
    "EXECUTION_EVENTS",
    "STORE_EVENTS",
    "ConditionConfig",
    "ConnectionResult",
    "CycleDetectionResult",
    "Edge",
    "EdgeResult",
    "EndConfig",
    "EventInvocation",
    "EventRegistry",
    "ExecutionLogEntry",
    "ExecutionResult",
    "GraphModelError",
    "ImportResult",
    "ImportValidationResult",
    "Node",
    "Position",
    "Snapshot",
    "StartConfig",
    "TransformConfig",
    "ValidationResult",
    "Viewport",
    "WorkflowDocument",
    "WorkflowExecutionError",
    "WorkflowExecutor",
    "WorkflowHistory",
    "WorkflowStore",
    "build_adjacency",
    "detect_cycles",
    "validate_connection",
    "validate_imported_workflow",
    "validate_json",
    "validate_workflow",
    "would_create_cycle",
]
