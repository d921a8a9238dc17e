from __future__ import annotations

import copy
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable

from workflow_studio.graph.connection import validate_connection
from workflow_studio.graph.executor import ExecutionResult, WorkflowExecutor
from workflow_studio.graph.history import DEFAULT_MAX_HISTORY_SIZE, WorkflowHistory
from workflow_studio.graph.hooks import EventRegistry
from workflow_studio.graph.models import (
    CONFIG_TYPES,
    Edge,
    ExecutionLogEntry,
    GraphModelError,
    Node,
    NodeConfig,
    Position,
    Snapshot,
    Viewport,
    WorkflowDocument,
    config_from_dict,
    default_config,
    default_label,
)
from workflow_studio.graph.validation import ValidationResult, validate_imported_workflow, validate_workflow

if TYPE_CHECKING:
    from workflow_studio.notifications import NotificationQueue
    from workflow_studio.persistence import WorkflowPersistence


LOGGER = logging.getLogger(__name__)

NODE_NOT_FOUND_REASON = "Source or target node not found"


@dataclass(slots=True)
class EdgeResult:
    success: bool
    error: str | None = None
    edge_id: str | None = None


@dataclass(slots=True)
class ImportResult:
    success: bool
    errors: list[str] = field(default_factory=list)


class WorkflowStore:
    """Editor state for one workflow: graph, selection, viewport, history, runs.

    Every mutation method is synchronous. A committed mutation records a
    history snapshot and emits a ``change`` event carrying the exported
    document; autosave listens to that event.
    """

    def __init__(
        self,
        *,
        executor: WorkflowExecutor | None = None,
        history: WorkflowHistory | None = None,
        persistence: WorkflowPersistence | None = None,
        notifications: NotificationQueue | None = None,
        hook_registry: EventRegistry | None = None,
        max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
        autosave: bool = True,
    ) -> None:
        self._hooks = hook_registry or EventRegistry()
        self._executor = executor or WorkflowExecutor(hook_registry=self._hooks)
        self._history = history or WorkflowHistory(max_history_size=max_history_size)
        self._persistence = persistence
        self._notifications = notifications
        self._nodes: list[Node] = []
        self._edges: list[Edge] = []
        self._viewport = Viewport()
        self._selected_node_id: str | None = None
        self._selected_node_ids: list[str] = []
        self._last_run: ExecutionResult | None = None

        if persistence is not None and autosave:
            self._hooks.register("change", self._autosave_on_change)

    # Read access

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges)

    @property
    def hooks(self) -> EventRegistry:
        return self._hooks

    @property
    def executor(self) -> WorkflowExecutor:
        return self._executor

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def selected_node_id(self) -> str | None:
        return self._selected_node_id

    @property
    def selected_node_ids(self) -> list[str]:
        return list(self._selected_node_ids)

    @property
    def selected_node(self) -> Node | None:
        if self._selected_node_id is None:
            return None
        return self.get_node(self._selected_node_id)

    @property
    def execution_logs(self) -> list[ExecutionLogEntry]:
        return self._executor.execution_logs

    @property
    def is_executing(self) -> bool:
        return self._executor.is_executing

    @property
    def notifications(self) -> NotificationQueue | None:
        return self._notifications

    @property
    def last_run(self) -> ExecutionResult | None:
        return self._last_run

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def get_node(self, node_id: str) -> Node | None:
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Edge | None:
        for edge in self._edges:
            if edge.id == edge_id:
                return edge
        return None

    # Node mutations

    def add_node(self, kind: str, position: Position | tuple[float, float] | None = None) -> str:
        if kind not in CONFIG_TYPES:
            raise GraphModelError(f"Unknown node kind '{kind}'.")
        node_id = f"node_{uuid.uuid4().hex[:12]}"
        node = Node(
            id=node_id,
            kind=kind,
            position=_as_position(position),
            label=default_label(kind),
            config=default_config(kind),
        )
        self._nodes.append(node)
        self._commit("add_node", node_id=node_id)
        return node_id

    def update_node_position(self, node_id: str, position: Position | tuple[float, float]) -> None:
        # Drag updates are transient and stay out of history.
        node = self.get_node(node_id)
        if node is not None:
            node.position = _as_position(position)

    def update_node_positions(self, updates: Iterable[tuple[str, Position | tuple[float, float]]]) -> None:
        for node_id, position in updates:
            node = self.get_node(node_id)
            if node is not None:
                node.position = _as_position(position)
        self._commit("update_node_positions")

    def update_node_config(self, node_id: str, changes: dict[str, Any] | NodeConfig) -> bool:
        node = self.get_node(node_id)
        if node is None:
            return False

        if isinstance(changes, dict):
            merged = {**node.config.to_dict(), **changes}
            config = config_from_dict(node.kind, merged)
        else:
            config = changes
        if not isinstance(config, CONFIG_TYPES[node.kind]):
            raise GraphModelError(
                f"Node '{node_id}' of type '{node.kind}' cannot take {type(config).__name__}."
            )

        node.config = copy.deepcopy(config)
        self._commit("update_node_config", node_id=node_id)
        return True

    def update_node_label(self, node_id: str, label: str) -> bool:
        node = self.get_node(node_id)
        if node is None:
            return False
        node.label = label
        self._commit("update_node_label", node_id=node_id)
        return True

    def remove_node(self, node_id: str) -> bool:
        return self.remove_nodes([node_id]) > 0

    def remove_nodes(self, node_ids: Iterable[str]) -> int:
        doomed = set(node_ids)
        before = len(self._nodes)
        self._nodes = [node for node in self._nodes if node.id not in doomed]
        removed = before - len(self._nodes)
        if not removed:
            return 0

        self._edges = [
            edge for edge in self._edges if edge.source not in doomed and edge.target not in doomed
        ]
        self._selected_node_ids = [node_id for node_id in self._selected_node_ids if node_id not in doomed]
        if self._selected_node_id in doomed:
            self._selected_node_id = self._selected_node_ids[0] if self._selected_node_ids else None
        self._commit("remove_nodes", node_ids=sorted(doomed))
        return removed

    # Edge mutations

    def add_edge(
        self,
        source: str,
        target: str,
        source_handle: str | None = None,
        target_handle: str | None = None,
    ) -> EdgeResult:
        source_node = self.get_node(source)
        target_node = self.get_node(target)
        if source_node is None or target_node is None:
            return self._reject_edge(NODE_NOT_FOUND_REASON)

        validation = validate_connection(source_node, target_node, self._edges)
        if not validation.valid:
            return self._reject_edge(validation.reason or "Invalid connection")

        edge = Edge(
            id=f"edge_{source}_{target}",
            source=source,
            target=target,
            source_handle=source_handle,
            target_handle=target_handle,
            animated=True,
        )
        self._edges.append(edge)
        self._commit("add_edge", edge_id=edge.id)
        return EdgeResult(success=True, edge_id=edge.id)

    def remove_edge(self, edge_id: str) -> bool:
        before = len(self._edges)
        self._edges = [edge for edge in self._edges if edge.id != edge_id]
        if len(self._edges) == before:
            return False
        self._commit("remove_edge", edge_id=edge_id)
        return True

    # Selection and viewport (not part of history)

    def select_node(self, node_id: str | None) -> None:
        self._selected_node_id = node_id
        self._selected_node_ids = [node_id] if node_id is not None else []

    def select_nodes(self, node_ids: Iterable[str]) -> None:
        known = {node.id for node in self._nodes}
        self._selected_node_ids = [node_id for node_id in node_ids if node_id in known]
        self._selected_node_id = self._selected_node_ids[0] if self._selected_node_ids else None

    def select_all_nodes(self) -> None:
        self.select_nodes(node.id for node in self._nodes)

    def toggle_node_selection(self, node_id: str) -> None:
        if node_id in self._selected_node_ids:
            self._selected_node_ids.remove(node_id)
        elif self.get_node(node_id) is not None:
            self._selected_node_ids.append(node_id)
        self._selected_node_id = self._selected_node_ids[0] if self._selected_node_ids else None

    def update_viewport(self, viewport: Viewport) -> None:
        self._viewport = viewport

    # Whole-document operations

    def clear_workflow(self) -> None:
        self._nodes = []
        self._edges = []
        self.select_node(None)
        self._executor.clear_logs()
        self._commit("clear_workflow")

    def export_workflow(self) -> WorkflowDocument:
        return WorkflowDocument(
            nodes=copy.deepcopy(self._nodes),
            edges=copy.deepcopy(self._edges),
            viewport=copy.deepcopy(self._viewport),
        )

    def import_workflow(self, document: WorkflowDocument | dict[str, Any]) -> ImportResult:
        payload = document.to_dict() if isinstance(document, WorkflowDocument) else document
        validation = validate_imported_workflow(payload)
        if not validation.valid:
            self._notify("error", f"Import failed: {len(validation.errors)} problem(s) found")
            return ImportResult(success=False, errors=validation.errors)

        try:
            parsed = WorkflowDocument.from_dict(payload)
        except (GraphModelError, KeyError, TypeError) as exc:
            return ImportResult(success=False, errors=[str(exc)])

        self._nodes = parsed.nodes
        self._edges = parsed.edges
        if parsed.viewport is not None:
            self._viewport = parsed.viewport
        self.select_node(None)
        self._executor.clear_logs()
        self._commit("import_workflow")
        return ImportResult(success=True)

    def get_workflow_validation(self) -> ValidationResult:
        return validate_workflow(self._nodes, self._edges)

    async def execute_workflow(self) -> ExecutionResult:
        result = await self._executor.arun(nodes=copy.deepcopy(self._nodes), edges=copy.deepcopy(self._edges))
        self._last_run = result
        if self._persistence is not None and result.status != "busy":
            try:
                self._persistence.record_run(
                    result.logs,
                    status=result.status,
                    started_at=result.started_at,
                    finished_at=result.finished_at,
                )
            except sqlite3.Error as exc:
                LOGGER.error("Failed to archive workflow run: %s", exc)
        if result.status == "invalid":
            self._notify("error", "Workflow validation failed; see execution log.")
        elif result.errors:
            self._notify("warning", f"Workflow finished with {len(result.errors)} error(s).")
        elif result.status == "completed":
            self._notify("success", "Workflow executed successfully.")
        return result

    def cancel_execution(self) -> None:
        self._executor.cancel()

    def clear_execution_logs(self) -> None:
        self._executor.clear_logs()

    # History

    def undo(self) -> bool:
        return self._apply_snapshot(self._history.undo(), "undo")

    def redo(self) -> bool:
        return self._apply_snapshot(self._history.redo(), "redo")

    def load_autosave(self) -> bool:
        if self._persistence is None:
            return False
        document = self._persistence.load_from_storage()
        if document is None:
            return False
        return self.import_workflow(document).success

    # Internals

    def _apply_snapshot(self, snapshot: Snapshot | None, action: str) -> bool:
        if snapshot is None:
            return False
        self._history.begin_apply()
        try:
            self._nodes = snapshot.nodes
            self._edges = snapshot.edges
            self.select_node(None)
            self._emit_change(action, from_history=True)
        finally:
            self._history.end_apply()
        return True

    def _commit(self, action: str, **details: Any) -> None:
        self._history.save(self._nodes, self._edges)
        LOGGER.debug("Workflow mutation committed: %s %s", action, details)
        self._emit_change(action, from_history=False, **details)

    def _emit_change(self, action: str, *, from_history: bool, **details: Any) -> None:
        context = {
            "action": action,
            "from_history": from_history,
            "document": self.export_workflow(),
            **details,
        }
        try:
            self._hooks.emit("change", context)
        except Exception:  # noqa: BLE001
            # Listeners never roll back a committed mutation.
            LOGGER.warning("Change listener raised after '%s'; continuing.", action, exc_info=True)

    def _autosave_on_change(self, context: dict[str, Any]) -> None:
        if context.get("from_history") or self._persistence is None:
            return
        self._persistence.autosave(context["document"])

    def _reject_edge(self, reason: str) -> EdgeResult:
        self._notify("error", reason)
        return EdgeResult(success=False, error=reason)

    def _notify(self, level: str, message: str) -> None:
        if self._notifications is not None:
            self._notifications.show(message, level)


def _as_position(position: Position | tuple[float, float] | None) -> Position:
    if position is None:
        return Position()
    if isinstance(position, Position):
        return Position(x=position.x, y=position.y)
    x, y = position
    return Position(x=x, y=y)
