from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from workflow_studio.graph.cycles import build_adjacency
from workflow_studio.graph.hooks import EventRegistry
from workflow_studio.graph.models import (
    SYSTEM_NODE_ID,
    Edge,
    ExecutionLogEntry,
    LogStatus,
    Node,
    StartConfig,
)
from workflow_studio.graph.semantics import execute_node
from workflow_studio.graph.validation import validate_workflow


LOGGER = logging.getLogger(__name__)

DEFAULT_EXECUTION_DELAY_SECONDS = 0.5
DEFAULT_MAX_LOG_ENTRIES = 100
CYCLE_MESSAGE = "Cycle detected - node already visited"
CANCELLED_MESSAGE = "Execution cancelled"


class WorkflowExecutionError(RuntimeError):
    """Raised when the executor is driven incorrectly (not for graph failures)."""


@dataclass(slots=True)
class ExecutionResult:
    status: str
    logs: list[ExecutionLogEntry]
    visited_nodes: list[str] = field(default_factory=list)
    started_at: str = ""
    finished_at: str = ""

    @property
    def errors(self) -> list[ExecutionLogEntry]:
        return [entry for entry in self.logs if entry.status == "error"]


@dataclass(slots=True)
class _WorkItem:
    node: Node
    input_data: dict[str, Any]
    visited: frozenset[str]


class WorkflowExecutor:
    """Walks a workflow graph from every Start node and records a bounded log.

    Execution is cooperative: the run suspends only at the per-node pacing
    delay, and branches are processed one node at a time in FIFO order. All
    failures end up as log entries; ``arun`` does not raise for graph problems.
    """

    def __init__(
        self,
        *,
        execution_delay: float = DEFAULT_EXECUTION_DELAY_SECONDS,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        hook_registry: EventRegistry | None = None,
    ) -> None:
        self._execution_delay = max(0.0, float(execution_delay))
        self._max_log_entries = max(1, int(max_log_entries))
        self._hooks = hook_registry or EventRegistry()
        self._logs: deque[ExecutionLogEntry] = deque(maxlen=self._max_log_entries)
        self._is_executing = False
        self._cancel_requested = False

    @property
    def hooks(self) -> EventRegistry:
        return self._hooks

    @property
    def execution_logs(self) -> list[ExecutionLogEntry]:
        return list(self._logs)

    @property
    def is_executing(self) -> bool:
        return self._is_executing

    @property
    def max_log_entries(self) -> int:
        return self._max_log_entries

    def clear_logs(self) -> None:
        self._logs.clear()

    def cancel(self) -> None:
        if self._is_executing:
            self._cancel_requested = True

    async def arun(self, *, nodes: list[Node], edges: list[Edge]) -> ExecutionResult:
        if self._is_executing:
            LOGGER.warning("Execution requested while a run is in progress; ignoring.")
            return ExecutionResult(status="busy", logs=self.execution_logs)

        self.clear_logs()
        self._is_executing = True
        self._cancel_requested = False
        started_at = _now()
        visited_nodes: list[str] = []
        status = "completed"

        await self._emit_hook("before_run", {"node_count": len(nodes), "edge_count": len(edges)})

        try:
            validation = validate_workflow(nodes, edges)
            for warning in validation.warnings:
                await self._add_system_log("skipped", f"Warning: {warning}")

            if not validation.valid:
                for error in validation.errors:
                    await self._add_system_log("error", error)
                status = "invalid"
                LOGGER.info("Workflow run rejected by validation (%d errors).", len(validation.errors))
                return self._result(status, visited_nodes, started_at)

            start_nodes = [node for node in nodes if node.kind == "start"]
            node_map = {node.id: node for node in nodes}
            adjacency = build_adjacency(edges, nodes)
            edge_lookup = _edge_lookup(edges)

            LOGGER.info("Executing workflow from %d start node(s).", len(start_nodes))
            for start_node in start_nodes:
                seed = start_node.config.payload if isinstance(start_node.config, StartConfig) else {}
                completed = await self._execute_from_node(
                    start_node=start_node,
                    seed_input=seed if isinstance(seed, dict) else {},
                    node_map=node_map,
                    adjacency=adjacency,
                    edge_lookup=edge_lookup,
                    visited_nodes=visited_nodes,
                )
                if not completed:
                    status = "cancelled"
                    await self._add_system_log("skipped", CANCELLED_MESSAGE)
                    break

            return self._result(status, visited_nodes, started_at)
        finally:
            self._is_executing = False
            self._cancel_requested = False
            await self._emit_hook(
                "after_run",
                {"status": status, "visited_nodes": list(visited_nodes), "log_count": len(self._logs)},
            )

    def run(self, **kwargs: Any) -> ExecutionResult:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            raise WorkflowExecutionError(
                "WorkflowExecutor.run() cannot be called inside an active event loop. Use await arun()."
            )
        return asyncio.run(self.arun(**kwargs))

    async def _execute_from_node(
        self,
        *,
        start_node: Node,
        seed_input: dict[str, Any],
        node_map: dict[str, Node],
        adjacency: dict[str, list[str]],
        edge_lookup: dict[tuple[str, str], Edge],
        visited_nodes: list[str],
    ) -> bool:
        queue: deque[_WorkItem] = deque([_WorkItem(start_node, seed_input, frozenset())])

        while queue:
            if self._cancel_requested:
                return False

            item = queue.popleft()
            node = item.node

            if node.id in item.visited:
                await self._add_log(
                    node=node,
                    input_data=item.input_data,
                    output_data={},
                    status="error",
                    message=CYCLE_MESSAGE,
                )
                continue

            path_visited = item.visited | {node.id}

            await asyncio.sleep(self._execution_delay)
            if self._cancel_requested:
                return False

            await self._emit_hook("before_node", {"node_id": node.id, "node_kind": node.kind, "input": item.input_data})
            outcome = execute_node(node, item.input_data)
            visited_nodes.append(node.id)
            await self._add_log(
                node=node,
                input_data=item.input_data,
                output_data=outcome.output,
                status=outcome.status,
                message=outcome.message,
            )
            await self._emit_hook(
                "after_node",
                {"node_id": node.id, "node_kind": node.kind, "status": outcome.status, "output": outcome.output},
            )

            if outcome.status == "error":
                LOGGER.debug("Node %s failed: %s", node.id, outcome.message)
                await self._emit_hook("on_error", {"node_id": node.id, "error": outcome.message})
                continue

            for target_id in adjacency.get(node.id, []):
                target = node_map.get(target_id)
                if target is None:
                    continue
                if node.kind == "condition":
                    edge = edge_lookup.get((node.id, target_id))
                    handle = edge.source_handle if edge is not None else None
                    if handle == "true" and not outcome.condition_met:
                        continue
                    if handle == "false" and outcome.condition_met:
                        continue
                queue.append(_WorkItem(target, outcome.output, path_visited))

        return True

    async def _add_log(
        self,
        *,
        node: Node,
        input_data: dict[str, Any],
        output_data: dict[str, Any],
        status: LogStatus,
        message: str | None,
    ) -> None:
        entry = ExecutionLogEntry(
            node_id=node.id,
            node_name=node.label,
            node_kind=node.kind,
            input=copy.deepcopy(input_data),
            output=copy.deepcopy(output_data),
            timestamp=_now(),
            status=status,
            message=message,
        )
        await self._append(entry)

    async def _add_system_log(self, status: LogStatus, message: str) -> None:
        entry = ExecutionLogEntry(
            node_id=SYSTEM_NODE_ID,
            node_name="System",
            node_kind="start",
            input={},
            output={},
            timestamp=_now(),
            status=status,
            message=message,
        )
        await self._append(entry)

    async def _append(self, entry: ExecutionLogEntry) -> None:
        # deque(maxlen=...) evicts the oldest entry once the cap is reached.
        self._logs.append(entry)
        await self._emit_hook("log", {"entry": entry})

    async def _emit_hook(self, event: str, context: dict[str, Any]) -> None:
        try:
            await self._hooks.aemit(event, context)
        except Exception:  # noqa: BLE001
            # Hooks should never break workflow execution.
            LOGGER.warning("Hook for '%s' raised; continuing.", event, exc_info=True)

    def _result(self, status: str, visited_nodes: list[str], started_at: str) -> ExecutionResult:
        return ExecutionResult(
            status=status,
            logs=self.execution_logs,
            visited_nodes=list(visited_nodes),
            started_at=started_at,
            finished_at=_now(),
        )


def _edge_lookup(edges: list[Edge]) -> dict[tuple[str, str], Edge]:
    lookup: dict[tuple[str, str], Edge] = {}
    for edge in edges:
        # First edge wins for a (source, target) pair, matching edge order.
        lookup.setdefault((edge.source, edge.target), edge)
    return lookup


def _now() -> str:
    return datetime.now().astimezone().isoformat()
