from __future__ import annotations

import logging

from workflow_studio.graph.models import Edge, Node, Snapshot


LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY_SIZE = 50


class WorkflowHistory:
    """Linear undo/redo stack of deep-copied graph snapshots.

    Saving after an undo discards the redo tail. Once the stack exceeds
    ``max_history_size`` the oldest snapshot is dropped.
    """

    def __init__(self, max_history_size: int = DEFAULT_MAX_HISTORY_SIZE) -> None:
        self._max_history_size = max(2, int(max_history_size))
        self._history: list[Snapshot] = [Snapshot(nodes=[], edges=[])]
        self._index = 0
        self._applying = False

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._history) - 1

    @property
    def size(self) -> int:
        return len(self._history)

    @property
    def index(self) -> int:
        return self._index

    def is_in_undo_redo(self) -> bool:
        return self._applying

    def save(self, nodes: list[Node], edges: list[Edge]) -> None:
        if self._applying:
            return

        if self._index < len(self._history) - 1:
            del self._history[self._index + 1 :]

        self._history.append(Snapshot.capture(nodes, edges))
        if len(self._history) > self._max_history_size:
            self._history.pop(0)
        self._index = len(self._history) - 1

    def undo(self) -> Snapshot | None:
        if not self.can_undo:
            return None
        self._index -= 1
        return self._checkout()

    def redo(self) -> Snapshot | None:
        if not self.can_redo:
            return None
        self._index += 1
        return self._checkout()

    def reset(self) -> None:
        self._history = [Snapshot(nodes=[], edges=[])]
        self._index = 0

    def begin_apply(self) -> None:
        self._applying = True

    def end_apply(self) -> None:
        self._applying = False

    def _checkout(self) -> Snapshot:
        LOGGER.debug("History moved to %d/%d.", self._index, len(self._history) - 1)
        return self._history[self._index].copy()
