from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


LOGGER = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], object | Awaitable[object]]


@dataclass(slots=True)
class EventInvocation:
    event: str
    callback_name: str
    result: object | None


class EventRegistry:
    """Callback registry shared by the store (mutations) and the executor (runs)."""

    def __init__(self) -> None:
        self._callbacks: dict[str, list[EventCallback]] = defaultdict(list)

    def register(self, event: str, callback: EventCallback) -> None:
        self._callbacks[event].append(callback)

    def unregister(self, event: str, callback: EventCallback) -> None:
        callbacks = self._callbacks.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def clear(self, event: str | None = None) -> None:
        if event is None:
            self._callbacks.clear()
            return
        self._callbacks.pop(event, None)

    def callbacks_for(self, event: str) -> list[EventCallback]:
        return list(self._callbacks.get(event, []))

    def emit(self, event: str, context: dict[str, Any]) -> list[EventInvocation]:
        """Synchronous dispatch; awaitable results are closed, not awaited."""
        invocations: list[EventInvocation] = []
        for callback in self.callbacks_for(event):
            result = callback(context)
            if inspect.iscoroutine(result):
                result.close()
                LOGGER.warning("Async callback %s ignored for sync event '%s'.", _name(callback), event)
                result = None
            invocations.append(EventInvocation(event=event, callback_name=_name(callback), result=result))
        return invocations

    async def aemit(self, event: str, context: dict[str, Any]) -> list[EventInvocation]:
        invocations: list[EventInvocation] = []
        for callback in self.callbacks_for(event):
            result = callback(context)
            if inspect.isawaitable(result):
                result = await result
            invocations.append(EventInvocation(event=event, callback_name=_name(callback), result=result))
        return invocations


def _name(callback: EventCallback) -> str:
    return str(getattr(callback, "__name__", callback.__class__.__name__))


EXECUTION_EVENTS = {
    "before_run",
    "after_run",
    "before_node",
    "after_node",
    "on_error",
    "log",
}
STORE_EVENTS = {"change", "notification"}
