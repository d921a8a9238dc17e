from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Literal

from workflow_studio.graph.hooks import EventRegistry


NotificationLevel = Literal["success", "error", "warning", "info"]

DEFAULT_DURATION_SECONDS = 3.0


@dataclass(slots=True, frozen=True)
class Notification:
    id: int
    message: str
    level: NotificationLevel
    duration: float


class NotificationQueue:
    """Outbound user-message channel; the presentation layer drains it."""

    def __init__(self, hook_registry: EventRegistry | None = None) -> None:
        self._hooks = hook_registry
        self._items: list[Notification] = []
        self._ids = itertools.count()

    @property
    def pending(self) -> list[Notification]:
        return list(self._items)

    def show(
        self,
        message: str,
        level: NotificationLevel = "info",
        duration: float = DEFAULT_DURATION_SECONDS,
    ) -> int:
        notification = Notification(id=next(self._ids), message=message, level=level, duration=duration)
        self._items.append(notification)
        if self._hooks is not None:
            self._hooks.emit("notification", {"notification": notification})
        return notification.id

    def success(self, message: str, duration: float = DEFAULT_DURATION_SECONDS) -> int:
        return self.show(message, "success", duration)

    def error(self, message: str, duration: float = DEFAULT_DURATION_SECONDS) -> int:
        return self.show(message, "error", duration)

    def warning(self, message: str, duration: float = DEFAULT_DURATION_SECONDS) -> int:
        return self.show(message, "warning", duration)

    def info(self, message: str, duration: float = DEFAULT_DURATION_SECONDS) -> int:
        return self.show(message, "info", duration)

    def dismiss(self, notification_id: int) -> bool:
        for index, item in enumerate(self._items):
            if item.id == notification_id:
                del self._items[index]
                return True
        return False

    def drain(self) -> list[Notification]:
        items = self._items
        self._items = []
        return items
