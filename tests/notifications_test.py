from __future__ import annotations

import unittest

from workflow_studio.graph import EventRegistry
from workflow_studio.notifications import NotificationQueue


class NotificationQueueTests(unittest.TestCase):
    def test_levels_and_drain(self) -> None:
        queue = NotificationQueue()
        queue.success("saved")
        queue.error("failed", duration=5)
        queue.info("fyi")

        pending = queue.pending
        self.assertEqual([item.level for item in pending], ["success", "error", "info"])
        self.assertEqual(pending[1].duration, 5)
        self.assertEqual(len(queue.drain()), 3)
        self.assertEqual(queue.pending, [])

    def test_dismiss_by_id(self) -> None:
        queue = NotificationQueue()
        first = queue.warning("one")
        second = queue.warning("two")
        self.assertNotEqual(first, second)
        self.assertTrue(queue.dismiss(first))
        self.assertFalse(queue.dismiss(first))
        self.assertEqual([item.message for item in queue.pending], ["two"])

    def test_show_emits_event(self) -> None:
        hooks = EventRegistry()
        seen: list[str] = []
        hooks.register("notification", lambda context: seen.append(context["notification"].message))
        NotificationQueue(hook_registry=hooks).show("hello")
        self.assertEqual(seen, ["hello"])


if __name__ == "__main__":
    unittest.main()
