from __future__ import annotations

import asyncio
import io
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from prompt_toolkit.document import Document
from rich.console import Console

from workflow_studio.cli import SlashCommandCompleter, WorkflowShell
from workflow_studio.graph import EventRegistry, WorkflowExecutor, WorkflowStore
from workflow_studio.notifications import NotificationQueue
from workflow_studio.persistence import WorkflowPersistence
from workflow_studio.settings import AppSettings


class _ShellHarness:
    def __init__(self, tmp_dir: str) -> None:
        self.buffer = io.StringIO()
        settings = AppSettings(execution_delay_seconds=0, sqlite_path=Path(tmp_dir) / "workflow.db")
        hooks = EventRegistry()
        self.persistence = WorkflowPersistence(db_path=settings.sqlite_path)
        self.notifications = NotificationQueue(hook_registry=hooks)
        self.store = WorkflowStore(
            executor=WorkflowExecutor(execution_delay=0, hook_registry=hooks),
            persistence=self.persistence,
            notifications=self.notifications,
            hook_registry=hooks,
        )
        self.shell = WorkflowShell(
            settings=settings,
            store=self.store,
            persistence=self.persistence,
            notifications=self.notifications,
            console=Console(file=self.buffer, width=160, no_color=True, highlight=False, markup=False),
        )

    def command(self, line: str) -> str:
        self.buffer.seek(0)
        self.buffer.truncate()
        asyncio.run(self.shell._handle_command(line))
        return self.buffer.getvalue()


class WorkflowShellTests(unittest.TestCase):
    def test_build_and_run_workflow(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            harness = _ShellHarness(tmp_dir)
            self.assertIn("Added start node", harness.command("/add start 0 0"))
            harness.command("/add transform")
            harness.command("/add end")
            start, transform, end = [node.id for node in harness.store.nodes]

            self.assertIn("Connected", harness.command(f"/connect {start} {transform}"))
            harness.command(f"/connect {transform} {end}")
            self.assertIn("Workflow is valid.", harness.command("/validate"))

            output = harness.command("/run")
            self.assertIn("Execution log (3 entries)", output)
            self.assertIn("Run completed: 3 node(s) executed.", output)
            self.assertIn("[success] Workflow executed successfully.", output)
            self.assertIn("Workflow execution completed", harness.command("/logs"))
            self.assertIn("| completed | 3 entries, 0 errors", harness.command("/runs"))

    def test_rejected_connection_is_reported(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            harness = _ShellHarness(tmp_dir)
            harness.command("/add end")
            harness.command("/add transform")
            end, transform = [node.id for node in harness.store.nodes]

            output = harness.command(f"/connect {end} {transform}")
            self.assertIn("[error] End nodes cannot have outgoing connections", output)
            self.assertEqual(harness.store.edges, [])

    def test_config_label_and_undo(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            harness = _ShellHarness(tmp_dir)
            harness.command("/add condition")
            node_id = harness.store.nodes[0].id

            harness.command(f'/config {node_id} {{"operator": "isEven", "field": "n"}}')
            self.assertEqual(harness.store.get_node(node_id).config.operator, "isEven")
            self.assertIn("Invalid JSON", harness.command(f"/config {node_id} {{oops"))
            self.assertIn("Error: Unsupported condition operator", harness.command(f'/config {node_id} {{"operator": "nope"}}'))

            harness.command(f"/label {node_id} Is even?")
            self.assertEqual(harness.store.get_node(node_id).label, "Is even?")

            self.assertIn("Undone.", harness.command("/undo"))
            self.assertEqual(harness.store.get_node(node_id).label, "If-Else")
            self.assertIn("Redone.", harness.command("/redo"))
            self.assertIn("Nothing to redo.", harness.command("/redo"))

    def test_export_and_import(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            harness = _ShellHarness(tmp_dir)
            harness.command("/add start")
            path = Path(tmp_dir) / "flow.json"
            self.assertIn("Workflow exported to", harness.command(f"/export {path}"))

            harness.command("/clear")
            self.assertEqual(harness.store.nodes, [])
            self.assertIn("Workflow imported successfully", harness.command(f"/import {path}"))
            self.assertEqual(len(harness.store.nodes), 1)

    def test_run_file_validate_only(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            harness = _ShellHarness(tmp_dir)
            path = Path(tmp_dir) / "flow.json"
            path.write_text('{"nodes": [], "edges": []}', encoding="utf-8")

            code = asyncio.run(harness.shell.run_file(path, validate_only=True))
            self.assertEqual(code, 1)
            self.assertIn("Workflow is empty", harness.buffer.getvalue())

    def test_uses_notifications_of_injected_store(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            buffer = io.StringIO()
            settings = AppSettings(execution_delay_seconds=0, sqlite_path=Path(tmp_dir) / "workflow.db")
            notifications = NotificationQueue()
            store = WorkflowStore(executor=WorkflowExecutor(execution_delay=0), notifications=notifications)
            shell = WorkflowShell(
                settings=settings,
                store=store,
                persistence=WorkflowPersistence(db_path=settings.sqlite_path),
                console=Console(file=buffer, width=160, no_color=True, highlight=False, markup=False),
            )
            self.assertIs(shell.notifications, notifications)

            end = store.add_node("end")
            transform = store.add_node("transform")
            asyncio.run(shell._handle_command(f"/connect {end} {transform}"))
            self.assertIn("[error] End nodes cannot have outgoing connections", buffer.getvalue())

    def test_quit_and_unknown_commands(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            harness = _ShellHarness(tmp_dir)
            self.assertIn("Unknown command", harness.command("/frobnicate"))
            self.assertTrue(asyncio.run(harness.shell._handle_command("/quit")))
            self.assertFalse(asyncio.run(harness.shell._handle_command("/help")))


class SlashCommandCompleterTests(unittest.TestCase):
    def test_completes_root_and_subcommands(self) -> None:
        completer = SlashCommandCompleter(
            root_commands_provider=lambda: ["/connect", "/config", "/run"],
            subcommands_provider=lambda root: ["start", "end"] if root == "/config" else [],
        )

        roots = [item.text for item in completer.get_completions(Document("/co"), None)]
        self.assertEqual(roots, ["/config", "/connect"])

        subs = [item.text for item in completer.get_completions(Document("/config s"), None)]
        self.assertEqual(subs, ["/config start"])
        self.assertEqual(list(completer.get_completions(Document("plain text"), None)), [])


if __name__ == "__main__":
    unittest.main()
