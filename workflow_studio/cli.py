from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.table import Table

from workflow_studio.graph.executor import WorkflowExecutor
from workflow_studio.graph.hooks import EventRegistry
from workflow_studio.graph.models import ALLOWED_NODE_KINDS, NODE_KIND_INFO, ExecutionLogEntry, GraphModelError
from workflow_studio.graph.store import WorkflowStore
from workflow_studio.logging_utils import configure_logging
from workflow_studio.notifications import NotificationQueue
from workflow_studio.persistence import WorkflowPersistence
from workflow_studio.settings import AppSettings, load_settings


LOGGER = logging.getLogger(__name__)


class SlashCommandCompleter(Completer):
    def __init__(
        self,
        root_commands_provider: Callable[[], Sequence[str]],
        subcommands_provider: Callable[[str], Sequence[str]],
    ) -> None:
        self._root_commands_provider = root_commands_provider
        self._subcommands_provider = subcommands_provider

    def get_completions(self, document, complete_event):  # type: ignore[override]
        text_before_cursor = document.text_before_cursor
        if not text_before_cursor.startswith("/"):
            return

        stripped = text_before_cursor.strip()
        trailing_space = text_before_cursor.endswith(" ")
        parts = stripped.split()
        if not parts:
            return

        root = parts[0]
        root_commands = sorted(set(self._root_commands_provider()))
        if len(parts) == 1 and not trailing_space:
            for command in root_commands:
                if command.startswith(root):
                    yield Completion(command, start_position=-len(root))
            return

        if root not in root_commands:
            return

        for option in sorted(set(self._subcommands_provider(root))):
            candidate = f"{root} {option}"
            if candidate.startswith(text_before_cursor):
                yield Completion(candidate, start_position=-len(text_before_cursor))


class WorkflowShell:
    """Slash-command front end over a ``WorkflowStore``."""

    def __init__(
        self,
        *,
        settings: AppSettings | None = None,
        store: WorkflowStore | None = None,
        persistence: WorkflowPersistence | None = None,
        notifications: NotificationQueue | None = None,
        console: Console | None = None,
    ) -> None:
        self.console = console or Console(no_color=True, highlight=False, markup=False)
        self.settings = settings or load_settings()
        self.persistence = persistence or WorkflowPersistence(
            db_path=self.settings.sqlite_path,
            storage_key=self.settings.storage_key,
        )

        if store is None:
            hooks = EventRegistry()
            self.notifications = notifications or NotificationQueue(hook_registry=hooks)
            store = WorkflowStore(
                executor=WorkflowExecutor(
                    execution_delay=self.settings.execution_delay_seconds,
                    max_log_entries=self.settings.max_log_entries,
                    hook_registry=hooks,
                ),
                persistence=self.persistence,
                notifications=self.notifications,
                hook_registry=hooks,
                max_history_size=self.settings.max_history_size,
                autosave=self.settings.autosave_enabled,
            )
        else:
            self.notifications = notifications or store.notifications or NotificationQueue()
        self.store = store
        self._prompt_session: PromptSession[str] | None = None

    def _build_prompt_session(self) -> PromptSession[str]:
        return PromptSession(
            completer=SlashCommandCompleter(
                root_commands_provider=self._root_commands,
                subcommands_provider=self._subcommand_options,
            ),
            complete_while_typing=True,
            history=InMemoryHistory(),
            bottom_toolbar=self._get_footer,
        )

    async def _prompt(self, prompt: str) -> str:
        if self._prompt_session is None:
            self._prompt_session = self._build_prompt_session()
        return await self._prompt_session.prompt_async(prompt)

    def _print_list(self, title: str, items: list[str]) -> None:
        self.console.print(title)
        if not items:
            self.console.print("- (none)")
        else:
            for item in items:
                self.console.print(f"- {item}")
        self.console.print()

    def _print_notifications(self) -> None:
        for notification in self.notifications.drain():
            self.console.print(f"[{notification.level}] {notification.message}")

    def _print_logs(self, entries: list[ExecutionLogEntry]) -> None:
        if not entries:
            self.console.print("No execution logs yet. Use /run to execute the workflow.")
            return
        table = Table(title=f"Execution log ({len(entries)} entries)")
        table.add_column("Time")
        table.add_column("Node")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Message")
        for entry in entries:
            table.add_row(
                _clock(entry.timestamp),
                entry.node_name,
                entry.node_kind,
                entry.status,
                entry.message or "",
            )
        self.console.print(table)

    async def _handle_command(self, command_line: str) -> bool:
        stripped = command_line.strip()
        parts = stripped.split()
        if not parts:
            return False
        command = parts[0].lower()
        args = parts[1:]
        if command in {"/label", "/config"}:
            # Keep the free-text remainder intact.
            args = stripped.split(maxsplit=2)[1:]

        if command == "/quit":
            self.console.print("Goodbye.")
            return True

        handlers: dict[str, Callable[[list[str]], None]] = {
            "/add": self._handle_add_command,
            "/nodes": self._handle_nodes_command,
            "/edges": self._handle_edges_command,
            "/connect": self._handle_connect_command,
            "/disconnect": self._handle_disconnect_command,
            "/remove": self._handle_remove_command,
            "/label": self._handle_label_command,
            "/config": self._handle_config_command,
            "/validate": self._handle_validate_command,
            "/logs": self._handle_logs_command,
            "/undo": self._handle_undo_command,
            "/redo": self._handle_redo_command,
            "/export": self._handle_export_command,
            "/import": self._handle_import_command,
            "/clear": self._handle_clear_command,
            "/runs": self._handle_runs_command,
        }

        if command == "/run":
            await self._handle_run_command()
        elif command == "/help":
            self._print_help()
        elif command in handlers:
            try:
                handlers[command](args)
            except GraphModelError as exc:
                self.console.print(f"Error: {exc}")
        else:
            self.console.print("Unknown command. Use /help for available commands.")

        self._print_notifications()
        return False

    def _handle_add_command(self, args: list[str]) -> None:
        if not args or args[0].lower() not in ALLOWED_NODE_KINDS:
            self.console.print(f"Usage: /add <{'|'.join(ALLOWED_NODE_KINDS)}> [x y]")
            return
        position: tuple[float, float] | None = None
        if len(args) >= 3:
            try:
                position = (float(args[1]), float(args[2]))
            except ValueError:
                self.console.print("Position must be two numbers.")
                return
        node_id = self.store.add_node(args[0].lower(), position)
        self.console.print(f"Added {args[0].lower()} node {node_id}.")

    def _handle_nodes_command(self, args: list[str]) -> None:
        nodes = self.store.nodes
        if not nodes:
            self.console.print("No nodes. Use /add <kind> to create one.")
            return
        table = Table(title=f"Nodes ({len(nodes)})")
        table.add_column("ID")
        table.add_column("Type")
        table.add_column("Label")
        table.add_column("Config")
        for node in nodes:
            table.add_row(
                node.id,
                NODE_KIND_INFO[node.kind].label,
                node.label,
                json.dumps(node.config.to_dict(), ensure_ascii=False),
            )
        self.console.print(table)

    def _handle_edges_command(self, args: list[str]) -> None:
        items = []
        for edge in self.store.edges:
            branch = f" [{edge.source_handle}]" if edge.source_handle else ""
            items.append(f"{edge.id}: {edge.source}{branch} -> {edge.target}")
        self._print_list("Edges", items)

    def _handle_connect_command(self, args: list[str]) -> None:
        if len(args) not in {2, 3} or (len(args) == 3 and args[2].lower() not in {"true", "false"}):
            self.console.print("Usage: /connect <source_id> <target_id> [true|false]")
            return
        handle = args[2].lower() if len(args) == 3 else None
        result = self.store.add_edge(args[0], args[1], source_handle=handle)
        if result.success:
            self.console.print(f"Connected {args[0]} -> {args[1]} ({result.edge_id}).")

    def _handle_disconnect_command(self, args: list[str]) -> None:
        if len(args) != 1:
            self.console.print("Usage: /disconnect <edge_id>")
            return
        if self.store.remove_edge(args[0]):
            self.console.print(f"Removed edge {args[0]}.")
        else:
            self.console.print(f"Unknown edge '{args[0]}'.")

    def _handle_remove_command(self, args: list[str]) -> None:
        if not args:
            self.console.print("Usage: /remove <node_id> [node_id ...]")
            return
        removed = self.store.remove_nodes(args)
        self.console.print(f"Removed {removed} node(s).")

    def _handle_label_command(self, args: list[str]) -> None:
        if len(args) < 2:
            self.console.print("Usage: /label <node_id> <text>")
            return
        if self.store.update_node_label(args[0], args[1]):
            self.console.print(f"Renamed {args[0]}.")
        else:
            self.console.print(f"Unknown node '{args[0]}'.")

    def _handle_config_command(self, args: list[str]) -> None:
        if len(args) < 2:
            self.console.print("Usage: /config <node_id> <json>")
            return
        try:
            changes = json.loads(args[1])
        except json.JSONDecodeError as exc:
            self.console.print(f"Invalid JSON: {exc.msg}")
            return
        if not isinstance(changes, dict):
            self.console.print("Config changes must be a JSON object.")
            return
        if self.store.update_node_config(args[0], changes):
            self.console.print(f"Updated config for {args[0]}.")
        else:
            self.console.print(f"Unknown node '{args[0]}'.")

    def _handle_validate_command(self, args: list[str]) -> None:
        validation = self.store.get_workflow_validation()
        self.console.print("Workflow is valid." if validation.valid else "Workflow is invalid.")
        self._print_list("Errors", validation.errors)
        self._print_list("Warnings", validation.warnings)

    async def _handle_run_command(self) -> None:
        if self.store.is_executing:
            self.console.print("A run is already in progress.")
            return
        result = await self.store.execute_workflow()
        self._print_logs(result.logs)
        self.console.print(f"Run {result.status}: {len(result.visited_nodes)} node(s) executed.")

    def _handle_logs_command(self, args: list[str]) -> None:
        self._print_logs(self.store.execution_logs)

    def _handle_undo_command(self, args: list[str]) -> None:
        self.console.print("Undone." if self.store.undo() else "Nothing to undo.")

    def _handle_redo_command(self, args: list[str]) -> None:
        self.console.print("Redone." if self.store.redo() else "Nothing to redo.")

    def _handle_export_command(self, args: list[str]) -> None:
        path = Path(args[0]).expanduser() if args else None
        try:
            target = self.persistence.save_to_file(self.store.export_workflow(), path)
        except OSError as exc:
            self.notifications.error(f"Export failed: {exc}")
            return
        self.notifications.success(f"Workflow exported to {target}")

    def _handle_import_command(self, args: list[str]) -> None:
        if len(args) != 1:
            self.console.print("Usage: /import <path>")
            return
        loaded = self.persistence.load_from_file(Path(args[0]).expanduser())
        if not loaded.success or loaded.document is None:
            self._print_list("Import failed", loaded.errors)
            return
        result = self.store.import_workflow(loaded.document)
        if result.success:
            self.notifications.success("Workflow imported successfully")
        else:
            self._print_list("Import failed", result.errors)

    def _handle_clear_command(self, args: list[str]) -> None:
        self.store.clear_workflow()
        self.console.print("Workflow cleared.")

    def _handle_runs_command(self, args: list[str]) -> None:
        runs = self.persistence.list_runs()
        items = [
            f"{run.run_id} | {run.status} | {run.entry_count} entries, {run.error_count} errors | {run.started_at}"
            for run in runs
        ]
        self._print_list("Recent runs", items)

    def _print_help(self) -> None:
        commands = [
            ("/add <kind> [x y]", "Add a start, transform, condition, or end node"),
            ("/nodes", "List nodes and their config"),
            ("/edges", "List connections"),
            ("/connect <src> <tgt> [true|false]", "Connect two nodes, optionally from a condition branch"),
            ("/disconnect <edge_id>", "Remove a connection"),
            ("/remove <node_id>", "Remove a node and its connections"),
            ("/label <node_id> <text>", "Rename a node"),
            ("/config <node_id> <json>", "Merge JSON into a node's config"),
            ("/validate", "Check the workflow for errors and warnings"),
            ("/run", "Execute the workflow"),
            ("/logs", "Show the last execution log"),
            ("/undo", "Undo the last change"),
            ("/redo", "Redo the last undone change"),
            ("/export [path]", "Write the workflow to a JSON file"),
            ("/import <path>", "Replace the workflow with a JSON file"),
            ("/clear", "Remove every node and edge"),
            ("/runs", "List archived runs"),
            ("/quit", "Exit"),
        ]
        self.console.print("Commands")
        for command, desc in commands:
            self.console.print(f"- {command}: {desc}")
        self.console.print()

    def _root_commands(self) -> list[str]:
        return [
            "/add",
            "/nodes",
            "/edges",
            "/connect",
            "/disconnect",
            "/remove",
            "/label",
            "/config",
            "/validate",
            "/run",
            "/logs",
            "/undo",
            "/redo",
            "/export",
            "/import",
            "/clear",
            "/runs",
            "/quit",
            "/help",
        ]

    def _subcommand_options(self, root_command: str) -> list[str]:
        if root_command == "/add":
            return list(ALLOWED_NODE_KINDS)
        if root_command in {"/remove", "/label", "/config"}:
            return [node.id for node in self.store.nodes]
        if root_command == "/disconnect":
            return [edge.id for edge in self.store.edges]
        return []

    def _get_footer(self) -> str:
        history = []
        if self.store.can_undo:
            history.append("undo")
        if self.store.can_redo:
            history.append("redo")
        return (
            f"{len(self.store.nodes)} nodes | {len(self.store.edges)} edges"
            f" | {'/'.join(history) or 'no history'}"
        )

    def _print_welcome(self) -> None:
        lines = [
            "Workflow Studio v0.1",
            f"Store: {self.settings.sqlite_path}",
            f"Nodes: {len(self.store.nodes)}  Edges: {len(self.store.edges)}",
        ]
        width = max(len(line) for line in lines) + 2
        self.console.print("┌" + ("─" * width) + "┐")
        for line in lines:
            self.console.print(f"│{line.ljust(width)}│")
        self.console.print("└" + ("─" * width) + "┘")
        self.console.print("Type /help for commands.")
        self.console.print()

    def load_document(self, path: Path) -> bool:
        loaded = self.persistence.load_from_file(path)
        if not loaded.success or loaded.document is None:
            self._print_list(f"Could not load {path}", loaded.errors)
            return False
        result = self.store.import_workflow(loaded.document)
        if not result.success:
            self._print_list(f"Could not load {path}", result.errors)
        self.notifications.drain()
        return result.success

    async def run_file(self, path: Path, *, validate_only: bool = False) -> int:
        if not self.load_document(path):
            return 2
        if validate_only:
            self._handle_validate_command([])
            return 0 if self.store.get_workflow_validation().valid else 1
        result = await self.store.execute_workflow()
        self._print_logs(result.logs)
        self._print_notifications()
        return 0 if result.status == "completed" and not result.errors else 1

    async def run(self, initial_path: Path | None = None) -> None:
        if initial_path is not None:
            self.load_document(initial_path)
        elif self.store.load_autosave():
            self.notifications.drain()
            self.console.print("Restored autosaved workflow.")
        self._print_welcome()

        with patch_stdout():
            while True:
                try:
                    raw = await self._prompt("• ")
                except EOFError:
                    self.console.print("Goodbye.")
                    break
                except KeyboardInterrupt:
                    if self.store.is_executing:
                        self.store.cancel_execution()
                    continue

                user_input = raw.strip()
                if not user_input:
                    continue
                if not user_input.startswith("/"):
                    self.console.print("Commands start with '/'. Use /help for available commands.")
                    continue

                try:
                    should_exit = await self._handle_command(user_input)
                except asyncio.CancelledError:
                    self.store.cancel_execution()
                    self.console.print("Command was interrupted. You can continue.")
                    should_exit = False
                if should_exit:
                    break


def _clock(timestamp: str) -> str:
    # ISO timestamps: keep HH:MM:SS.
    return timestamp[11:19] if len(timestamp) >= 19 else timestamp


def run(initial_path: Path | None = None) -> None:
    configure_logging()
    app = WorkflowShell()
    try:
        asyncio.run(app.run(initial_path))
    except KeyboardInterrupt:
        app.console.print("\nInterrupted. Goodbye.")


def run_file(path: Path, *, validate_only: bool = False) -> int:
    configure_logging()
    app = WorkflowShell()
    return asyncio.run(app.run_file(path, validate_only=validate_only))
