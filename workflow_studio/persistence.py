from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from workflow_studio.graph.models import ExecutionLogEntry, GraphModelError, WorkflowDocument
from workflow_studio.graph.validation import validate_imported_workflow


LOGGER = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "workflow-autosave"


@dataclass(slots=True)
class JsonImportResult:
    success: bool
    document: WorkflowDocument | None = None
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class WorkflowRunRecord:
    run_id: str
    status: str
    entry_count: int
    error_count: int
    started_at: str
    finished_at: str | None


class WorkflowPersistence:
    """SQLite-backed autosave slot, JSON export/import, and a run-log archive."""

    def __init__(self, db_path: Path, storage_key: str = DEFAULT_STORAGE_KEY) -> None:
        self._db_path = db_path
        self._storage_key = storage_key
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._last_saved_at: str | None = None
        self._init_db()

    @property
    def last_saved_at(self) -> str | None:
        return self._last_saved_at

    @property
    def storage_key(self) -> str:
        return self._storage_key

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workflow_autosave (
                    storage_key TEXT PRIMARY KEY,
                    document_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workflow_runs (
                    run_id TEXT PRIMARY KEY,
                    storage_key TEXT NOT NULL,
                    status TEXT NOT NULL,
                    log_json TEXT NOT NULL,
                    entry_count INTEGER NOT NULL DEFAULT 0,
                    error_count INTEGER NOT NULL DEFAULT 0,
                    started_at TEXT NOT NULL,
                    finished_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_workflow_runs_key_started
                ON workflow_runs(storage_key, started_at DESC)
                """
            )
            conn.commit()

    # Autosave slot

    def autosave(self, document: WorkflowDocument) -> bool:
        try:
            serialized = json.dumps(document.to_dict(), ensure_ascii=False)
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO workflow_autosave (storage_key, document_json)
                    VALUES (?, ?)
                    ON CONFLICT(storage_key) DO UPDATE SET
                        document_json = excluded.document_json,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (self._storage_key, serialized),
                )
                conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            LOGGER.error("Failed to autosave workflow: %s", exc)
            return False
        self._last_saved_at = datetime.now().astimezone().isoformat()
        return True

    def load_from_storage(self) -> WorkflowDocument | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT document_json FROM workflow_autosave WHERE storage_key = ?",
                    (self._storage_key,),
                ).fetchone()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to load autosaved workflow: %s", exc)
            return None
        if not row:
            return None

        result = self.import_from_json(row["document_json"])
        if not result.success:
            LOGGER.warning("Invalid workflow in storage: %s", result.errors)
            return None
        return result.document

    def clear_storage(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM workflow_autosave WHERE storage_key = ?", (self._storage_key,))
                conn.commit()
        except sqlite3.Error as exc:
            LOGGER.error("Failed to clear autosaved workflow: %s", exc)
            return
        self._last_saved_at = None

    # JSON documents

    def export_to_json(self, document: WorkflowDocument) -> str:
        return json.dumps(document.to_dict(), indent=2, ensure_ascii=False)

    def import_from_json(self, text: str) -> JsonImportResult:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            return JsonImportResult(success=False, errors=[f"Invalid JSON: {exc.msg}"])

        validation = validate_imported_workflow(data)
        if not validation.valid:
            return JsonImportResult(success=False, errors=validation.errors)

        try:
            document = WorkflowDocument.from_dict(data)
        except GraphModelError as exc:
            return JsonImportResult(success=False, errors=[str(exc)])
        return JsonImportResult(success=True, document=document)

    def save_to_file(self, document: WorkflowDocument, path: Path | None = None) -> Path:
        target = path or Path(f"workflow-{int(time.time() * 1000)}.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.export_to_json(document) + "\n", encoding="utf-8")
        LOGGER.info("Workflow exported to %s", target)
        return target

    def load_from_file(self, path: Path) -> JsonImportResult:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            return JsonImportResult(success=False, errors=[f"Could not read {path}: {exc}"])
        return self.import_from_json(text)

    # Run archive

    def record_run(
        self,
        logs: list[ExecutionLogEntry],
        *,
        status: str,
        started_at: str,
        finished_at: str | None = None,
    ) -> str:
        run_id = f"run-{uuid.uuid4()}"
        payload = [entry.to_dict() for entry in logs]
        error_count = sum(1 for entry in logs if entry.status == "error")
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO workflow_runs (
                    run_id, storage_key, status, log_json, entry_count,
                    error_count, started_at, finished_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run_id,
                    self._storage_key,
                    status,
                    self._dump(payload),
                    len(logs),
                    error_count,
                    started_at,
                    finished_at,
                ),
            )
            conn.commit()
        return run_id

    def list_runs(self, limit: int = 20) -> list[WorkflowRunRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT run_id, status, entry_count, error_count, started_at, finished_at
                FROM workflow_runs
                WHERE storage_key = ?
                ORDER BY started_at DESC
                LIMIT ?
                """,
                (self._storage_key, max(1, limit)),
            ).fetchall()
        return [self._row_to_run(row) for row in rows]

    def load_run_log(self, run_id: str) -> list[ExecutionLogEntry] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT log_json FROM workflow_runs WHERE run_id = ?",
                (run_id,),
            ).fetchone()
        if not row:
            return None
        payload = json.loads(row["log_json"])
        return [ExecutionLogEntry.from_dict(item) for item in payload if isinstance(item, dict)]

    def _row_to_run(self, row: sqlite3.Row) -> WorkflowRunRecord:
        return WorkflowRunRecord(
            run_id=row["run_id"],
            status=row["status"],
            entry_count=int(row["entry_count"] or 0),
            error_count=int(row["error_count"] or 0),
            started_at=row["started_at"],
            finished_at=row["finished_at"],
        )

    def _dump(self, value: object) -> str:
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            return json.dumps(self._sanitize_for_json(value), ensure_ascii=False)

    def _sanitize_for_json(self, value: object) -> object:
        if isinstance(value, dict):
            return {str(key): self._sanitize_for_json(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._sanitize_for_json(item) for item in value]
        if isinstance(value, (str, int, float, bool)) or value is None:
            return value
        return str(value)
