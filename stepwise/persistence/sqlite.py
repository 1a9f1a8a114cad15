"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..exceptions import WorkflowInstanceNotFoundError
from .models import InstanceFilter, WorkflowInstance, as_utc
from .repository import WorkflowRepository

_COLUMNS = (
    "id",
    "definition_name",
    "definition_version",
    "definition",
    "state",
    "data",
    "current_step_id",
    "completed_steps",
    "failed_steps",
    "skipped_steps",
    "error_message",
    "created_at",
    "updated_at",
)
_JSON_COLUMNS = ("definition", "data", "completed_steps", "failed_steps", "skipped_steps")


def to_utc_iso(value: datetime) -> str:
    """ISO text for ``value`` in UTC; naive datetimes are taken as UTC."""
    return as_utc(value).astimezone(timezone.utc).isoformat()


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                id TEXT PRIMARY KEY,
                definition_name TEXT NOT NULL,
                definition_version TEXT NOT NULL,
                definition TEXT NOT NULL,
                state TEXT NOT NULL,
                data TEXT NOT NULL,
                current_step_id TEXT,
                completed_steps TEXT NOT NULL,
                failed_steps TEXT NOT NULL,
                skipped_steps TEXT NOT NULL,
                error_message TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_instances_state "
            "ON workflow_instances (state)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_instances_created "
            "ON workflow_instances (created_at)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _row_to_instance(self, row: sqlite3.Row) -> WorkflowInstance:
        record = dict(row)
        for column in _JSON_COLUMNS:
            record[column] = json.loads(record[column])
        return WorkflowInstance.from_record(record)

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def save(self, instance: WorkflowInstance) -> None:
        record = instance.to_record()
        for column in _JSON_COLUMNS:
            record[column] = json.dumps(record[column])
        record["created_at"] = to_utc_iso(instance.created_at)
        record["updated_at"] = to_utc_iso(instance.updated_at)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c != "id")
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO workflow_instances ({', '.join(_COLUMNS)}) "
            f"VALUES ({placeholders}) ON CONFLICT(id) DO UPDATE SET {updates}",
            *(record[c] for c in _COLUMNS),
        )

    async def load(self, instance_id: str) -> WorkflowInstance:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {', '.join(_COLUMNS)} FROM workflow_instances WHERE id = ?",
            instance_id,
        )
        if not row:
            raise WorkflowInstanceNotFoundError(instance_id, "sqlite")
        return self._row_to_instance(row)

    async def find_instances(
        self, filters: InstanceFilter | None = None
    ) -> list[WorkflowInstance]:
        filters = filters or InstanceFilter()
        clauses: list[str] = []
        params: list[Any] = []
        if filters.state is not None:
            clauses.append("state = ?")
            params.append(filters.state.value)
        if filters.definition_name is not None:
            clauses.append("definition_name = ?")
            params.append(filters.definition_name)
        if filters.created_before is not None:
            clauses.append("created_at < ?")
            params.append(to_utc_iso(filters.created_before))
        if filters.created_after is not None:
            clauses.append("created_at > ?")
            params.append(to_utc_iso(filters.created_after))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {', '.join(_COLUMNS)} FROM workflow_instances{where} "
            "ORDER BY created_at, rowid LIMIT ? OFFSET ?",
            *params,
            filters.limit,
            filters.offset,
        )
        return [self._row_to_instance(r) for r in rows]

    async def delete(self, instance_id: str) -> bool:
        count = await asyncio.to_thread(
            self._execute, "DELETE FROM workflow_instances WHERE id = ?", instance_id
        )
        return count > 0

    async def exists(self, instance_id: str) -> bool:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT 1 FROM workflow_instances WHERE id = ?", instance_id
        )
        return row is not None
