"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

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
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM workflow_instances"


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_instances (
                id TEXT PRIMARY KEY,
                definition_name TEXT NOT NULL,
                definition_version TEXT NOT NULL,
                definition JSONB NOT NULL,
                state TEXT NOT NULL,
                data JSONB NOT NULL,
                current_step_id TEXT,
                completed_steps JSONB NOT NULL,
                failed_steps JSONB NOT NULL,
                skipped_steps JSONB NOT NULL,
                error_message TEXT,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_instances_state "
            "ON workflow_instances (state)"
        )

    def _row_to_instance(self, row: asyncpg.Record) -> WorkflowInstance:
        record = dict(row)
        for column in _JSON_COLUMNS:
            if isinstance(record[column], str):
                record[column] = json.loads(record[column])
        return WorkflowInstance.from_record(record)

    # ------------------------------------------------------------------
    async def save(self, instance: WorkflowInstance) -> None:
        record = instance.to_record()
        for column in _JSON_COLUMNS:
            record[column] = json.dumps(record[column])
        record["created_at"] = as_utc(instance.created_at)
        record["updated_at"] = as_utc(instance.updated_at)
        placeholders = ", ".join(f"${i}" for i in range(1, len(_COLUMNS) + 1))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in _COLUMNS if c != "id")
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO workflow_instances ({', '.join(_COLUMNS)}) "
                f"VALUES ({placeholders}) ON CONFLICT (id) DO UPDATE SET {updates}",
                *(record[c] for c in _COLUMNS),
            )
        finally:
            await conn.close()

    async def load(self, instance_id: str) -> WorkflowInstance:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(f"{_SELECT} WHERE id = $1", instance_id)
        finally:
            await conn.close()
        if not row:
            raise WorkflowInstanceNotFoundError(instance_id, "postgres")
        return self._row_to_instance(row)

    async def find_instances(
        self, filters: InstanceFilter | None = None
    ) -> list[WorkflowInstance]:
        filters = filters or InstanceFilter()
        clauses: list[str] = []
        params: list[Any] = []
        if filters.state is not None:
            params.append(filters.state.value)
            clauses.append(f"state = ${len(params)}")
        if filters.definition_name is not None:
            params.append(filters.definition_name)
            clauses.append(f"definition_name = ${len(params)}")
        if filters.created_before is not None:
            params.append(as_utc(filters.created_before))
            clauses.append(f"created_at < ${len(params)}")
        if filters.created_after is not None:
            params.append(as_utc(filters.created_after))
            clauses.append(f"created_at > ${len(params)}")
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([filters.limit, filters.offset])
        query = (
            f"{_SELECT}{where} ORDER BY created_at "
            f"LIMIT ${len(params) - 1} OFFSET ${len(params)}"
        )
        conn = await self._connect()
        try:
            rows = await conn.fetch(query, *params)
        finally:
            await conn.close()
        return [self._row_to_instance(r) for r in rows]

    async def delete(self, instance_id: str) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute(
                "DELETE FROM workflow_instances WHERE id = $1", instance_id
            )
        finally:
            await conn.close()
        return status.split()[-1] != "0"

    async def exists(self, instance_id: str) -> bool:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT 1 FROM workflow_instances WHERE id = $1", instance_id
            )
        finally:
            await conn.close()
        return row is not None
