"""SQLite-backed visibility store.

Design Pattern: Adapter Pattern
SqliteWorkflowStore adapts an SQLite database to the WorkflowStore interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- Index on (workflow_type, status) for the common list filters
- Equality clauses on execution fields are pushed down into SQL; search
  attribute clauses are evaluated on the loaded records
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.models.status import WorkflowStatus
from pyflownodes.storage.base import StorageError, WorkflowStore, sort_newest_first
from pyflownodes.storage.query import VisibilityQuery

_COLUMNS = (
    "workflow_id, run_id, workflow_type, task_queue, status, start_time, close_time, "
    "search_attributes, memo, result, error, parent_workflow_id"
)

# Execution fields a query may filter on, mapped to their columns
_FILTER_COLUMNS = {
    "workflow_id": "workflow_id",
    "run_id": "run_id",
    "workflow_type": "workflow_type",
    "status": "status",
    "task_queue": "task_queue",
}


class SqliteWorkflowStore(WorkflowStore):
    """SQLite-backed visibility store.

    After __init__, the instance is not yet usable. Call connect() first.

    Usage:
        store = SqliteWorkflowStore("visibility.db")
        await store.connect()
        try:
            await store.record_started(execution)
        finally:
            await store.close()
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection

    @classmethod
    async def in_memory(cls) -> SqliteWorkflowStore:
        """
        Create a connected in-memory store for testing.

        Example:
            store = await SqliteWorkflowStore.in_memory()
        """
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteWorkflowStore(in-memory)"
        return f"SqliteWorkflowStore({self.db_path})"

    async def connect(self) -> None:
        """Open the database connection and initialize the schema."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,  # Autocommit mode
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()
        if result:
            mode = result[0].upper()
            if mode not in ("WAL", "MEMORY"):
                raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")
        await self._create_schema()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS workflow_executions (
                workflow_id TEXT NOT NULL,
                run_id TEXT NOT NULL,
                workflow_type TEXT NOT NULL,
                task_queue TEXT NOT NULL,
                status TEXT CHECK( status IN (
                    'RUNNING','COMPLETED','FAILED','CANCELLED','TERMINATED'
                ) ) NOT NULL,
                start_time TEXT NOT NULL,
                close_time TEXT,
                search_attributes TEXT NOT NULL DEFAULT '{}',
                memo TEXT NOT NULL DEFAULT '{}',
                result TEXT,
                error TEXT,
                parent_workflow_id TEXT,
                PRIMARY KEY (workflow_id, run_id)
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_workflow_executions_type_status
            ON workflow_executions(workflow_type, status)
        """)

    def _check_connected(self) -> None:
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")

    async def record_started(self, execution: WorkflowExecution) -> None:
        self._check_connected()
        async with self._lock:
            await self._connection.execute(
                f"""
                INSERT INTO workflow_executions ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    execution.workflow_id,
                    execution.run_id,
                    execution.workflow_type,
                    execution.task_queue,
                    execution.status.value,
                    execution.start_time.isoformat(),
                    execution.close_time.isoformat() if execution.close_time else None,
                    json.dumps(execution.search_attributes, default=str),
                    json.dumps(execution.memo, default=str),
                    _dump_result(execution.result),
                    execution.error,
                    execution.parent_workflow_id,
                ),
            )

    async def record_closed(
        self,
        workflow_id: str,
        run_id: str,
        status: WorkflowStatus,
        close_time: datetime,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        self._check_connected()
        async with self._lock:
            cursor = await self._connection.execute(
                """
                UPDATE workflow_executions
                SET status = ?, close_time = ?, result = ?, error = ?
                WHERE workflow_id = ? AND run_id = ?
            """,
                (
                    status.value,
                    close_time.isoformat(),
                    _dump_result(result),
                    error,
                    workflow_id,
                    run_id,
                ),
            )
            if cursor.rowcount == 0:
                raise StorageError(
                    f"Execution not found: workflow_id={workflow_id}, run_id={run_id}"
                )

    async def upsert_search_attributes(
        self, workflow_id: str, run_id: str, attributes: Mapping[str, Sequence[Any]]
    ) -> None:
        self._check_connected()
        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT search_attributes FROM workflow_executions "
                "WHERE workflow_id = ? AND run_id = ?",
                (workflow_id, run_id),
            )
            row = await cursor.fetchone()
            if row is None:
                raise StorageError(
                    f"Execution not found: workflow_id={workflow_id}, run_id={run_id}"
                )

            merged = json.loads(row[0])
            for key, values in attributes.items():
                merged[key] = list(values)

            await self._connection.execute(
                "UPDATE workflow_executions SET search_attributes = ? "
                "WHERE workflow_id = ? AND run_id = ?",
                (json.dumps(merged, default=str), workflow_id, run_id),
            )

    async def get_execution(
        self, workflow_id: str, run_id: str | None = None
    ) -> WorkflowExecution | None:
        self._check_connected()
        if run_id is not None:
            rows = await self._select(
                "WHERE workflow_id = ? AND run_id = ?", (workflow_id, run_id)
            )
        else:
            rows = await self._select("WHERE workflow_id = ?", (workflow_id,))
        if not rows:
            return None
        return sort_newest_first(rows)[0]

    async def list_executions(
        self, query: str | VisibilityQuery | None = None
    ) -> list[WorkflowExecution]:
        self._check_connected()
        parsed = VisibilityQuery.parse(query)

        conditions: list[str] = []
        params: list[Any] = []
        for field_name, value in parsed.builtin_equalities().items():
            conditions.append(f"{_FILTER_COLUMNS[field_name]} = ?")
            params.append(value)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = await self._select(where, tuple(params))
        return sort_newest_first([e for e in rows if parsed.matches(e)])

    async def reset(self) -> None:
        self._check_connected()
        async with self._lock:
            await self._connection.execute("DELETE FROM workflow_executions")

    async def _select(self, where: str, params: tuple[Any, ...]) -> list[WorkflowExecution]:
        async with self._lock:
            cursor = await self._connection.execute(
                f"SELECT {_COLUMNS} FROM workflow_executions {where}", params
            )
            rows = await cursor.fetchall()
            await cursor.close()
        return [self._row_to_execution(row) for row in rows]

    @staticmethod
    def _row_to_execution(row: Sequence[Any]) -> WorkflowExecution:
        return WorkflowExecution(
            workflow_id=row[0],
            run_id=row[1],
            workflow_type=row[2],
            task_queue=row[3],
            status=WorkflowStatus(row[4]),
            start_time=datetime.fromisoformat(row[5]),
            close_time=datetime.fromisoformat(row[6]) if row[6] else None,
            search_attributes=json.loads(row[7]),
            memo=json.loads(row[8]),
            result=json.loads(row[9]) if row[9] is not None else None,
            error=row[10],
            parent_workflow_id=row[11],
        )


def _dump_result(result: Any) -> str | None:
    if result is None:
        return None
    return json.dumps(result, default=str)
