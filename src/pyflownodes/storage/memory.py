"""In-memory visibility store.

Design Pattern: Adapter Pattern
InMemoryWorkflowStore adapts in-memory dictionaries to the WorkflowStore
interface.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.models.status import WorkflowStatus
from pyflownodes.storage.base import StorageError, WorkflowStore, sort_newest_first
from pyflownodes.storage.query import VisibilityQuery


class InMemoryWorkflowStore(WorkflowStore):
    """In-memory store for tests and single-process use.

    Can be substituted for SqliteWorkflowStore without changing client code.

    Usage:
        store = InMemoryWorkflowStore()
        await store.record_started(execution)
    """

    def __init__(self):
        # {(workflow_id, run_id): WorkflowExecution}
        self._executions: dict[tuple[str, str], WorkflowExecution] = {}
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return "InMemoryWorkflowStore"

    async def record_started(self, execution: WorkflowExecution) -> None:
        async with self._lock:
            self._executions[(execution.workflow_id, execution.run_id)] = execution.copy()

    async def record_closed(
        self,
        workflow_id: str,
        run_id: str,
        status: WorkflowStatus,
        close_time: datetime,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        async with self._lock:
            execution = self._get(workflow_id, run_id)
            execution.status = status
            execution.close_time = close_time
            execution.result = result
            execution.error = error

    async def upsert_search_attributes(
        self, workflow_id: str, run_id: str, attributes: Mapping[str, Sequence[Any]]
    ) -> None:
        async with self._lock:
            execution = self._get(workflow_id, run_id)
            for key, values in attributes.items():
                execution.search_attributes[key] = list(values)

    async def get_execution(
        self, workflow_id: str, run_id: str | None = None
    ) -> WorkflowExecution | None:
        async with self._lock:
            if run_id is not None:
                execution = self._executions.get((workflow_id, run_id))
                return execution.copy() if execution else None
            runs = [e for (wid, _), e in self._executions.items() if wid == workflow_id]
            if not runs:
                return None
            return sort_newest_first(runs)[0].copy()

    async def list_executions(
        self, query: str | VisibilityQuery | None = None
    ) -> list[WorkflowExecution]:
        parsed = VisibilityQuery.parse(query)
        async with self._lock:
            matches = [e.copy() for e in self._executions.values() if parsed.matches(e)]
        return sort_newest_first(matches)

    async def reset(self) -> None:
        async with self._lock:
            self._executions.clear()

    def _get(self, workflow_id: str, run_id: str) -> WorkflowExecution:
        execution = self._executions.get((workflow_id, run_id))
        if execution is None:
            raise StorageError(f"Execution not found: workflow_id={workflow_id}, run_id={run_id}")
        return execution
