"""
WorkflowStore - abstract interface for visibility storage backends.

Design Pattern: Adapter Pattern
WorkflowStore defines the target interface that all storage adapters
implement. Different backends (memory, SQLite, Redis) adapt to it.

Design Principle: Dependency Inversion (SOLID)
The Worker and Client depend on this abstraction, not on a concrete store,
so tests run against InMemoryWorkflowStore and deployments pick a backend
through create_store(url).

What is stored: one visibility record (WorkflowExecution) per workflow run.
Workflow history and replay are not stored.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pyflownodes.errors import FlowNodesError
from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.models.status import WorkflowStatus
from pyflownodes.storage.query import VisibilityQuery


class StorageError(FlowNodesError):
    """Storage operation failed."""


class WorkflowStore(ABC):
    """
    Abstract visibility store.

    Backends that hold connections open them in ``connect()`` and release
    them in ``close()``; both are idempotent. Returned records are detached
    copies.
    """

    async def connect(self) -> None:
        """Open connections (no-op for backends without any)."""

    async def close(self) -> None:
        """Release connections."""

    async def __aenter__(self) -> WorkflowStore:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @abstractmethod
    async def record_started(self, execution: WorkflowExecution) -> None:
        """Insert the record of a newly started run."""

    @abstractmethod
    async def record_closed(
        self,
        workflow_id: str,
        run_id: str,
        status: WorkflowStatus,
        close_time: datetime,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        """
        Mark a run closed.

        Raises:
            StorageError: If the run is unknown
        """

    @abstractmethod
    async def upsert_search_attributes(
        self, workflow_id: str, run_id: str, attributes: Mapping[str, Sequence[Any]]
    ) -> None:
        """
        Merge search attributes into a run's record.

        Raises:
            StorageError: If the run is unknown
        """

    @abstractmethod
    async def get_execution(
        self, workflow_id: str, run_id: str | None = None
    ) -> WorkflowExecution | None:
        """Get one run, or the most recent run of ``workflow_id``; None if unknown."""

    @abstractmethod
    async def list_executions(
        self, query: str | VisibilityQuery | None = None
    ) -> list[WorkflowExecution]:
        """
        List runs matching a visibility query, most recently started first.

        Raises:
            ValidationError: If the query is malformed
        """

    @abstractmethod
    async def reset(self) -> None:
        """Delete every record (tests)."""


def sort_newest_first(executions: list[WorkflowExecution]) -> list[WorkflowExecution]:
    # run_id (uuid7) is time-ordered and breaks start_time ties
    return sorted(executions, key=lambda e: (e.start_time, e.run_id), reverse=True)
