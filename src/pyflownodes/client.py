"""Client facade for starting and interacting with workflows.

Example:
    ```python
    client = Client(worker)
    handle = await client.start_workflow(
        OrderWorkflow, "order-1", "user-1", items, 99.5, id="order-1"
    )
    await handle.signal("add_order_item", {"product_id": "p-2", "quantity": 1})
    status = await handle.query("get_order_status")
    result = await handle.result()

    running = await client.list_workflows("ExecutionStatus = 'RUNNING'")
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pyflownodes.errors import WorkflowNotFoundError
from pyflownodes.executor.instance import WorkflowInstance
from pyflownodes.executor.outcome import unwrap_outcome
from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.storage.query import VisibilityQuery
from pyflownodes.worker import Worker

logger = logging.getLogger(__name__)


class WorkflowHandle:
    """Handle to a workflow id (optionally pinned to one run)."""

    def __init__(self, worker: Worker, workflow_id: str, run_id: str | None = None):
        self._worker = worker
        self.workflow_id = workflow_id
        self.run_id = run_id

    def __repr__(self) -> str:
        return f"WorkflowHandle(workflow_id={self.workflow_id!r}, run_id={self.run_id!r})"

    def _instance(self) -> WorkflowInstance:
        instance = self._worker.get_instance(self.workflow_id)
        if instance is None or (self.run_id is not None and instance.run_id != self.run_id):
            raise WorkflowNotFoundError(self.workflow_id)
        return instance

    async def signal(self, name: str, *args: Any) -> None:
        """Deliver a signal; dropped with a warning if the workflow has closed.

        Raises:
            WorkflowNotFoundError: If the worker does not know the workflow
        """
        self._instance().signal(name, *args)

    async def query(self, name: str, *args: Any) -> Any:
        """Run a query handler against the workflow's current state.

        Closed workflows are answered from their final state.

        Raises:
            WorkflowNotFoundError: If the worker does not know the workflow
            QueryNotFoundError: If no handler is registered under ``name``
        """
        return self._instance().query(name, *args)

    async def cancel(self) -> None:
        """Request cooperative cancellation."""
        self._instance().request_cancel()

    async def terminate(self, reason: str = "Terminated by client") -> None:
        """Stop the workflow immediately and wait for it to close."""
        instance = self._instance()
        instance.terminate(reason)
        await instance.wait_closed()

    async def result(self) -> Any:
        """Wait for the workflow to close and return its result.

        Raises:
            WorkflowFailureError: If the workflow failed, was cancelled or terminated
        """
        instance = self._instance()
        outcome = await instance.wait_closed()
        return unwrap_outcome(self.workflow_id, outcome)

    async def describe(self) -> WorkflowExecution:
        """Visibility record of the run.

        Raises:
            WorkflowNotFoundError: If the store has no record
        """
        execution = await self._worker.store.get_execution(self.workflow_id, self.run_id)
        if execution is None:
            raise WorkflowNotFoundError(self.workflow_id)
        return execution


class Client:
    """Entry point for callers outside workflow code."""

    def __init__(self, worker: Worker):
        self._worker = worker

    async def start_workflow(
        self,
        workflow: Any,
        *args: Any,
        id: str,
        search_attributes: Mapping[str, Sequence[Any]] | None = None,
        memo: Mapping[str, Any] | None = None,
    ) -> WorkflowHandle:
        """Start a workflow and return a handle pinned to the new run.

        Args:
            workflow: Workflow class or registered type name
            *args: Arguments for the workflow's run method
            id: Workflow id
            search_attributes: Initial indexed attributes
            memo: Unindexed metadata

        Raises:
            WorkflowAlreadyStartedError: If ``id`` is running
        """
        instance = await self._worker.start_instance(
            workflow, args, workflow_id=id, search_attributes=search_attributes, memo=memo
        )
        logger.debug(f"Client started workflow {id} (run {instance.run_id})")
        return WorkflowHandle(self._worker, instance.workflow_id, instance.run_id)

    async def execute_workflow(
        self,
        workflow: Any,
        *args: Any,
        id: str,
        search_attributes: Mapping[str, Sequence[Any]] | None = None,
        memo: Mapping[str, Any] | None = None,
    ) -> Any:
        """Start a workflow and wait for its result."""
        handle = await self.start_workflow(
            workflow, *args, id=id, search_attributes=search_attributes, memo=memo
        )
        return await handle.result()

    def get_workflow_handle(self, workflow_id: str, run_id: str | None = None) -> WorkflowHandle:
        """Handle to an existing workflow; unknown ids fail when the handle is used."""
        return WorkflowHandle(self._worker, workflow_id, run_id)

    async def list_workflows(
        self, query: str | VisibilityQuery | None = None
    ) -> list[WorkflowExecution]:
        """List executions matching a visibility query, newest first.

        Example:
            await client.list_workflows(
                "WorkflowType = 'OrderWorkflow' AND CustomStringField = 'order-1'"
            )
        """
        return await self._worker.store.list_executions(query)
