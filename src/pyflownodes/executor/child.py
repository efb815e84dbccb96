"""
Child workflow invocation.

A child workflow is a separate instance with its own id, started by the
running workflow. Its ParentClosePolicy decides what happens to it when the
parent closes:
- TERMINATE (default): stopped immediately
- REQUEST_CANCEL: receives a cooperative cancellation request
- ABANDON: keeps running independently (fire-and-forget)

Without an explicit id, the child id is derived deterministically from the
parent id, the child type and the order in which the parent starts children.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import xxhash

from pyflownodes.core.context import get_workflow_context
from pyflownodes.decorators import get_workflow_type_name
from pyflownodes.executor.instance import WorkflowInstance
from pyflownodes.executor.outcome import unwrap_outcome
from pyflownodes.executor.scope import check_cancellation
from pyflownodes.models.status import ParentClosePolicy

logger = logging.getLogger(__name__)


class ChildWorkflowHandle:
    """Handle returned to the parent for a started child."""

    def __init__(self, instance: WorkflowInstance):
        self._instance = instance

    @property
    def workflow_id(self) -> str:
        return self._instance.workflow_id

    @property
    def run_id(self) -> str:
        return self._instance.run_id

    def signal(self, name: str, *args: Any) -> bool:
        return self._instance.signal(name, *args)

    async def result(self) -> Any:
        """
        Wait for the child to close.

        Raises:
            WorkflowFailureError: If the child did not complete
        """
        outcome = await self._instance.wait_closed()
        return unwrap_outcome(self.workflow_id, outcome)

    def __repr__(self) -> str:
        return f"ChildWorkflowHandle(workflow_id={self.workflow_id!r})"


def child_workflow_id(parent_id: str, workflow_type: str, sequence: int) -> str:
    digest = xxhash.xxh64(f"{parent_id}:{workflow_type}:{sequence}".encode()).hexdigest()
    return f"{parent_id}-child-{digest}"


async def start_child_workflow(
    workflow: Any,
    *args: Any,
    id: str | None = None,
    parent_close_policy: ParentClosePolicy = ParentClosePolicy.TERMINATE,
    search_attributes: Mapping[str, Sequence[Any]] | None = None,
    memo: Mapping[str, Any] | None = None,
) -> ChildWorkflowHandle:
    """
    Start a child workflow without waiting for it.

    Args:
        workflow: Workflow class or registered type name
        *args: Arguments for the child's run method
        id: Child workflow id (derived from the parent when omitted)
        parent_close_policy: Child's fate when the parent closes
        search_attributes: Initial indexed attributes of the child
        memo: Unindexed metadata of the child

    Returns:
        Handle to signal the child or await its result

    Raises:
        WorkflowAlreadyStartedError: If a workflow with this id is running
        RuntimeError: If called outside a workflow

    Example:
        ```python
        await start_child_workflow(
            NotificationWorkflow,
            user_id,
            message,
            id=f"notification-{order_id}",
            parent_close_policy=ParentClosePolicy.ABANDON,
        )
        ```
    """
    ctx = get_workflow_context()
    check_cancellation()

    type_name = get_workflow_type_name(workflow)
    sequence = ctx.next_child_sequence()
    if id is None:
        id = child_workflow_id(ctx.info.workflow_id, type_name, sequence)

    parent = ctx.instance
    child = await parent.worker.start_instance(
        type_name,
        args,
        workflow_id=id,
        search_attributes=search_attributes,
        memo=memo,
        parent=parent,
        parent_close_policy=parent_close_policy,
    )
    logger.info(
        f"Workflow {parent.workflow_id} started child {id} ({type_name}, {parent_close_policy})"
    )
    return ChildWorkflowHandle(child)


async def execute_child_workflow(
    workflow: Any,
    *args: Any,
    id: str | None = None,
    parent_close_policy: ParentClosePolicy = ParentClosePolicy.TERMINATE,
    search_attributes: Mapping[str, Sequence[Any]] | None = None,
    memo: Mapping[str, Any] | None = None,
) -> Any:
    """Start a child workflow and wait for its result."""
    handle = await start_child_workflow(
        workflow,
        *args,
        id=id,
        parent_close_policy=parent_close_policy,
        search_attributes=search_attributes,
        memo=memo,
    )
    result = await handle.result()
    check_cancellation()
    return result
