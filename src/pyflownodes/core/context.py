"""Task-local execution context for workflows and activities.

Provides WorkflowContext and ActivityContext without threading them through
every call. Uses contextvars for task-local storage, so many workflows and
activities can run on one event loop without interfering.

Design: Task-Local State (contextvars)
    Each workflow instance runs in its own asyncio task with its own
    WorkflowContext. Each activity attempt runs in a fresh task whose
    context holds only its ActivityContext.
"""

from __future__ import annotations

import asyncio
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pyflownodes.executor.instance import WorkflowInstance
    from pyflownodes.executor.scope import CancellationScope


# =============================================================================
# Task-Local Context Variables
# =============================================================================

WORKFLOW_CONTEXT: ContextVar[WorkflowContext | None] = ContextVar(
    "workflow_context", default=None
)
"""Task-local WorkflowContext of the running workflow instance."""

ACTIVITY_CONTEXT: ContextVar[ActivityContext | None] = ContextVar(
    "activity_context", default=None
)
"""Task-local ActivityContext of the running activity attempt."""

CANCELLATION_SCOPE: ContextVar[CancellationScope | None] = ContextVar(
    "cancellation_scope", default=None
)
"""Innermost CancellationScope entered by workflow code."""


# =============================================================================
# Workflow context
# =============================================================================


@dataclass(frozen=True)
class WorkflowInfo:
    workflow_id: str
    run_id: str
    workflow_type: str
    task_queue: str
    parent_workflow_id: str | None = None


class WorkflowContext:
    """Execution state visible to the code of one workflow instance.

    Usage:
        ```python
        ctx = WorkflowContext(info, instance)
        token = WORKFLOW_CONTEXT.set(ctx)
        try:
            ...
        finally:
            WORKFLOW_CONTEXT.reset(token)
        ```
    """

    def __init__(self, info: WorkflowInfo, instance: WorkflowInstance):
        self.info = info
        self.instance = instance
        self._child_sequence = 0

    def now(self) -> datetime:
        """Workflow time, taken from the worker's clock."""
        return self.instance.worker.now()

    def next_child_sequence(self) -> int:
        self._child_sequence += 1
        return self._child_sequence


def get_workflow_context() -> WorkflowContext:
    """
    Get the context of the running workflow.

    Raises:
        RuntimeError: If called outside workflow code
    """
    ctx = WORKFLOW_CONTEXT.get()
    if ctx is None:
        raise RuntimeError("Not in a workflow context")
    return ctx


def in_workflow() -> bool:
    return WORKFLOW_CONTEXT.get() is not None


def workflow_info() -> WorkflowInfo:
    return get_workflow_context().info


def workflow_now() -> datetime:
    """Deterministic workflow time; use instead of ``datetime.now()`` in workflows."""
    return get_workflow_context().now()


# =============================================================================
# Activity context
# =============================================================================


@dataclass(frozen=True)
class ActivityInfo:
    activity_type: str
    attempt: int
    workflow_id: str | None = None
    heartbeat_timeout: float | None = None


class ActivityContext:
    """
    State of one activity attempt.

    The invoker's heartbeat watchdog reads ``last_heartbeat`` (event-loop
    time) to detect stalled attempts.
    """

    def __init__(self, info: ActivityInfo):
        self.info = info
        self.last_heartbeat = asyncio.get_running_loop().time()
        self.heartbeat_details: tuple[Any, ...] = ()

    def heartbeat(self, *details: Any) -> None:
        self.last_heartbeat = asyncio.get_running_loop().time()
        self.heartbeat_details = details


def get_activity_context() -> ActivityContext:
    """
    Get the context of the running activity attempt.

    Raises:
        RuntimeError: If called outside an activity
    """
    ctx = ACTIVITY_CONTEXT.get()
    if ctx is None:
        raise RuntimeError("Not in an activity context")
    return ctx


def heartbeat(*details: Any) -> None:
    """
    Record activity liveness.

    No-op when the activity function is called directly rather than through
    the activity invoker.
    """
    ctx = ACTIVITY_CONTEXT.get()
    if ctx is not None:
        ctx.heartbeat(*details)
