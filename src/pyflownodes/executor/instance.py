"""
WorkflowInstance: one running workflow.

Design: Single Responsibility
    The instance owns the workflow object, its task, its root cancellation
    scope, its handler tables and its children. Registries, id allocation
    and visibility bookkeeping belong to the Worker.

Lifecycle:
    start() -> task runs the @run method -> exactly one outcome -> close
    On close, children started with TERMINATE are stopped, children started
    with REQUEST_CANCEL get a cancellation request, ABANDON children keep
    running.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from pyflownodes.core.context import (
    CANCELLATION_SCOPE,
    WORKFLOW_CONTEXT,
    WorkflowContext,
    WorkflowInfo,
    get_workflow_context,
)
from pyflownodes.errors import CancellationRequested, QueryNotFoundError
from pyflownodes.executor.outcome import (
    Cancelled,
    Completed,
    Failed,
    Terminated,
    WorkflowOutcome,
)
from pyflownodes.executor.scope import CancellationScope
from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.models.status import ParentClosePolicy

if TYPE_CHECKING:
    from pyflownodes.worker import Worker, WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowInstance:
    """
    Runtime state of one workflow run.

    Signal and query handlers are plain synchronous callables. They are
    invoked from the caller's coroutine on the same event loop, so they
    never run concurrently with the workflow body.

    Args:
        worker: Worker hosting this instance
        definition: Registered workflow definition
        workflow: Workflow object created by the definition's factory
        args: Positional arguments for the run method
        execution: Visibility record of this run
        parent_close_policy: What the parent does to this instance when it closes
    """

    def __init__(
        self,
        worker: Worker,
        definition: WorkflowDefinition,
        workflow: Any,
        args: Sequence[Any],
        execution: WorkflowExecution,
        parent_close_policy: ParentClosePolicy = ParentClosePolicy.TERMINATE,
    ):
        self.worker = worker
        self.definition = definition
        self.workflow = workflow
        self.args = tuple(args)
        self.execution = execution
        self.parent_close_policy = parent_close_policy
        self.info = WorkflowInfo(
            workflow_id=execution.workflow_id,
            run_id=execution.run_id,
            workflow_type=execution.workflow_type,
            task_queue=execution.task_queue,
            parent_workflow_id=execution.parent_workflow_id,
        )

        self.context = WorkflowContext(self.info, self)
        self.root_scope = CancellationScope(on_cancel=self._wake_waiters)
        self.outcome: WorkflowOutcome | None = None

        self._signal_handlers: dict[str, Callable[..., Any]] = {}
        self._query_handlers: dict[str, Callable[..., Any]] = {}
        self._buffered_signals: dict[str, list[tuple[Any, ...]]] = defaultdict(list)
        self._waiters: set[asyncio.Future] = set()
        self._children: list[WorkflowInstance] = []
        self._task: asyncio.Task | None = None
        self._closed = asyncio.Event()
        self._terminate_reason: str | None = None

        self._register_declared_handlers()

    def __repr__(self) -> str:
        return (
            f"WorkflowInstance(workflow_id={self.info.workflow_id!r}, "
            f"run_id={self.info.run_id!r}, type={self.info.workflow_type!r})"
        )

    @property
    def workflow_id(self) -> str:
        return self.info.workflow_id

    @property
    def run_id(self) -> str:
        return self.info.run_id

    @property
    def is_running(self) -> bool:
        return self.outcome is None

    def _register_declared_handlers(self) -> None:
        cls = type(self.workflow)
        for name, attr in getattr(cls, "_flownodes_signals", {}).items():
            self._signal_handlers[name] = getattr(self.workflow, attr)
        for name, attr in getattr(cls, "_flownodes_queries", {}).items():
            self._query_handlers[name] = getattr(self.workflow, attr)

    # =========================================================================
    # Execution
    # =========================================================================

    def start(self) -> None:
        """Schedule the workflow task."""
        if self._task is not None:
            raise RuntimeError(f"{self!r} already started")
        # Fresh contextvars.Context: a child never inherits its parent's
        # workflow context or cancellation scope
        self._task = asyncio.get_running_loop().create_task(
            self._run(),
            name=f"workflow:{self.workflow_id}",
            context=contextvars.Context(),
        )
        self._task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if self.outcome is not None:
            return
        # Task was cancelled before its first step ran
        self.outcome = Terminated(self._terminate_reason or "Workflow task cancelled")
        self.worker.spawn(self.worker.record_closed(self, self.outcome))
        self._closed.set()

    async def _run(self) -> None:
        WORKFLOW_CONTEXT.set(self.context)
        CANCELLATION_SCOPE.set(self.root_scope)

        run_method = getattr(self.workflow, self.definition.run_method)
        logger.info(f"Workflow {self.workflow_id} ({self.info.workflow_type}) started")

        try:
            result = await run_method(*self.args)
        except CancellationRequested as e:
            outcome: WorkflowOutcome = Cancelled(e)
        except asyncio.CancelledError:
            await self._close(Terminated(self._terminate_reason or "Workflow task cancelled"))
            raise
        except Exception as e:
            outcome = Failed(e)
        else:
            outcome = Completed(result)

        await self._close(outcome)

    async def _close(self, outcome: WorkflowOutcome) -> None:
        self.outcome = outcome
        if isinstance(outcome, Failed):
            logger.error(f"Workflow {self.workflow_id} failed: {outcome.error}")
        else:
            logger.info(f"Workflow {self.workflow_id} closed: {outcome}")

        self._close_children()
        self._wake_waiters()
        try:
            await self.worker.record_closed(self, outcome)
        finally:
            self._closed.set()

    def _close_children(self) -> None:
        for child in self._children:
            if not child.is_running:
                continue
            if child.parent_close_policy == ParentClosePolicy.TERMINATE:
                child.terminate(f"Parent workflow {self.workflow_id} closed")
            elif child.parent_close_policy == ParentClosePolicy.REQUEST_CANCEL:
                child.request_cancel(f"Parent workflow {self.workflow_id} closed")

    async def wait_closed(self) -> WorkflowOutcome:
        """Wait until the instance has closed and return its outcome."""
        await self._closed.wait()
        assert self.outcome is not None
        return self.outcome

    def request_cancel(self, reason: str = "Cancellation requested") -> None:
        """Cooperative cancel: observed at the workflow's next suspension point."""
        if self.is_running:
            logger.info(f"Cancellation requested for workflow {self.workflow_id}")
            self.root_scope.cancel(reason)

    def terminate(self, reason: str = "Terminated") -> None:
        """Stop the workflow task immediately."""
        if self.is_running and self._task is not None:
            logger.warning(f"Terminating workflow {self.workflow_id}: {reason}")
            self._terminate_reason = reason
            self._task.cancel()

    def add_child(self, child: WorkflowInstance) -> None:
        self._children.append(child)

    # =========================================================================
    # Signals, queries, conditions
    # =========================================================================

    def set_signal_handler(self, name: str, handler: Callable[..., Any]) -> None:
        """Register a signal handler and deliver any signals buffered for it."""
        logger.debug(f"Workflow {self.workflow_id}: signal handler registered: {name}")
        self._signal_handlers[name] = handler
        for args in self._buffered_signals.pop(name, []):
            self._invoke(handler, args)
        self._wake_waiters()

    def set_query_handler(self, name: str, handler: Callable[..., Any]) -> None:
        logger.debug(f"Workflow {self.workflow_id}: query handler registered: {name}")
        self._query_handlers[name] = handler

    def signal(self, name: str, *args: Any) -> bool:
        """
        Deliver a signal.

        Returns:
            False if the workflow has already closed and the signal was dropped
        """
        if not self.is_running:
            logger.warning(f"Workflow {self.workflow_id} is closed; dropping signal {name}")
            return False

        handler = self._signal_handlers.get(name)
        if handler is None:
            logger.debug(f"Workflow {self.workflow_id}: buffering signal {name}")
            self._buffered_signals[name].append(args)
            return True

        self._invoke(handler, args)
        self._wake_waiters()
        return True

    def query(self, name: str, *args: Any) -> Any:
        """
        Answer a query from the current workflow state.

        Raises:
            QueryNotFoundError: If no handler is registered under ``name``
        """
        handler = self._query_handlers.get(name)
        if handler is None:
            raise QueryNotFoundError(self.workflow_id, name)
        return self._invoke(handler, args)

    def _invoke(self, handler: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        # Handlers run on the caller's task; give them this workflow's context
        token = WORKFLOW_CONTEXT.set(self.context)
        try:
            return handler(*args)
        finally:
            WORKFLOW_CONTEXT.reset(token)

    async def wait_condition(
        self, predicate: Callable[[], bool], timeout: float | None = None
    ) -> bool:
        """
        Suspend until ``predicate()`` holds.

        The predicate is re-evaluated after every signal and every
        cancellation request.

        Returns:
            True when the predicate holds, False when the timeout elapsed

        Raises:
            CancellationRequested: If the current scope is cancelled while waiting
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        scope = CANCELLATION_SCOPE.get() or self.root_scope

        while True:
            scope.raise_if_cancelled()
            if predicate():
                return True

            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False

            waiter = loop.create_future()
            self._waiters.add(waiter)
            try:
                await asyncio.wait_for(waiter, timeout=remaining)
            except TimeoutError:
                scope.raise_if_cancelled()
                return predicate()
            finally:
                self._waiters.discard(waiter)

    def _wake_waiters(self) -> None:
        for waiter in list(self._waiters):
            if not waiter.done():
                waiter.set_result(None)

    # =========================================================================
    # Visibility
    # =========================================================================

    async def upsert_search_attributes(self, attributes: Mapping[str, Sequence[Any]]) -> None:
        for key, values in attributes.items():
            self.execution.search_attributes[key] = list(values)
        await self.worker.store.upsert_search_attributes(
            self.workflow_id, self.run_id, dict(self.execution.search_attributes)
        )


async def upsert_search_attributes(attributes: Mapping[str, Sequence[Any]]) -> None:
    """
    Merge indexed attributes into the running workflow's visibility record.

    Each attribute maps to a list of values; existing keys are replaced.

    Example:
        ```python
        await upsert_search_attributes({"CustomStringField": [order_id]})
        ```
    """
    await get_workflow_context().instance.upsert_search_attributes(attributes)
