"""In-process worker hosting workflow instances and activities.

The worker owns the workflow and activity registries, starts workflow
instances as asyncio tasks, records their visibility in a WorkflowStore,
and stops them on shutdown.

Features:
- Registry mapping workflow type names to definitions
- Registry mapping activity names to callables
- Duplicate running workflow ids rejected
- Injectable clock for deterministic workflow time
- Graceful shutdown
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from uuid_extensions import uuid7

from pyflownodes.config import DEFAULT_TASK_QUEUE, WorkerSettings
from pyflownodes.decorators import get_activity_name, get_workflow_type_name
from pyflownodes.errors import ValidationError, WorkflowAlreadyStartedError
from pyflownodes.executor.instance import WorkflowInstance
from pyflownodes.executor.outcome import (
    Completed,
    WorkflowOutcome,
    outcome_error,
    outcome_status,
)
from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.models.status import ParentClosePolicy
from pyflownodes.storage.base import WorkflowStore
from pyflownodes.storage.factory import create_store
from pyflownodes.storage.memory import InMemoryWorkflowStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowDefinition:
    """A registered workflow type.

    Attributes:
        name: Registered type name
        cls: Workflow class
        factory: Zero-argument callable creating a workflow object per run
        run_method: Name of the method that drives the workflow
    """

    name: str
    cls: type
    factory: Callable[[], Any]
    run_method: str


class Worker:
    """Worker hosting workflows on the running event loop.

    Design Patterns:
    - Registry: workflow types and activities are looked up by name
    - Builder: with_clock() for configuration

    Usage:
        activities = OrderActivities()
        async with Worker(
            workflows=[OrderWorkflow, NotificationWorkflow],
            activities=[activities],
        ) as worker:
            client = Client(worker)
            result = await client.execute_workflow(
                OrderWorkflow, "order-1", "user-1", items, 100, id="order-1"
            )
    """

    def __init__(
        self,
        store: WorkflowStore | None = None,
        task_queue: str = DEFAULT_TASK_QUEUE,
        workflows: Iterable[type] = (),
        activities: Iterable[Any] = (),
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize a worker.

        Args:
            store: Visibility store (in-memory when omitted)
            task_queue: Task queue name recorded on every execution
            workflows: Workflow classes to register with default factories
            activities: Activity functions, or objects whose @activity
                methods are registered
            clock: Source of workflow time (UTC wall clock when omitted)
        """
        self.store = store if store is not None else InMemoryWorkflowStore()
        self.task_queue = task_queue
        self._clock = clock or (lambda: datetime.now(UTC))

        self._workflows: dict[str, WorkflowDefinition] = {}
        self._activities: dict[str, Callable[..., Any]] = {}
        # Latest run per workflow id
        self._instances: dict[str, WorkflowInstance] = {}

        # Track background tasks to prevent garbage collection
        self._background_tasks: set[asyncio.Task] = set()

        for workflow in workflows:
            self.register_workflow(workflow)
        for activity in activities:
            if callable(activity) and not isinstance(activity, type):
                self.register_activity(activity)
            else:
                self.register_activities(activity)

    @classmethod
    async def from_settings(
        cls,
        settings: WorkerSettings,
        workflows: Iterable[type] = (),
        activities: Iterable[Any] = (),
        clock: Callable[[], datetime] | None = None,
    ) -> Worker:
        """Build a worker with a connected store created from ``settings.store_url``."""
        store = await create_store(settings.store_url)
        return cls(
            store=store,
            task_queue=settings.task_queue,
            workflows=workflows,
            activities=activities,
            clock=clock,
        )

    def with_clock(self, clock: Callable[[], datetime]) -> Worker:
        """Replace the workflow clock (builder pattern).

        Returns:
            self for method chaining
        """
        self._clock = clock
        return self

    def now(self) -> datetime:
        return self._clock()

    async def __aenter__(self) -> Worker:
        await self.store.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
        await self.store.close()

    # =========================================================================
    # Registries
    # =========================================================================

    def register_workflow(self, cls: type, factory: Callable[[], Any] | None = None) -> None:
        """Register a workflow type.

        Args:
            cls: Workflow class (usually decorated with @workflow_type)
            factory: Creates the workflow object for each run; defaults to ``cls()``.
                Use it to inject configuration such as policy sets.

        Example:
            worker.register_workflow(OrderWorkflow, lambda: OrderWorkflow(policies))
        """
        name = get_workflow_type_name(cls)
        run_method = getattr(cls, "_flownodes_run_method", "run")
        if not callable(getattr(cls, run_method, None)):
            raise ValidationError(f"Workflow {name} has no run method {run_method!r}")

        self._workflows[name] = WorkflowDefinition(
            name=name, cls=cls, factory=factory or cls, run_method=run_method
        )
        logger.debug(f"Registered workflow type: {name}")

    def register_activity(self, fn: Callable[..., Any], name: str | None = None) -> None:
        name = name or get_activity_name(fn)
        self._activities[name] = fn
        logger.debug(f"Registered activity: {name}")

    def register_activities(self, obj: Any) -> None:
        """Register every @activity method of ``obj`` under its activity name."""
        for attr_name in dir(obj):
            if attr_name.startswith("_"):
                continue
            attr = getattr(obj, attr_name)
            if callable(attr) and hasattr(attr, "_flownodes_activity_name"):
                self.register_activity(attr)

    def get_activity(self, name: str) -> Callable[..., Any]:
        try:
            return self._activities[name]
        except KeyError:
            raise ValidationError(f"Activity not registered: {name}") from None

    def get_definition(self, workflow: Any) -> WorkflowDefinition:
        name = get_workflow_type_name(workflow)
        try:
            return self._workflows[name]
        except KeyError:
            raise ValidationError(f"Workflow type not registered: {name}") from None

    # =========================================================================
    # Instances
    # =========================================================================

    async def start_instance(
        self,
        workflow: Any,
        args: Sequence[Any],
        workflow_id: str,
        search_attributes: Mapping[str, Sequence[Any]] | None = None,
        memo: Mapping[str, Any] | None = None,
        parent: WorkflowInstance | None = None,
        parent_close_policy: ParentClosePolicy = ParentClosePolicy.TERMINATE,
    ) -> WorkflowInstance:
        """Start a workflow run.

        Returns once the workflow has run up to its first suspension point,
        so its handlers and initial state are in place.

        Raises:
            WorkflowAlreadyStartedError: If ``workflow_id`` is running
            ValidationError: If the workflow type is not registered
        """
        definition = self.get_definition(workflow)

        existing = self._instances.get(workflow_id)
        if existing is not None and existing.is_running:
            raise WorkflowAlreadyStartedError(workflow_id)

        execution = WorkflowExecution(
            workflow_id=workflow_id,
            run_id=str(uuid7()),
            workflow_type=definition.name,
            task_queue=self.task_queue,
            start_time=self.now(),
            search_attributes={k: list(v) for k, v in (search_attributes or {}).items()},
            memo=dict(memo or {}),
            parent_workflow_id=parent.workflow_id if parent is not None else None,
        )
        instance = WorkflowInstance(
            self,
            definition,
            definition.factory(),
            args,
            execution,
            parent_close_policy=parent_close_policy,
        )
        self._instances[workflow_id] = instance
        await self.store.record_started(execution)

        if parent is not None:
            parent.add_child(instance)
        instance.start()

        # Let the workflow run up to its first suspension point
        await asyncio.sleep(0)
        return instance

    def get_instance(self, workflow_id: str) -> WorkflowInstance | None:
        return self._instances.get(workflow_id)

    def running_instances(self) -> list[WorkflowInstance]:
        return [i for i in self._instances.values() if i.is_running]

    async def record_closed(self, instance: WorkflowInstance, outcome: WorkflowOutcome) -> None:
        """Write a closed run's final status to the visibility store."""
        await self.store.record_closed(
            instance.workflow_id,
            instance.run_id,
            outcome_status(outcome),
            self.now(),
            result=outcome.result if isinstance(outcome, Completed) else None,
            error=outcome_error(outcome),
        )

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Run a coroutine in a tracked background task."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def shutdown(self) -> None:
        """Terminate running instances and wait for them to close."""
        running = self.running_instances()
        if running:
            logger.info(f"Worker shutdown: terminating {len(running)} running workflows")
        for instance in running:
            instance.terminate("Worker shutdown")
        await asyncio.gather(*(instance.wait_closed() for instance in running))
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks)
