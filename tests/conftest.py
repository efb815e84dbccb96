"""
Pytest configuration and fixtures for pyflownodes tests.

Provides workers wired with fast policies, visibility stores, and helpers
for replacing activities with controllable fakes.
"""

import asyncio
import shutil
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest
from hypothesis import strategies as st

from pyflownodes.activities import NodeExecutors, OrderActivities
from pyflownodes.client import Client
from pyflownodes.models import ActivityPolicy, OrderPolicies, RetryPolicy
from pyflownodes.storage import InMemoryWorkflowStore, SqliteWorkflowStore
from pyflownodes.worker import Worker
from pyflownodes.workflows import (
    GreetingWorkflow,
    MessageWorkflow,
    NotificationWorkflow,
    OrderWorkflow,
    SchemaWorkflow,
    VersionedWorkflow,
)


def fast_retry(maximum_attempts: int = 3, non_retryable: tuple[str, ...] = ()) -> RetryPolicy:
    """Retry policy with millisecond backoff."""
    return RetryPolicy(
        initial_interval=timedelta(milliseconds=1),
        maximum_interval=timedelta(milliseconds=5),
        backoff_coefficient=2.0,
        maximum_attempts=maximum_attempts,
        non_retryable_error_types=non_retryable,
    )


FAST_POLICIES = OrderPolicies(
    payment=ActivityPolicy(
        start_to_close_timeout=timedelta(seconds=5),
        heartbeat_timeout=timedelta(seconds=2),
        retry=fast_retry(5, ("PAYMENT_ERROR",)),
    ),
    inventory=ActivityPolicy(
        start_to_close_timeout=timedelta(seconds=5),
        heartbeat_timeout=timedelta(seconds=2),
        retry=fast_retry(3, ("INVENTORY_ERROR",)),
    ),
    notification=ActivityPolicy(
        start_to_close_timeout=timedelta(seconds=5),
        retry=fast_retry(3),
    ),
)

FIXED_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def build_worker(
    activities: OrderActivities | None = None,
    node_executors: NodeExecutors | None = None,
    store=None,
    policies: OrderPolicies = FAST_POLICIES,
) -> Worker:
    """Worker with every workflow registered and fast order policies."""
    worker = Worker(
        store=store,
        workflows=[GreetingWorkflow, MessageWorkflow, SchemaWorkflow, VersionedWorkflow],
        activities=[activities or OrderActivities(step_delay=0)],
        clock=lambda: FIXED_NOW,
    )
    worker.register_workflow(OrderWorkflow, lambda: OrderWorkflow(policies))
    worker.register_workflow(NotificationWorkflow, lambda: NotificationWorkflow(policies))
    worker.register_activities(node_executors or NodeExecutors())
    return worker


class CallRecorder:
    """Collects activity calls made through fakes registered on a worker."""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def args_of(self, name: str) -> list[tuple]:
        return [args for call, args in self.calls if call == name]

    def fake(self, name: str, result=None, error: BaseException | None = None):
        async def activity_fn(*args):
            self.calls.append((name, args))
            if error is not None:
                raise error
            return result

        activity_fn.__name__ = name
        return activity_fn


class Gate:
    """Activity that blocks until released, for driving signals mid-activity."""

    def __init__(self, name: str, result=None):
        self.name = name
        self.result = result
        self.started = asyncio.Event()
        self.released = asyncio.Event()

    async def __call__(self, *args):
        self.started.set()
        await self.released.wait()
        return self.result


@pytest.fixture
def order_activities() -> OrderActivities:
    return OrderActivities(step_delay=0)


@pytest.fixture
async def worker(order_activities: OrderActivities) -> AsyncGenerator[Worker, None]:
    """Worker with an in-memory store, shut down after the test."""
    async with build_worker(order_activities) as w:
        yield w


@pytest.fixture
def client(worker: Worker) -> Client:
    return Client(worker)


@pytest.fixture
def recorder() -> CallRecorder:
    return CallRecorder()


@pytest.fixture
async def memory_store() -> AsyncGenerator[InMemoryWorkflowStore, None]:
    store = InMemoryWorkflowStore()
    yield store
    await store.reset()


@pytest.fixture
async def sqlite_memory_store() -> AsyncGenerator[SqliteWorkflowStore, None]:
    store = await SqliteWorkflowStore.in_memory()
    yield store
    await store.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    yield tmpdir / "visibility.db"
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def random_workflow_id() -> str:
    return f"wf-{uuid4()}"


# Hypothesis strategies for property-based testing

node_ids = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=8)


@st.composite
def dag_schema_strategy(draw, max_nodes: int = 8):
    """Acyclic schema dicts: edges only point from lower to higher node index."""
    ids = draw(st.lists(node_ids, min_size=1, max_size=max_nodes, unique=True))
    edges = []
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            if draw(st.booleans()):
                edges.append({"from": ids[i], "to": ids[j]})
    return {
        "nodes": [{"id": node_id, "type": "record", "data": {"id": node_id}} for node_id in ids],
        "edges": edges,
        "execution": {
            "mode": draw(st.sampled_from(["sequential", "parallel"])),
            "retryPolicy": {"maxAttempts": 1, "initialInterval": 1},
        },
    }
