"""
Tests for visibility stores.

Every backend runs the same contract tests. The Redis backend is skipped
when no server is reachable at REDIS_URL (default redis://localhost:6379).
"""

import os
from datetime import timedelta
from uuid import uuid4

import pytest
import redis.asyncio as redis_client
from conftest import FIXED_NOW, build_worker

from pyflownodes.client import Client
from pyflownodes.errors import ValidationError
from pyflownodes.models import WorkflowExecution, WorkflowStatus
from pyflownodes.storage import (
    InMemoryWorkflowStore,
    RedisWorkflowStore,
    SqliteWorkflowStore,
    StorageError,
    create_store,
    store_for_url,
)
from pyflownodes.workflows import GreetingWorkflow

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")


async def redis_available() -> bool:
    conn = redis_client.from_url(REDIS_URL)
    try:
        await conn.ping()
        return True
    except (redis_client.ConnectionError, OSError):
        return False
    finally:
        await conn.aclose()


@pytest.fixture(params=["memory", "sqlite", "sqlite_file", "redis"])
async def store(request, temp_db_path):
    if request.param == "memory":
        s = InMemoryWorkflowStore()
    elif request.param == "sqlite":
        s = await SqliteWorkflowStore.in_memory()
    elif request.param == "sqlite_file":
        s = SqliteWorkflowStore(str(temp_db_path))
    else:
        if not await redis_available():
            pytest.skip(f"Redis not reachable at {REDIS_URL}")
        s = RedisWorkflowStore(REDIS_URL, key_prefix=f"flownodes-test-{uuid4().hex}")

    await s.connect()
    yield s
    await s.reset()
    await s.close()


def execution(workflow_id="order-1", run_id="run-1", workflow_type="OrderWorkflow", offset=0):
    return WorkflowExecution(
        workflow_id=workflow_id,
        run_id=run_id,
        workflow_type=workflow_type,
        task_queue="flownodes-queue",
        start_time=FIXED_NOW + timedelta(seconds=offset),
        memo={"source": "test"},
    )


@pytest.mark.asyncio
async def test_record_and_get(store):
    await store.record_started(execution())

    found = await store.get_execution("order-1", "run-1")
    assert found == execution()
    assert await store.get_execution("order-1", "other-run") is None
    assert await store.get_execution("unknown") is None


@pytest.mark.asyncio
async def test_latest_run_is_returned_without_run_id(store):
    await store.record_started(execution(run_id="run-1", offset=0))
    await store.record_started(execution(run_id="run-2", offset=10))

    assert (await store.get_execution("order-1")).run_id == "run-2"


@pytest.mark.asyncio
async def test_record_closed(store):
    await store.record_started(execution())
    close_time = FIXED_NOW + timedelta(minutes=1)
    await store.record_closed(
        "order-1", "run-1", WorkflowStatus.COMPLETED, close_time, result={"ok": True}
    )

    found = await store.get_execution("order-1", "run-1")
    assert found.status == WorkflowStatus.COMPLETED
    assert found.close_time == close_time
    assert found.result == {"ok": True}
    assert found.error is None


@pytest.mark.asyncio
async def test_record_failed_keeps_error(store):
    await store.record_started(execution())
    await store.record_closed(
        "order-1", "run-1", WorkflowStatus.FAILED, FIXED_NOW, error="Payment failed"
    )
    found = await store.get_execution("order-1", "run-1")
    assert found.status == WorkflowStatus.FAILED
    assert found.error == "Payment failed"


@pytest.mark.asyncio
async def test_unknown_run_cannot_be_closed(store):
    with pytest.raises(StorageError):
        await store.record_closed("ghost", "run", WorkflowStatus.COMPLETED, FIXED_NOW)
    with pytest.raises(StorageError):
        await store.upsert_search_attributes("ghost", "run", {"k": ["v"]})


@pytest.mark.asyncio
async def test_search_attributes_merge(store):
    await store.record_started(execution())
    await store.upsert_search_attributes("order-1", "run-1", {"CustomStringField": ["order-1"]})
    await store.upsert_search_attributes(
        "order-1", "run-1", {"CustomKeywordField": ["order_processing"]}
    )

    found = await store.get_execution("order-1", "run-1")
    assert found.search_attributes == {
        "CustomStringField": ["order-1"],
        "CustomKeywordField": ["order_processing"],
    }


@pytest.mark.asyncio
async def test_list_filters_and_orders_newest_first(store):
    await store.record_started(execution("order-1", "r1", offset=0))
    await store.record_started(execution("order-2", "r2", offset=5))
    await store.record_started(execution("greet-1", "r3", workflow_type="GreetingWorkflow", offset=10))
    await store.record_closed("order-1", "r1", WorkflowStatus.COMPLETED, FIXED_NOW)
    await store.upsert_search_attributes("order-2", "r2", {"CustomStringField": ["vip"]})

    everything = await store.list_executions()
    assert [e.workflow_id for e in everything] == ["greet-1", "order-2", "order-1"]

    orders = await store.list_executions("WorkflowType = 'OrderWorkflow'")
    assert [e.workflow_id for e in orders] == ["order-2", "order-1"]

    running_orders = await store.list_executions(
        "WorkflowType = 'OrderWorkflow' AND ExecutionStatus = 'RUNNING'"
    )
    assert [e.workflow_id for e in running_orders] == ["order-2"]

    vip = await store.list_executions("CustomStringField = 'vip'")
    assert [e.workflow_id for e in vip] == ["order-2"]

    not_vip = await store.list_executions("CustomStringField != 'vip'")
    assert {e.workflow_id for e in not_vip} == {"order-1", "greet-1"}


@pytest.mark.asyncio
async def test_malformed_query(store):
    with pytest.raises(ValidationError):
        await store.list_executions("WorkflowType ==")


@pytest.mark.asyncio
async def test_returned_records_are_copies(store):
    await store.record_started(execution())
    found = await store.get_execution("order-1", "run-1")
    found.search_attributes["mutated"] = ["yes"]
    assert "mutated" not in (await store.get_execution("order-1", "run-1")).search_attributes


@pytest.mark.asyncio
async def test_reset(store):
    await store.record_started(execution())
    await store.reset()
    assert await store.list_executions() == []


@pytest.mark.asyncio
async def test_worker_records_visibility_in_sqlite(temp_db_path):
    store = SqliteWorkflowStore(str(temp_db_path))
    async with build_worker(store=store) as worker:
        await Client(worker).execute_workflow(GreetingWorkflow, "Ada", id="greet")

    reopened = SqliteWorkflowStore(str(temp_db_path))
    async with reopened:
        found = await reopened.get_execution("greet")
    assert found.status == WorkflowStatus.COMPLETED
    assert found.result == "Hello, Ada!"


@pytest.mark.asyncio
async def test_sqlite_requires_connect(temp_db_path):
    store = SqliteWorkflowStore(str(temp_db_path))
    with pytest.raises(StorageError, match="Not connected"):
        await store.record_started(execution())


# =============================================================================
# Factory
# =============================================================================


@pytest.mark.parametrize(
    ("url", "store_type", "path"),
    [
        ("memory://", InMemoryWorkflowStore, None),
        ("sqlite:///:memory:", SqliteWorkflowStore, ":memory:"),
        ("sqlite:///data/visibility.db", SqliteWorkflowStore, "data/visibility.db"),
        ("sqlite:////tmp/visibility.db", SqliteWorkflowStore, "/tmp/visibility.db"),
        ("redis://localhost:6379/0", RedisWorkflowStore, None),
    ],
)
def test_store_for_url(url, store_type, path):
    store = store_for_url(url)
    assert isinstance(store, store_type)
    if path is not None:
        assert store.db_path == path


@pytest.mark.parametrize("url", ["postgres://db", "sqlite://", "file.db"])
def test_store_for_unsupported_url(url):
    with pytest.raises(ValidationError):
        store_for_url(url)


@pytest.mark.asyncio
async def test_create_store_connects():
    store = await create_store("sqlite:///:memory:")
    try:
        await store.record_started(execution())
        assert await store.get_execution("order-1") is not None
    finally:
        await store.close()
