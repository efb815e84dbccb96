"""
Tests for activity invocation under an ActivityPolicy.

Covers retry classification, backoff exhaustion, start-to-close and
heartbeat timeouts, and cooperative cancellation around activities.
"""

import asyncio
from datetime import timedelta

import pytest
from conftest import fast_retry

from pyflownodes.core import get_activity_context, heartbeat
from pyflownodes.decorators import run, workflow_type
from pyflownodes.errors import (
    ActivityFailure,
    ActivityTimeoutError,
    ApplicationError,
    CancellationRequested,
    ValidationError,
    WorkflowFailureError,
)
from pyflownodes.executor import CancellationScope, execute_activity
from pyflownodes.executor.activity import MAXIMUM_ATTEMPTS_REACHED, NON_RETRYABLE_FAILURE
from pyflownodes.models import ActivityPolicy


def policy(
    maximum_attempts: int = 3,
    non_retryable: tuple[str, ...] = (),
    start_to_close: float = 5.0,
    heartbeat_timeout: float | None = None,
) -> ActivityPolicy:
    return ActivityPolicy(
        start_to_close_timeout=timedelta(seconds=start_to_close),
        heartbeat_timeout=timedelta(seconds=heartbeat_timeout) if heartbeat_timeout else None,
        retry=fast_retry(maximum_attempts, non_retryable),
    )


@workflow_type
class InvokeWorkflow:
    @run
    async def run(self, activity, activity_policy, *args):
        return await execute_activity(activity, *args, policy=activity_policy)


@workflow_type
class CancelledScopeWorkflow:
    @run
    async def run(self, activity):
        with CancellationScope.cancellable() as scope:
            scope.cancel("stop")
            return await execute_activity(activity)


@workflow_type
class ShieldedWorkflow:
    @run
    async def run(self, activity):
        CancellationScope.current().cancel("outer")
        with CancellationScope.non_cancellable():
            return await execute_activity(activity)


@pytest.fixture(autouse=True)
def register_workflows(worker):
    worker.register_workflow(InvokeWorkflow)
    worker.register_workflow(CancelledScopeWorkflow)
    worker.register_workflow(ShieldedWorkflow)


async def invoke(client, activity, activity_policy, *args, id="invoke"):
    return await client.execute_workflow(InvokeWorkflow, activity, activity_policy, *args, id=id)


async def invoke_failure(client, activity, activity_policy, *args) -> ActivityFailure:
    with pytest.raises(WorkflowFailureError) as exc_info:
        await invoke(client, activity, activity_policy, *args)
    failure = exc_info.value.cause
    assert isinstance(failure, ActivityFailure)
    return failure


@pytest.mark.asyncio
async def test_retries_until_success(client, worker):
    attempts: list[int] = []

    async def flaky(value):
        attempts.append(get_activity_context().info.attempt)
        if len(attempts) < 3:
            raise ConnectionError("transient")
        return value * 2

    worker.register_activity(flaky)
    assert await invoke(client, "flaky", policy(maximum_attempts=3), 21) == 42
    assert attempts == [1, 2, 3]


@pytest.mark.asyncio
async def test_attempts_exhausted(client, worker):
    async def always_fails():
        raise ConnectionError("still down")

    worker.register_activity(always_fails)
    failure = await invoke_failure(client, "always_fails", policy(maximum_attempts=4))

    assert failure.attempts == 4
    assert failure.retry_state == MAXIMUM_ATTEMPTS_REACHED
    assert isinstance(failure.__cause__, ConnectionError)
    assert str(failure) == "still down"


@pytest.mark.asyncio
async def test_non_retryable_type_fails_immediately(client, worker):
    calls = 0

    async def declined():
        nonlocal calls
        calls += 1
        raise ApplicationError("card declined", type="PAYMENT_ERROR")

    worker.register_activity(declined)
    failure = await invoke_failure(
        client, "declined", policy(maximum_attempts=5, non_retryable=("PAYMENT_ERROR",))
    )

    assert calls == 1
    assert failure.attempts == 1
    assert failure.retry_state == NON_RETRYABLE_FAILURE


@pytest.mark.asyncio
async def test_class_name_matches_non_retryable_types(client, worker):
    calls = 0

    async def bad_lookup():
        nonlocal calls
        calls += 1
        raise KeyError("missing")

    worker.register_activity(bad_lookup)
    await invoke_failure(client, "bad_lookup", policy(maximum_attempts=5, non_retryable=("KeyError",)))
    assert calls == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ApplicationError("permanent", non_retryable=True),
        ValidationError("bad input"),
    ],
)
async def test_errors_reporting_non_retryable(client, worker, error):
    calls = 0

    async def rejects():
        nonlocal calls
        calls += 1
        raise error

    worker.register_activity(rejects)
    failure = await invoke_failure(client, "rejects", policy(maximum_attempts=5))
    assert calls == 1
    assert failure.retry_state == NON_RETRYABLE_FAILURE


@pytest.mark.asyncio
async def test_start_to_close_timeout(client, worker):
    async def slow():
        await asyncio.sleep(5)

    worker.register_activity(slow)
    failure = await invoke_failure(client, "slow", policy(maximum_attempts=2, start_to_close=0.05))

    assert failure.attempts == 2
    assert isinstance(failure.cause, ActivityTimeoutError)
    assert failure.cause.timeout_type == "START_TO_CLOSE"


@pytest.mark.asyncio
async def test_heartbeat_timeout(client, worker):
    async def stalls():
        heartbeat(0)
        await asyncio.sleep(5)

    worker.register_activity(stalls)
    failure = await invoke_failure(
        client, "stalls", policy(maximum_attempts=1, heartbeat_timeout=0.05)
    )
    assert failure.cause.timeout_type == "HEARTBEAT"


@pytest.mark.asyncio
async def test_heartbeats_keep_long_activity_alive(client, worker):
    async def steady():
        for progress in range(0, 101, 10):
            heartbeat(progress)
            await asyncio.sleep(0.01)
        return get_activity_context().heartbeat_details

    worker.register_activity(steady)
    details = await invoke(client, "steady", policy(maximum_attempts=1, heartbeat_timeout=0.05))
    assert details == (100,)


@pytest.mark.asyncio
async def test_sync_activities_are_supported(client, worker):
    def add(a, b):
        return a + b

    worker.register_activity(add)
    assert await invoke(client, "add", policy(), 2, 3) == 5


@pytest.mark.asyncio
async def test_cancelled_scope_skips_dispatch(client, worker):
    calls = 0

    async def never():
        nonlocal calls
        calls += 1

    worker.register_activity(never)
    with pytest.raises(WorkflowFailureError) as exc_info:
        await client.execute_workflow(CancelledScopeWorkflow, "never", id="cancelled")

    assert exc_info.value.status == "CANCELLED"
    assert isinstance(exc_info.value.cause, CancellationRequested)
    assert calls == 0


@pytest.mark.asyncio
async def test_non_cancellable_scope_shields_activity(client, worker):
    async def cleanup():
        return "cleaned"

    worker.register_activity(cleanup)
    result = await client.execute_workflow(ShieldedWorkflow, "cleanup", id="shielded")
    assert result == "cleaned"


@pytest.mark.asyncio
async def test_unregistered_activity(client):
    with pytest.raises(WorkflowFailureError) as exc_info:
        await invoke(client, "does_not_exist", policy())
    assert isinstance(exc_info.value.cause, ValidationError)
    assert "Activity not registered" in str(exc_info.value.cause)


@pytest.mark.asyncio
async def test_execute_activity_outside_workflow():
    with pytest.raises(RuntimeError, match="Not in a workflow context"):
        await execute_activity("greet", "world")


def test_heartbeat_outside_activity_is_noop():
    heartbeat(50)
