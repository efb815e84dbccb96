"""
Activity invocation under an ActivityPolicy.

Design Pattern: Decorator (runtime wrapper)
execute_activity wraps a registered activity with the policy's behaviour so
workflow code only states *which* activity runs under *which* policy:

1. Observe cancellation of the current scope (suspension point)
2. Run one attempt in its own task with an ActivityContext
3. Enforce start-to-close and heartbeat timeouts on the attempt
4. Classify a failure as retryable or not
5. Back off and retry, or raise ActivityFailure chained from the cause
6. Observe cancellation again once the result is back

Cancellation is cooperative: an attempt already running is never
interrupted by a cancelled scope.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
from collections.abc import Callable
from typing import Any

from pyflownodes.core.context import (
    ACTIVITY_CONTEXT,
    ActivityContext,
    ActivityInfo,
    get_workflow_context,
)
from pyflownodes.decorators import get_activity_name
from pyflownodes.errors import (
    ActivityFailure,
    ActivityTimeoutError,
    error_type_name,
    is_retryable_error,
)
from pyflownodes.executor.scope import check_cancellation
from pyflownodes.models.retry import ActivityPolicy

logger = logging.getLogger(__name__)

MAXIMUM_ATTEMPTS_REACHED = "MAXIMUM_ATTEMPTS_REACHED"
NON_RETRYABLE_FAILURE = "NON_RETRYABLE_FAILURE"


async def execute_activity(
    activity: Callable[..., Any] | str,
    *args: Any,
    policy: ActivityPolicy = ActivityPolicy.BASE,
) -> Any:
    """
    Invoke an activity from workflow code.

    Args:
        activity: Activity function, bound method, or registered name
        *args: Positional arguments for the activity
        policy: Timeouts and retry policy for this invocation

    Returns:
        The activity's return value

    Raises:
        ActivityFailure: Attempts exhausted or non-retryable error
        CancellationRequested: The current scope was cancelled
        RuntimeError: If called outside a workflow

    Example:
        ```python
        receipt = await execute_activity(
            activities.process_payment, order_id, amount, policy=ActivityPolicy.PAYMENT
        )
        ```
    """
    ctx = get_workflow_context()
    name = get_activity_name(activity)
    fn = ctx.instance.worker.get_activity(name)

    check_cancellation()

    retry = policy.retry
    attempt = 1
    while True:
        logger.debug(f"Activity {name} attempt {attempt} (workflow {ctx.info.workflow_id})")
        try:
            result = await _run_attempt(fn, args, name, attempt, policy, ctx.info.workflow_id)
        except Exception as e:
            error_type = error_type_name(e)
            if retry.is_non_retryable_type(error_type) or not is_retryable_error(e):
                logger.error(f"Activity {name} failed with non-retryable {error_type}: {e}")
                raise ActivityFailure(name, attempt, e, NON_RETRYABLE_FAILURE) from e

            delay = retry.delay_for_attempt(attempt)
            if delay is None:
                logger.error(f"Activity {name} failed after {attempt} attempts: {e}")
                raise ActivityFailure(name, attempt, e, MAXIMUM_ATTEMPTS_REACHED) from e

            logger.warning(
                f"Activity {name} attempt {attempt} failed ({error_type}: {e}), "
                f"retrying in {delay.total_seconds():g}s"
            )
            await asyncio.sleep(delay.total_seconds())
            check_cancellation()
            attempt += 1
            continue

        check_cancellation()
        return result


async def _run_attempt(
    fn: Callable[..., Any],
    args: tuple[Any, ...],
    name: str,
    attempt: int,
    policy: ActivityPolicy,
    workflow_id: str,
) -> Any:
    """Run one attempt under the start-to-close and heartbeat timeouts."""
    loop = asyncio.get_running_loop()
    start_to_close = policy.start_to_close_timeout.total_seconds()
    heartbeat_timeout = (
        policy.heartbeat_timeout.total_seconds() if policy.heartbeat_timeout else None
    )
    activity_ctx = ActivityContext(
        ActivityInfo(
            activity_type=name,
            attempt=attempt,
            workflow_id=workflow_id,
            heartbeat_timeout=heartbeat_timeout,
        )
    )

    async def invoke() -> Any:
        ACTIVITY_CONTEXT.set(activity_ctx)
        result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    # Activities get a clean context: no workflow context, no scope
    task = loop.create_task(invoke(), name=f"activity:{name}", context=contextvars.Context())
    deadline = loop.time() + start_to_close

    try:
        while True:
            now = loop.time()
            wait = deadline - now
            timeout_type = "START_TO_CLOSE"
            timeout_value = start_to_close
            if heartbeat_timeout is not None:
                heartbeat_wait = activity_ctx.last_heartbeat + heartbeat_timeout - now
                if heartbeat_wait < wait:
                    wait = heartbeat_wait
                    timeout_type = "HEARTBEAT"
                    timeout_value = heartbeat_timeout

            if wait <= 0:
                await _abandon(task)
                raise ActivityTimeoutError(name, timeout_type, timeout_value)

            done, _ = await asyncio.wait({task}, timeout=wait)
            if done:
                return task.result()
    except asyncio.CancelledError:
        # Workflow task itself was terminated
        task.cancel()
        raise


async def _abandon(task: asyncio.Task) -> None:
    """Cancel a timed-out attempt and consume its outcome."""
    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Timed-out activity attempt ended with: {task.exception()!r}")
