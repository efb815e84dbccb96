"""Signal, query and condition primitives for workflow code.

Design: Information Hiding (Parnas)
    Workflow code registers handlers and waits on conditions through these
    functions; the handler tables, signal buffering and waiter wake-up live
    in the WorkflowInstance found through the task-local context.

Signals sent before a handler exists are buffered and delivered, in order,
when the handler is registered.
"""

from collections.abc import Callable
from datetime import timedelta
from typing import Any

from pyflownodes.core.context import get_workflow_context


def set_signal_handler(name: str, handler: Callable[..., Any]) -> None:
    """Register (or replace) the handler for signal ``name``."""
    get_workflow_context().instance.set_signal_handler(name, handler)


def set_query_handler(name: str, handler: Callable[..., Any]) -> None:
    """Register (or replace) the handler for query ``name``."""
    get_workflow_context().instance.set_query_handler(name, handler)


async def wait_condition(
    predicate: Callable[[], bool], timeout: timedelta | float | None = None
) -> bool:
    """Wait until ``predicate()`` holds.

    Args:
        predicate: Checked now and after every signal
        timeout: Optional limit (timedelta or seconds)

    Returns:
        True when the predicate holds, False if the timeout elapsed first

    Raises:
        RuntimeError: If called outside a workflow
        CancellationRequested: If the enclosing scope is cancelled

    Example:
        ```python
        changed = await wait_condition(lambda: self._message != initial, timeout=30)
        ```
    """
    if isinstance(timeout, timedelta):
        timeout = timeout.total_seconds()
    return await get_workflow_context().instance.wait_condition(predicate, timeout)
