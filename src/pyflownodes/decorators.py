"""
Decorators that mark workflows, their entry points, handlers and activities.

The decorators only attach metadata; the Worker reads it when a workflow
type or activity is registered and when an instance starts.

Example:
    ```python
    @workflow_type
    class MessageWorkflow:
        def __init__(self):
            self._message = ""

        @run
        async def run(self, initial: str) -> str:
            self._message = initial
            await wait_condition(lambda: self._message != initial)
            return self._message

        @signal
        def update_message(self, message: str) -> None:
            self._message = message

        @query
        def get_current_message(self) -> str:
            return self._message

    @activity
    async def greet(name: str) -> str:
        return f"Hello, {name}!"
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])


def workflow_type(cls: type[T] | None = None, *, name: str | None = None) -> Any:
    """
    Mark a class as a workflow type.

    Adds a ``type_id()`` static method returning the registered type name
    (defaults to the class name) and collects the ``@run``, ``@signal`` and
    ``@query`` members in definition order.

    Args:
        cls: The class to decorate
        name: Optional custom type name

    Example:
        ```python
        @workflow_type(name="notification")
        class NotificationWorkflow:
            @run
            async def run(self, user_id: str, message: str) -> None: ...
        ```
    """

    def decorator(c: type[T]) -> type[T]:
        c._is_flownodes_workflow = True  # type: ignore

        type_name = name if name is not None else c.__name__

        @staticmethod
        def _type_id() -> str:
            return type_name

        c.type_id = _type_id  # type: ignore

        run_method: str | None = None
        signals: dict[str, str] = {}
        queries: dict[str, str] = {}
        # Walk the MRO so handlers declared on base classes are inherited
        for klass in reversed(c.__mro__):
            for attr_name, attr in vars(klass).items():
                if not callable(attr):
                    continue
                if getattr(attr, "_is_flownodes_run", False):
                    run_method = attr_name
                signal_name = getattr(attr, "_flownodes_signal_name", None)
                if signal_name is not None:
                    signals[signal_name] = attr_name
                query_name = getattr(attr, "_flownodes_query_name", None)
                if query_name is not None:
                    queries[query_name] = attr_name

        if run_method is None:
            if not callable(getattr(c, "run", None)):
                raise TypeError(
                    f"Workflow {c.__name__} needs a @run method (or a method named 'run')"
                )
            run_method = "run"

        c._flownodes_run_method = run_method  # type: ignore
        c._flownodes_signals = signals  # type: ignore
        c._flownodes_queries = queries  # type: ignore
        return c

    # Support both @workflow_type and @workflow_type(...) syntax
    if cls is not None:
        return decorator(cls)
    return decorator


def run(func: F) -> F:
    """Mark the async method that drives a workflow."""
    func._is_flownodes_run = True  # type: ignore
    return func


def signal(func: F | None = None, *, name: str | None = None) -> Any:
    """
    Mark a method as a signal handler.

    Signal handlers are synchronous. They run on the event loop between the
    workflow's suspension points and may mutate workflow state.

    Args:
        func: The method to decorate
        name: Signal name (defaults to the method name)
    """

    def decorator(f: F) -> F:
        f._flownodes_signal_name = name if name is not None else f.__name__  # type: ignore
        return f

    if func is not None:
        return decorator(func)
    return decorator


def query(func: F | None = None, *, name: str | None = None) -> Any:
    """
    Mark a method as a query handler.

    Query handlers are synchronous and must not mutate workflow state.

    Args:
        func: The method to decorate
        name: Query name (defaults to the method name)
    """

    def decorator(f: F) -> F:
        f._flownodes_query_name = name if name is not None else f.__name__  # type: ignore
        return f

    if func is not None:
        return decorator(func)
    return decorator


def activity(func: F | None = None, *, name: str | None = None) -> Any:
    """
    Mark a function or method as an activity.

    Activities may be sync or async. Only activities may touch the outside
    world, read the wall clock or use randomness.

    Args:
        func: The function to decorate
        name: Registered activity name (defaults to the function name)
    """

    def decorator(f: F) -> F:
        f._flownodes_activity_name = name if name is not None else f.__name__  # type: ignore
        return f

    if func is not None:
        return decorator(func)
    return decorator


def get_workflow_type_name(workflow: Any) -> str:
    """Type name of a workflow class, instance, or a plain name string."""
    if isinstance(workflow, str):
        return workflow
    type_id = getattr(workflow, "type_id", None)
    if callable(type_id):
        return type_id()
    if isinstance(workflow, type):
        return workflow.__name__
    return workflow.__class__.__name__


def get_activity_name(fn: Any) -> str:
    """Registered name of an activity reference (function, bound method, or string)."""
    if isinstance(fn, str):
        return fn
    activity_name = getattr(fn, "_flownodes_activity_name", None)
    if activity_name is not None:
        return activity_name
    return fn.__name__
