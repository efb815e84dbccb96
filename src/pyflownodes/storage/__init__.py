"""Visibility stores for workflow execution records.

Provides multiple storage implementations behind a common interface:
    - WorkflowStore: Abstract interface
    - InMemoryWorkflowStore: In-memory storage for testing
    - SqliteWorkflowStore: SQLite-backed storage
    - RedisWorkflowStore: Redis-backed shared storage
    - VisibilityQuery: Query language for listing executions

Design: Adapter Pattern + Dependency Inversion (SOLID)
    All storage implementations adapt to the WorkflowStore interface.
"""

from pyflownodes.storage.base import StorageError, WorkflowStore
from pyflownodes.storage.factory import create_store, store_for_url
from pyflownodes.storage.memory import InMemoryWorkflowStore
from pyflownodes.storage.query import VisibilityQuery


# Backends with third-party drivers are imported on first use
def __getattr__(name: str):
    if name == "SqliteWorkflowStore":
        from pyflownodes.storage.sqlite import SqliteWorkflowStore

        return SqliteWorkflowStore
    elif name == "RedisWorkflowStore":
        from pyflownodes.storage.redis import RedisWorkflowStore

        return RedisWorkflowStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "InMemoryWorkflowStore",
    "RedisWorkflowStore",
    "SqliteWorkflowStore",
    "StorageError",
    "VisibilityQuery",
    "WorkflowStore",
    "create_store",
    "store_for_url",
]
