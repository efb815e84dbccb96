"""Build a visibility store from a URL.

Supported URLs:
- ``memory://``: InMemoryWorkflowStore
- ``sqlite:///path/to/file.db`` or ``sqlite:///:memory:``: SqliteWorkflowStore
- ``redis://host:port/db`` or ``rediss://...``: RedisWorkflowStore
"""

from __future__ import annotations

from pyflownodes.errors import ValidationError
from pyflownodes.storage.base import WorkflowStore


def store_for_url(url: str) -> WorkflowStore:
    """
    Create an unconnected store for ``url``.

    Raises:
        ValidationError: For unsupported schemes
    """
    if url.startswith("memory://"):
        from pyflownodes.storage.memory import InMemoryWorkflowStore

        return InMemoryWorkflowStore()

    if url.startswith("sqlite://"):
        from pyflownodes.storage.sqlite import SqliteWorkflowStore

        path = url[len("sqlite://") :]
        # sqlite:///relative.db -> "relative.db", sqlite:////abs.db -> "/abs.db"
        if path.startswith("/"):
            path = path[1:]
        if not path:
            raise ValidationError(f"SQLite URL needs a path: {url!r}")
        return SqliteWorkflowStore(path)

    if url.startswith(("redis://", "rediss://", "unix://")):
        from pyflownodes.storage.redis import RedisWorkflowStore

        return RedisWorkflowStore(url)

    raise ValidationError(f"Unsupported store URL: {url!r}")


async def create_store(url: str) -> WorkflowStore:
    """Create and connect the store for ``url``.

    Example:
        store = await create_store("sqlite:///data/visibility.db")
    """
    store = store_for_url(url)
    await store.connect()
    return store
