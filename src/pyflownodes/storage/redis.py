"""Redis-backed visibility store.

Lets several processes share one view of workflow executions.

Data Structures:
- {prefix}:exec:{workflow_id}:{run_id} (STRING): JSON visibility record
- {prefix}:runs:{workflow_id} (ZSET): run ids of a workflow (score = start time)
- {prefix}:executions (ZSET): all record keys (score = start time)

Design: Adapter Pattern
Implements WorkflowStore for Redis, adapting the key-value store to the
WorkflowStore interface.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

import redis.asyncio as redis

from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.models.status import WorkflowStatus
from pyflownodes.storage.base import StorageError, WorkflowStore, sort_newest_first
from pyflownodes.storage.query import VisibilityQuery


class RedisWorkflowStore(WorkflowStore):
    """Redis visibility store using connection pooling.

    Usage:
        store = RedisWorkflowStore("redis://localhost:6379")
        await store.connect()
        await store.record_started(execution)
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        max_connections: int = 16,
        key_prefix: str = "flownodes",
    ):
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._prefix = key_prefix
        self._redis: redis.Redis | None = None
        # Serializes read-modify-write updates from this process
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"RedisWorkflowStore({self._redis_url})"

    async def connect(self) -> None:
        """Establish the Redis connection pool."""
        if self._redis is not None:
            return
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=self._max_connections,
        )

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _check_connected(self) -> None:
        if self._redis is None:
            raise StorageError("Not connected. Call connect() first.")

    def _exec_key(self, workflow_id: str, run_id: str) -> str:
        return f"{self._prefix}:exec:{workflow_id}:{run_id}"

    def _runs_key(self, workflow_id: str) -> str:
        return f"{self._prefix}:runs:{workflow_id}"

    def _index_key(self) -> str:
        return f"{self._prefix}:executions"

    async def record_started(self, execution: WorkflowExecution) -> None:
        self._check_connected()
        key = self._exec_key(execution.workflow_id, execution.run_id)
        score = execution.start_time.timestamp()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(key, execution.to_json())
            pipe.zadd(self._runs_key(execution.workflow_id), {execution.run_id: score})
            pipe.zadd(self._index_key(), {key: score})
            await pipe.execute()

    async def record_closed(
        self,
        workflow_id: str,
        run_id: str,
        status: WorkflowStatus,
        close_time: datetime,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        self._check_connected()
        async with self._lock:
            execution = await self._load(workflow_id, run_id)
            execution.status = status
            execution.close_time = close_time
            execution.result = result
            execution.error = error
            await self._redis.set(self._exec_key(workflow_id, run_id), execution.to_json())

    async def upsert_search_attributes(
        self, workflow_id: str, run_id: str, attributes: Mapping[str, Sequence[Any]]
    ) -> None:
        self._check_connected()
        async with self._lock:
            execution = await self._load(workflow_id, run_id)
            for key, values in attributes.items():
                execution.search_attributes[key] = list(values)
            await self._redis.set(self._exec_key(workflow_id, run_id), execution.to_json())

    async def get_execution(
        self, workflow_id: str, run_id: str | None = None
    ) -> WorkflowExecution | None:
        self._check_connected()
        if run_id is None:
            latest = await self._redis.zrevrange(self._runs_key(workflow_id), 0, 0)
            if not latest:
                return None
            run_id = latest[0]
        data = await self._redis.get(self._exec_key(workflow_id, run_id))
        return WorkflowExecution.from_json(data) if data is not None else None

    async def list_executions(
        self, query: str | VisibilityQuery | None = None
    ) -> list[WorkflowExecution]:
        self._check_connected()
        parsed = VisibilityQuery.parse(query)

        keys = await self._redis.zrevrange(self._index_key(), 0, -1)
        if not keys:
            return []
        payloads = await self._redis.mget(keys)
        executions = [WorkflowExecution.from_json(p) for p in payloads if p is not None]
        return sort_newest_first([e for e in executions if parsed.matches(e)])

    async def reset(self) -> None:
        self._check_connected()
        keys = [key async for key in self._redis.scan_iter(match=f"{self._prefix}:*")]
        if keys:
            await self._redis.delete(*keys)

    async def _load(self, workflow_id: str, run_id: str) -> WorkflowExecution:
        data = await self._redis.get(self._exec_key(workflow_id, run_id))
        if data is None:
            raise StorageError(f"Execution not found: workflow_id={workflow_id}, run_id={run_id}")
        return WorkflowExecution.from_json(data)
