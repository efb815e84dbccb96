"""TTL cache for HTTP responses.

Keys are ``METHOD:url?query``; entries expire ``ttl`` seconds after they
were stored and are dropped on the next read.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode


@dataclass(frozen=True)
class CacheEntry:
    response: Any
    stored_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


class ResponseCache:
    """
    In-process response cache.

    Args:
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock

    @staticmethod
    def key(method: str, url: str, query_params: Mapping[str, str] | None = None) -> str:
        query = urlencode(query_params) if query_params else ""
        return f"{method.upper()}:{url}{'?' + query if query else ''}"

    def set(
        self,
        method: str,
        url: str,
        response: Any,
        ttl: float,
        query_params: Mapping[str, str] | None = None,
    ) -> None:
        self._entries[self.key(method, url, query_params)] = CacheEntry(
            response=response, stored_at=self._clock(), ttl=ttl
        )

    def get(
        self, method: str, url: str, query_params: Mapping[str, str] | None = None
    ) -> Any | None:
        """Cached response, or None if absent or expired."""
        key = self.key(method, url, query_params)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry.response

    def clear(self) -> None:
        self._entries.clear()

    def clear_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
