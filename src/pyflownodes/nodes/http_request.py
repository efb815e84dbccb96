"""
HTTP request node: validated requests with status-code retry and GET caching.

Parameters use the node's camelCase wire form:

    {
        "url": "https://api.example.com/items",
        "method": "GET",
        "headers": {"Accept": "application/json"},
        "queryParams": {"page": "1"},
        "body": {...},
        "timeout": 5000,                      # milliseconds
        "retry": {"attempts": 3, "delay": 200, "statusCodes": [502, 503]},
        "cache": {"ttl": 60}                  # seconds, GET only
    }

Retries here are part of one node invocation (one activity attempt) and use
a fixed delay; they are independent of the workflow's activity retry policy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import httpx

from pyflownodes.errors import NodeConfigurationError, WebhookError
from pyflownodes.nodes.cache import ResponseCache

logger = logging.getLogger(__name__)

VALID_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")


@dataclass(frozen=True)
class RetrySettings:
    attempts: int
    delay: float
    """Fixed delay between retries, in milliseconds."""
    status_codes: tuple[int, ...]


@dataclass(frozen=True)
class CacheSettings:
    ttl: float
    """Seconds a cached GET response stays valid."""


@dataclass(frozen=True)
class HttpRequestParameters:
    url: str
    method: str = "GET"
    headers: Mapping[str, Any] = field(default_factory=dict)
    query_params: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    timeout: float | None = None
    """Request timeout in milliseconds."""
    retry: RetrySettings | None = None
    cache: CacheSettings | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HttpRequestParameters:
        """Build parameters from the wire form; call ``validate()`` before use."""
        if not isinstance(data, Mapping):
            raise NodeConfigurationError("HTTP request parameters must be an object")

        retry = data.get("retry")
        cache = data.get("cache")
        method = data.get("method") or "GET"
        return cls(
            url=data.get("url") or "",
            method=method.upper() if isinstance(method, str) else method,
            headers=dict(data.get("headers") or {}),
            query_params=dict(data.get("queryParams") or data.get("query_params") or {}),
            body=data.get("body"),
            timeout=data.get("timeout"),
            retry=(
                RetrySettings(
                    attempts=retry.get("attempts"),
                    delay=retry.get("delay"),
                    status_codes=tuple(retry.get("statusCodes") or ()),
                )
                if retry
                else None
            ),
            cache=CacheSettings(ttl=cache.get("ttl")) if cache else None,
        )

    def validate(self) -> None:
        """
        Raises:
            NodeConfigurationError: With the first problem found
        """
        if not self.url:
            raise NodeConfigurationError("URL is required")
        if not self.method:
            raise NodeConfigurationError("HTTP method is required")
        try:
            parsed = httpx.URL(self.url)
        except (httpx.InvalidURL, TypeError) as e:
            raise NodeConfigurationError("Invalid URL format") from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise NodeConfigurationError("Invalid URL format")
        if self.method not in VALID_METHODS:
            raise NodeConfigurationError("Invalid HTTP method")

        if self.timeout is not None and (not _is_number(self.timeout) or self.timeout <= 0):
            raise NodeConfigurationError("Timeout must be a positive number")

        if self.retry is not None:
            if not _is_number(self.retry.attempts) or self.retry.attempts <= 0:
                raise NodeConfigurationError("Retry attempts must be a positive number")
            if not _is_number(self.retry.delay) or self.retry.delay <= 0:
                raise NodeConfigurationError("Retry delay must be a positive number")
            if not self.retry.status_codes:
                raise NodeConfigurationError("Retry status codes must be a non-empty array")
            for code in self.retry.status_codes:
                if not isinstance(code, int) or isinstance(code, bool) or not 100 <= code <= 599:
                    raise NodeConfigurationError("Invalid retry status code")

        if self.cache is not None and (not _is_number(self.cache.ttl) or self.cache.ttl <= 0):
            raise NodeConfigurationError("Cache TTL must be a positive number")

        if any(not isinstance(v, str) for v in self.headers.values()):
            raise NodeConfigurationError("Header values must be strings")
        if any(not isinstance(v, str) for v in self.query_params.values()):
            raise NodeConfigurationError("Query parameter values must be strings")

    def should_retry(self, status_code: int | None, retry_count: int) -> bool:
        if self.retry is None or retry_count >= self.retry.attempts:
            return False
        if status_code is None:
            return False
        return status_code in self.retry.status_codes


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    data: Any
    headers: dict[str, str]
    duration: float
    """Milliseconds from first attempt to final response."""
    retry_count: int = 0
    from_cache: bool = False

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def to_dict(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "data": self.data,
            "headers": self.headers,
            "duration": self.duration,
            "retryCount": self.retry_count,
            "fromCache": self.from_cache,
        }


class HttpRequestNode:
    """
    Executes HTTP requests for schema nodes.

    Args:
        client: Shared httpx.AsyncClient (caller owns it); a short-lived
            client is created per request when omitted
        cache: Response cache shared across requests
        sleep: Delay function between status-code retries (injectable for tests)

    Example:
        ```python
        node = HttpRequestNode()
        params = HttpRequestParameters.from_dict({"url": "https://example.com"})
        params.validate()
        response = await node.execute(params)
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache: ResponseCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self.cache = cache if cache is not None else ResponseCache()
        self._sleep = sleep

    async def execute(self, params: HttpRequestParameters) -> HttpResponse:
        """
        Perform the request.

        Non-2xx responses are returned (after status-code retries), not raised.

        Raises:
            NodeConfigurationError: If the parameters are invalid
            WebhookError: On network errors and timeouts
        """
        params.validate()
        cacheable = params.cache is not None and params.method == "GET"

        if cacheable:
            cached = self.cache.get(params.method, params.url, params.query_params)
            if cached is not None:
                logger.debug(f"HTTP cache hit: {params.method} {params.url}")
                return replace(cached, from_cache=True)

        start = time.perf_counter()
        retry_count = 0
        while True:
            response = await self._send(params)
            if not response.is_success and params.should_retry(
                response.status_code, retry_count
            ):
                retry_count += 1
                logger.warning(
                    f"HTTP {params.method} {params.url} returned {response.status_code}, "
                    f"retry {retry_count}/{params.retry.attempts}"
                )
                await self._sleep(params.retry.delay / 1000.0)
                continue

            result = HttpResponse(
                status_code=response.status_code,
                data=_decode_body(response),
                headers={k: str(v) for k, v in response.headers.items()},
                duration=(time.perf_counter() - start) * 1000.0,
                retry_count=retry_count,
            )
            if cacheable and result.is_success:
                self.cache.set(
                    params.method, params.url, result, params.cache.ttl, params.query_params
                )
            return result

    async def _send(self, params: HttpRequestParameters) -> httpx.Response:
        kwargs: dict[str, Any] = {
            "headers": dict(params.headers),
            "params": dict(params.query_params),
        }
        if params.timeout is not None:
            kwargs["timeout"] = params.timeout / 1000.0
        if isinstance(params.body, str | bytes):
            kwargs["content"] = params.body
        elif params.body is not None:
            kwargs["json"] = params.body

        try:
            if self._client is not None:
                return await self._client.request(params.method, params.url, **kwargs)
            async with httpx.AsyncClient(follow_redirects=True) as client:
                return await client.request(params.method, params.url, **kwargs)
        except httpx.HTTPError as e:
            raise WebhookError(f"HTTP {params.method} {params.url} failed: {e}") from e


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
