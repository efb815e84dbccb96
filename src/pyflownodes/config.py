"""Worker configuration.

Settings come from explicit arguments, from the environment
(``WorkerSettings.from_env()``), or both via the builder methods:

    settings = WorkerSettings.from_env().with_task_queue("orders")

Environment variables:
- FLOWNODES_TASK_QUEUE: task queue name (default "flownodes-queue")
- FLOWNODES_STORE_URL: visibility store URL (default "memory://")
- SENDGRID_API_KEY: default SendGrid key for nodes that omit one
- FLOWNODES_LOG_LEVEL: level for configure_logging() (default "INFO")
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

DEFAULT_TASK_QUEUE = "flownodes-queue"
DEFAULT_STORE_URL = "memory://"


@dataclass(frozen=True)
class WorkerSettings:
    task_queue: str = DEFAULT_TASK_QUEUE
    store_url: str = DEFAULT_STORE_URL
    sendgrid_api_key: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> WorkerSettings:
        """Read settings from ``environ`` (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ
        return cls(
            task_queue=env.get("FLOWNODES_TASK_QUEUE", DEFAULT_TASK_QUEUE),
            store_url=env.get("FLOWNODES_STORE_URL", DEFAULT_STORE_URL),
            sendgrid_api_key=env.get("SENDGRID_API_KEY") or None,
            log_level=env.get("FLOWNODES_LOG_LEVEL", "INFO").upper(),
        )

    def with_task_queue(self, task_queue: str) -> WorkerSettings:
        return replace(self, task_queue=task_queue)

    def with_store_url(self, store_url: str) -> WorkerSettings:
        return replace(self, store_url=store_url)

    def with_sendgrid_api_key(self, api_key: str | None) -> WorkerSettings:
        return replace(self, sendgrid_api_key=api_key)

    def with_log_level(self, log_level: str) -> WorkerSettings:
        return replace(self, log_level=log_level.upper())


def configure_logging(settings: WorkerSettings | None = None) -> None:
    """Configure root logging for a worker process.

    The library itself never installs handlers; applications call this once
    at startup.
    """
    settings = settings or WorkerSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
