"""Small example workflows: a greeting, a signal-driven message holder, and a
versioned greeting."""

from __future__ import annotations

import logging
from datetime import timedelta

from pyflownodes.activities.order import OrderActivities
from pyflownodes.decorators import query, run, signal, workflow_type
from pyflownodes.executor.activity import execute_activity
from pyflownodes.executor.signal import wait_condition

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_TIMEOUT = timedelta(seconds=30)


@workflow_type
class GreetingWorkflow:
    @run
    async def run(self, name: str) -> str:
        return await execute_activity(OrderActivities.greet, name)


@workflow_type
class MessageWorkflow:
    """
    Holds a message until a signal changes it or the timeout elapses.

    Signals:
        update_message(message): replace the current message

    Queries:
        get_current_message(): the current message
    """

    def __init__(self):
        self._message = ""

    @run
    async def run(
        self, initial_message: str, timeout: timedelta | float = DEFAULT_MESSAGE_TIMEOUT
    ) -> str:
        self._message = initial_message
        changed = await wait_condition(lambda: self._message != initial_message, timeout)
        if not changed:
            logger.debug(f"Message unchanged after {timeout}")
        return self._message

    @signal
    def update_message(self, message: str) -> None:
        self._message = message

    @query
    def get_current_message(self) -> str:
        return self._message


@workflow_type
class VersionedWorkflow:
    """Greeting whose wording depends on the deployed code version."""

    def __init__(self, version: str = "1.0"):
        self.version = version

    @run
    async def run(self, name: str) -> str:
        if self.version == "1.0":
            return f"Hello {name} from version 1.0!"
        return f"Greetings {name} from version {self.version}!"
