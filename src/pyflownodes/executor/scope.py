"""
Cooperative cancellation scopes.

A CancellationScope never interrupts running code. Cancelling a scope marks
it (and every non-detached scope nested inside it) as cancel-requested;
workflow code observes the request at its next suspension point, where
``raise_if_cancelled()`` raises CancellationRequested.

Example:
    ```python
    with CancellationScope.cancellable() as scope:
        self._scope = scope  # a signal handler may call scope.cancel()
        await execute_activity(process_payment, order_id, amount)
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from contextvars import Token

from pyflownodes.core.context import CANCELLATION_SCOPE
from pyflownodes.errors import CancellationRequested


class CancellationScope:
    """
    Node in the scope tree of one workflow instance.

    Args:
        parent: Enclosing scope; cancellation flows from parent to child
        detached: If True, the parent's cancellation does not reach this scope
        on_cancel: Callback run whenever this scope or an ancestor is cancelled
            (the instance uses it to wake condition waiters)
    """

    def __init__(
        self,
        parent: CancellationScope | None = None,
        *,
        detached: bool = False,
        on_cancel: Callable[[], None] | None = None,
    ):
        self.parent = parent
        self.detached = detached
        self._cancelled = False
        self._reason: str | None = None
        if on_cancel is None and parent is not None:
            on_cancel = parent._on_cancel
        self._on_cancel = on_cancel
        self._tokens: list[Token] = []

    @classmethod
    def current(cls) -> CancellationScope | None:
        return CANCELLATION_SCOPE.get()

    @classmethod
    def cancellable(cls) -> CancellationScope:
        """New scope nested in the current one."""
        return cls(parent=cls.current())

    @classmethod
    def non_cancellable(cls) -> CancellationScope:
        """New scope shielded from outer cancellation (for cleanup work)."""
        return cls(parent=cls.current(), detached=True)

    @property
    def cancel_requested(self) -> bool:
        if self._cancelled:
            return True
        if self.parent is not None and not self.detached:
            return self.parent.cancel_requested
        return False

    @property
    def reason(self) -> str | None:
        if self._cancelled:
            return self._reason
        if self.parent is not None and not self.detached:
            return self.parent.reason
        return None

    def cancel(self, reason: str = "Cancellation requested") -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._on_cancel is not None:
            self._on_cancel()

    def raise_if_cancelled(self) -> None:
        if self.cancel_requested:
            raise CancellationRequested(self.reason or "Cancellation requested")

    def __enter__(self) -> CancellationScope:
        self._tokens.append(CANCELLATION_SCOPE.set(self))
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        CANCELLATION_SCOPE.reset(self._tokens.pop())

    def __repr__(self) -> str:
        return f"CancellationScope(cancel_requested={self.cancel_requested})"


def check_cancellation() -> None:
    """Raise CancellationRequested if the current scope was cancelled."""
    scope = CANCELLATION_SCOPE.get()
    if scope is not None:
        scope.raise_if_cancelled()
