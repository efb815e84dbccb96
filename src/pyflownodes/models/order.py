"""Order saga state.

OrderState is owned by exactly one running OrderWorkflow. It is mutated only
by the workflow body and its signal handlers, and read by queries through
``snapshot()``, which returns a JSON-serializable dict.

Order lines and the order total are recorded as the caller supplied them.
Domain checks belong to the caller (``OrderItem.validate``) or to the
activities that consume the values (``to_decimal`` in the payment step).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pyflownodes.errors import ValidationError
from pyflownodes.models.status import OrderStatus


@dataclass(frozen=True)
class OrderItem:
    """One order line."""

    product_id: str
    quantity: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | OrderItem) -> OrderItem:
        """Build an item from ``{"product_id"|"productId", "quantity"}``.

        Values are taken as given; call ``validate()`` to check them.
        """
        if isinstance(data, OrderItem):
            return data
        if not isinstance(data, Mapping):
            return cls(product_id=data, quantity=None)
        product_id = data.get("product_id", data.get("productId"))
        return cls(product_id=product_id, quantity=data.get("quantity"))

    def validate(self) -> OrderItem:
        """
        Check the line for submission.

        Raises:
            ValidationError: Missing product id or non-positive integer quantity
        """
        if not self.product_id or not isinstance(self.product_id, str):
            raise ValidationError("Order item requires a product_id")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool):
            raise ValidationError(f"Order item quantity must be an integer, got {self.quantity!r}")
        if self.quantity <= 0:
            raise ValidationError(
                f"Order item quantity must be positive, got {self.quantity} "
                f"for product {self.product_id}"
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"product_id": self.product_id, "quantity": self.quantity}


@dataclass
class OrderProgress:
    """Per-phase progress percentages, each 0..100."""

    payment: int = 0
    inventory: int = 0
    overall: int = 0

    def advance(
        self,
        payment: int | None = None,
        inventory: int | None = None,
        overall: int | None = None,
    ) -> None:
        """Raise progress values; a lower value than the current one is ignored."""
        if payment is not None:
            self.payment = max(self.payment, _clamp(payment))
        if inventory is not None:
            self.inventory = max(self.inventory, _clamp(inventory))
        if overall is not None:
            self.overall = max(self.overall, _clamp(overall))

    def to_dict(self) -> dict[str, int]:
        return {"payment": self.payment, "inventory": self.inventory, "overall": self.overall}


def _clamp(value: int) -> int:
    return min(100, max(0, value))


def to_decimal(amount: Any) -> Decimal:
    """
    Convert a caller-supplied amount to a finite Decimal without float artifacts.

    Raises:
        ValidationError: If the amount is not a finite number
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"Invalid order amount: {amount!r}") from e
    if not value.is_finite():
        raise ValidationError(f"Invalid order amount: {amount!r}")
    return value


def coerce_amount(amount: Any) -> Any:
    """Decimal form of ``amount`` when it has one, otherwise the value unchanged."""
    try:
        return to_decimal(amount)
    except ValidationError:
        return amount


@dataclass
class OrderState:
    """
    Mutable state of one order saga.

    Attributes:
        status: Current saga status
        items: Order lines, appendable until the saga is cancelled or terminal
        total_amount: Order total as supplied by the caller, fixed once opened
        progress: Per-phase progress
        last_updated: Workflow-clock time of the last mutation
        cancelled: One-way cancellation flag

    Invariants:
        - status never leaves a terminal value
        - once cancelled, the only status accepted is CANCELLED
        - progress values never decrease
    """

    total_amount: Any = None
    last_updated: datetime | None = None
    items: list[OrderItem] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PROCESSING
    progress: OrderProgress = field(default_factory=OrderProgress)
    cancelled: bool = False

    @classmethod
    def create(cls, items: Iterable[Any], total_amount: Any, now: datetime) -> OrderState:
        """Create the initial PROCESSING state."""
        state = cls()
        state.open(items, total_amount, now)
        return state

    def open(self, items: Iterable[Any] | None, total_amount: Any, now: datetime) -> None:
        """
        Record the submitted order lines and total.

        Lines added by signal before the order was opened stay after the
        submitted ones. Nothing here rejects a value.
        """
        self.items[:0] = [OrderItem.from_dict(item) for item in items or ()]
        self.total_amount = coerce_amount(total_amount)
        self.last_updated = now

    def transition(self, status: OrderStatus, now: datetime) -> bool:
        """
        Move to a new status if the lifecycle allows it.

        Args:
            status: Target status
            now: Workflow-clock timestamp of the change

        Returns:
            True if the status changed, False if the transition was refused
        """
        if self.status.is_terminal:
            return False
        if self.cancelled and status != OrderStatus.CANCELLED:
            return False
        self.status = status
        self.last_updated = now
        return True

    def add_item(self, item: OrderItem, now: datetime) -> bool:
        """Append an item unless the order is cancelled or finished."""
        if self.cancelled or self.status.is_terminal:
            return False
        self.items.append(item)
        self.last_updated = now
        return True

    def cancel(self, now: datetime) -> bool:
        """Raise the cancellation flag; no-op once the saga is terminal."""
        if self.cancelled or self.status.is_terminal:
            return False
        self.cancelled = True
        self.status = OrderStatus.CANCELLED
        self.last_updated = now
        return True

    def record_progress(self, now: datetime, **values: int) -> None:
        self.progress.advance(**values)
        self.last_updated = now

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable copy of the full state."""
        return {
            "status": self.status.value,
            "items": [item.to_dict() for item in self.items],
            "total_amount": None if self.total_amount is None else str(self.total_amount),
            "progress": self.progress.to_dict(),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "cancelled": self.cancelled,
        }
