"""
Order saga activities.

Simulated payment, inventory, compensation and notification steps. Long
steps heartbeat their progress so heartbeat timeouts can detect a stuck
attempt. Failures are injected with configurable rates from an injectable
random source.

Example:
    ```python
    activities = OrderActivities(step_delay=0.01, payment_failure_rate=0.2)
    worker = Worker(workflows=[OrderWorkflow, NotificationWorkflow], activities=[activities])
    ```
"""

from __future__ import annotations

import asyncio
import logging
import random
from decimal import Decimal

from pyflownodes.core.context import heartbeat
from pyflownodes.decorators import activity
from pyflownodes.errors import InventoryError, PaymentError, ValidationError
from pyflownodes.models.order import to_decimal

logger = logging.getLogger(__name__)


class OrderActivities:
    """
    Activities used by OrderWorkflow and NotificationWorkflow.

    Args:
        step_delay: Seconds slept per heartbeat step
        payment_failure_rate: Probability (0..1) that a payment step fails
        inventory_failure_rate: Probability (0..1) that an inventory step fails
        rng: Random source for failure injection
    """

    def __init__(
        self,
        step_delay: float = 0.5,
        payment_failure_rate: float = 0.0,
        inventory_failure_rate: float = 0.0,
        rng: random.Random | None = None,
    ):
        self.step_delay = step_delay
        self.payment_failure_rate = payment_failure_rate
        self.inventory_failure_rate = inventory_failure_rate
        self.rng = rng or random.Random()

    def _fails(self, rate: float) -> bool:
        return rate > 0 and self.rng.random() < rate

    @activity
    async def process_payment(self, order_id: str, amount: Decimal | float | str) -> str:
        """
        Charge the order total, heartbeating 0, 20, ... 100.

        Raises:
            PaymentError: Unparseable or negative amount, or simulated decline
                (non-retryable)
        """
        try:
            value = to_decimal(amount)
        except ValidationError as e:
            raise PaymentError(f"Invalid payment amount {amount!r} for order {order_id}") from e
        if value < 0:
            raise PaymentError(f"Invalid payment amount {amount} for order {order_id}")

        for progress in range(0, 101, 20):
            heartbeat(progress)
            await asyncio.sleep(self.step_delay)
            if self._fails(self.payment_failure_rate):
                raise PaymentError(f"Payment failed for order {order_id}")

        return f"Payment processed for order {order_id}"

    @activity
    async def update_inventory(self, product_id: str, quantity: int) -> str:
        """
        Reserve stock for one order line, heartbeating 0, 25, ... 100.

        Raises:
            InventoryError: Simulated shortage (non-retryable)
        """
        for progress in range(0, 101, 25):
            heartbeat(progress)
            await asyncio.sleep(self.step_delay)
            if self._fails(self.inventory_failure_rate):
                raise InventoryError(f"Insufficient inventory for product {product_id}")

        return f"Updated inventory for product {product_id}"

    @activity
    async def cancel_payment(self, order_id: str) -> str:
        """Compensate a completed payment."""
        for progress in range(0, 101, 33):
            heartbeat(progress)
            await asyncio.sleep(self.step_delay)
        return f"Payment cancelled for order {order_id}"

    @activity
    async def send_notification(self, user_id: str, message: str) -> None:
        heartbeat(0)
        await asyncio.sleep(self.step_delay)
        logger.info(f"Notification for {user_id}: {message}")
        heartbeat(100)

    @activity
    async def greet(self, name: str) -> str:
        return f"Hello, {name}!"

    @activity
    async def log_event(self, message: str) -> None:
        logger.info(message)
