"""
Retry and activity invocation policy configuration.

Design Pattern: Strategy Pattern
RetryPolicy and ActivityPolicy encapsulate how an activity is timed out and
retried, so workflow code can pick a policy per activity class without the
invocation code knowing which one it is running under.

Two layers:
- RetryPolicy: backoff schedule, attempt budget and non-retryable error types
- ActivityPolicy: RetryPolicy plus start-to-close and heartbeat timeouts
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from pyflownodes.models.schema import SchemaRetryPolicy


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for activity retry behavior.

    Controls how many times an activity is attempted and the exponential
    backoff between attempts.

    Examples:
        # Simple: just specify max attempts (uses standard intervals)
        policy = RetryPolicy.with_maximum_attempts(3)

        # Custom policy: full control
        policy = RetryPolicy(
            initial_interval=timedelta(seconds=2),
            maximum_interval=timedelta(seconds=30),
            backoff_coefficient=2.0,
            maximum_attempts=5,
            non_retryable_error_types=("PAYMENT_ERROR",),
        )
    """

    initial_interval: timedelta = timedelta(seconds=1)
    """Delay before the first retry."""

    maximum_interval: timedelta = timedelta(minutes=1)
    """Cap on the delay between retries."""

    backoff_coefficient: float = 2.0
    """Multiplier applied to the delay after every failed attempt.

    Each retry delay is calculated as:
    min(initial_interval * backoff_coefficient^(attempt-1), maximum_interval)
    """

    maximum_attempts: int = 3
    """Maximum number of attempts (including the first try)."""

    non_retryable_error_types: tuple[str, ...] = field(default_factory=tuple)
    """Error type names that fail the activity immediately.

    Matched against an error's ``type`` attribute when present, otherwise
    against its class name.
    """

    def __post_init__(self) -> None:
        if self.maximum_attempts < 1:
            raise ValueError(f"maximum_attempts must be >= 1, got {self.maximum_attempts}")
        if self.backoff_coefficient < 1.0:
            raise ValueError(
                f"backoff_coefficient must be >= 1.0, got {self.backoff_coefficient}"
            )
        # Accept lists from callers, store an immutable tuple
        object.__setattr__(
            self, "non_retryable_error_types", tuple(self.non_retryable_error_types)
        )

    @classmethod
    def with_maximum_attempts(cls, maximum_attempts: int) -> RetryPolicy:
        """
        Create a policy with custom maximum_attempts (uses standard intervals).

        Args:
            maximum_attempts: Maximum number of attempts

        Returns:
            RetryPolicy with standard intervals
        """
        return cls(maximum_attempts=maximum_attempts)

    def delay_for_attempt(self, attempt: int) -> timedelta | None:
        """
        Calculate the delay before the next attempt.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay before the next attempt, or None if no attempts remain.

        Example:
            policy = RetryPolicy(initial_interval=timedelta(seconds=1), maximum_attempts=3)
            policy.delay_for_attempt(1)  # 1s
            policy.delay_for_attempt(2)  # 2s
            policy.delay_for_attempt(3)  # None (budget exhausted)
        """
        if attempt >= self.maximum_attempts:
            return None

        seconds = self.initial_interval.total_seconds() * (
            self.backoff_coefficient ** (attempt - 1)
        )
        seconds = min(seconds, self.maximum_interval.total_seconds())
        return timedelta(seconds=seconds)

    def is_non_retryable_type(self, error_type: str) -> bool:
        """Check whether an error type name is declared non-retryable."""
        return error_type in self.non_retryable_error_types


@dataclass(frozen=True)
class ActivityPolicy:
    """
    Per-activity-class invocation policy.

    Bundles the timeouts and the retry policy that the runtime applies when
    it invokes an activity. Distinct policies exist for payment activities
    (longer timeout, heartbeat, narrow non-retryable set) and inventory
    activities (shorter timeout, heartbeat).

    Attributes:
        start_to_close_timeout: Limit for a single attempt
        heartbeat_timeout: Maximum gap between heartbeats, None to disable
        retry: Retry policy for the activity
    """

    start_to_close_timeout: timedelta = timedelta(minutes=1)
    heartbeat_timeout: timedelta | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    # =========================================================================
    # Predefined Policies
    # =========================================================================

    if TYPE_CHECKING:
        BASE: ActivityPolicy
        PAYMENT: ActivityPolicy
        INVENTORY: ActivityPolicy
    else:
        BASE = cast("ActivityPolicy", None)
        PAYMENT = cast("ActivityPolicy", None)
        INVENTORY = cast("ActivityPolicy", None)

    @classmethod
    def for_schema(cls, schema_retry: SchemaRetryPolicy) -> ActivityPolicy:
        """
        Derive the uniform node policy for one schema run.

        Args:
            schema_retry: Retry settings declared by the workflow schema

        Returns:
            Policy applied to every node invocation of the run
        """
        return cls(
            start_to_close_timeout=timedelta(minutes=5),
            retry=RetryPolicy(
                initial_interval=schema_retry.initial_interval,
                maximum_interval=timedelta(minutes=1),
                backoff_coefficient=2.0,
                maximum_attempts=schema_retry.max_attempts,
            ),
        )


ActivityPolicy.BASE = ActivityPolicy(
    start_to_close_timeout=timedelta(minutes=1),
    retry=RetryPolicy(
        initial_interval=timedelta(seconds=1),
        maximum_interval=timedelta(minutes=1),
        backoff_coefficient=2.0,
        maximum_attempts=3,
    ),
)

ActivityPolicy.PAYMENT = ActivityPolicy(
    start_to_close_timeout=timedelta(minutes=2),
    heartbeat_timeout=timedelta(seconds=10),
    retry=RetryPolicy(
        initial_interval=timedelta(seconds=2),
        maximum_interval=timedelta(seconds=30),
        backoff_coefficient=2.0,
        maximum_attempts=5,
        non_retryable_error_types=("PAYMENT_ERROR",),
    ),
)

ActivityPolicy.INVENTORY = ActivityPolicy(
    start_to_close_timeout=timedelta(seconds=30),
    heartbeat_timeout=timedelta(seconds=5),
    retry=RetryPolicy(
        initial_interval=timedelta(seconds=1),
        maximum_interval=timedelta(seconds=10),
        backoff_coefficient=2.0,
        maximum_attempts=3,
        non_retryable_error_types=("INVENTORY_ERROR",),
    ),
)


@dataclass(frozen=True)
class OrderPolicies:
    """
    Policy set used by one order saga.

    Passed to the OrderWorkflow constructor so tests and deployments can run
    several policy sets side by side.
    """

    payment: ActivityPolicy = ActivityPolicy.PAYMENT
    inventory: ActivityPolicy = ActivityPolicy.INVENTORY
    notification: ActivityPolicy = ActivityPolicy.BASE
