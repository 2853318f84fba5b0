"""Retry and fallback handling for single removal operations.

Wraps one logical removal with bounded retries on transient platform errors and
an ordered chain of alternate techniques tried when a technique is rejected.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field, replace
from typing import Any, Callable, FrozenSet, Optional, Sequence, Tuple

from ..cloud.errors import TRANSIENT_KINDS, CloudError, ErrorKind
from ..models.outcome import RemovalOutcome, RemovalStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Technique:
    """One way of performing a removal.

    Attributes:
        name: Name recorded in outcomes (e.g. "typed-delete", "rest-delete")
        call: Zero-argument callable issuing the platform call(s)
    """

    name: str
    call: Callable[[], Any]


@dataclass(frozen=True)
class Backoff:
    """Backoff schedule: base * multiplier ** (attempt - 1), capped at maximum.

    A multiplier of 1 gives a fixed schedule.
    """

    base: float = 2.0
    multiplier: float = 2.0
    maximum: float = 60.0

    def delay(self, attempt: int) -> float:
        return min(self.base * (self.multiplier ** max(attempt - 1, 0)), self.maximum)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for one removal.

    Attributes:
        max_attempts: Attempts per technique (default: 3)
        backoff: Delay schedule between attempts
        retryable: Error kinds retried with backoff
        fallback_on: Error kinds that move on to the next technique
        fallback_chain: Alternate techniques tried in order after the primary
        operation_timeout: Seconds one call may take before it counts as failed (None: unbounded)
    """

    max_attempts: int = 3
    backoff: Backoff = field(default_factory=Backoff)
    retryable: FrozenSet[ErrorKind] = TRANSIENT_KINDS
    fallback_on: FrozenSet[ErrorKind] = frozenset({ErrorKind.SHAPE_MISMATCH, ErrorKind.INCOMPLETE})
    fallback_chain: Tuple[Technique, ...] = ()
    operation_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def with_fallbacks(self, *techniques: Technique) -> "RetryPolicy":
        """Copy of this policy with the given fallback chain."""
        return replace(self, fallback_chain=tuple(techniques))

    def without_retry_on(self, *kinds: ErrorKind) -> "RetryPolicy":
        return replace(self, retryable=frozenset(self.retryable - set(kinds)))


class OperationTimeout(Exception):
    """A call exceeded the per-operation timeout."""


class RetryFallbackController:
    """Runs removal techniques with retries and fallbacks.

    Outcome attribution:
        attempts_made: every call issued, across all techniques
        strategy_used: technique that produced the terminal outcome
        techniques_tried: techniques entered, in order
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Initialize the controller.

        Args:
            sleep: Function used for backoff delays (injectable for tests)
        """
        self.sleep = sleep

    def execute(self, resource_id: str, operation: Technique, policy: RetryPolicy) -> RemovalOutcome:
        """Execute a removal with retries and fallbacks.

        Args:
            resource_id: Resource the removal targets (for attribution)
            operation: Primary technique
            policy: Retry policy, including the fallback chain

        Returns:
            RemovalOutcome: REMOVED on success, NOT_FOUND if already gone, FAILED otherwise
        """
        chain: Sequence[Technique] = (operation,) + tuple(policy.fallback_chain)
        attempts = 0
        tried = []
        last_error: Optional[CloudError] = None

        for position, technique in enumerate(chain):
            tried.append(technique.name)

            for attempt in range(1, policy.max_attempts + 1):
                attempts += 1
                try:
                    self._call(technique, policy.operation_timeout)
                    return RemovalOutcome(
                        resource_id,
                        status=RemovalStatus.REMOVED,
                        attempts_made=attempts,
                        strategy_used=technique.name,
                        techniques_tried=list(tried),
                    )
                except OperationTimeout:
                    logger.warning(
                        f"{technique.name} on {resource_id} exceeded {policy.operation_timeout}s; giving up"
                    )
                    return self._failed(
                        resource_id,
                        f"operation timed out after {policy.operation_timeout}s",
                        attempts,
                        technique.name,
                        ErrorKind.TIMEOUT,
                        tried,
                    )
                except CloudError as e:
                    last_error = e

                    if e.kind == ErrorKind.NOT_FOUND:
                        logger.info(f"Resource {resource_id} already deleted")
                        outcome = RemovalOutcome.not_found(resource_id, attempts, technique.name)
                        outcome.techniques_tried = list(tried)
                        return outcome

                    if e.kind in policy.retryable and attempt < policy.max_attempts:
                        wait_time = policy.backoff.delay(attempt)
                        logger.debug(
                            f"{e.kind.value} for {resource_id} ({technique.name}), "
                            f"retrying in {wait_time}s (attempt {attempt}/{policy.max_attempts})"
                        )
                        self.sleep(wait_time)
                        continue

                    if e.kind in policy.fallback_on and position < len(chain) - 1:
                        logger.info(
                            f"{technique.name} rejected for {resource_id} ({e.message}); "
                            f"falling back to {chain[position + 1].name}"
                        )
                        break

                    return self._failed(resource_id, e.message, attempts, technique.name, e.kind, tried)

        # All techniques exhausted
        reason = last_error.message if last_error else "no technique succeeded"
        return self._failed(resource_id, reason, attempts, tried[-1], last_error.kind if last_error else None, tried)

    def call(self, operation: Callable[[], Any], policy: RetryPolicy) -> Any:
        """Run a read-only call with retries on retryable errors.

        Args:
            operation: Zero-argument callable
            policy: Retry policy (fallbacks are ignored)

        Returns:
            The callable's return value

        Raises:
            CloudError: The last error once retries are exhausted or the error is not retryable
        """
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return operation()
            except CloudError as e:
                if e.kind not in policy.retryable or attempt >= policy.max_attempts:
                    raise
                self.sleep(policy.backoff.delay(attempt))

    def _call(self, technique: Technique, timeout: Optional[float]) -> Any:
        if timeout is None:
            return technique.call()

        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(technique.call)
            try:
                return future.result(timeout=timeout)
            except FutureTimeout as e:
                raise OperationTimeout(technique.name) from e
        finally:
            executor.shutdown(wait=False)

    def _failed(
        self,
        resource_id: str,
        reason: str,
        attempts: int,
        technique: str,
        kind: Optional[ErrorKind],
        tried: list,
    ) -> RemovalOutcome:
        logger.warning(f"Failed to remove {resource_id} via {technique}: {reason}")
        outcome = RemovalOutcome.failed(resource_id, reason, attempts, technique, kind)
        outcome.techniques_tried = list(tried)
        return outcome
