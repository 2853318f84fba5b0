"""Tests for RetryFallbackController."""

from __future__ import annotations

import threading
from typing import Callable, List

import pytest

from rgteardown.cloud.errors import CloudError, ErrorKind
from rgteardown.models.outcome import RemovalStatus
from rgteardown.teardown.retry import Backoff, RetryFallbackController, RetryPolicy, Technique


def _failing(kind: ErrorKind, times: int, calls: List[str], name: str = "primary") -> Callable[[], None]:
    """Callable raising kind for the first `times` calls, then succeeding."""

    def call() -> None:
        calls.append(name)
        if len([c for c in calls if c == name]) <= times:
            raise CloudError(kind, f"{kind.value} from {name}")

    return call


class TestBackoff:
    """Test suite for Backoff."""

    def test_exponential_with_cap(self) -> None:
        """Test delays double and stop at the maximum."""
        backoff = Backoff(base=2.0, multiplier=2.0, maximum=10.0)

        assert [backoff.delay(n) for n in range(1, 5)] == [2.0, 4.0, 8.0, 10.0]

    def test_fixed_schedule(self) -> None:
        """Test multiplier 1 gives a fixed delay."""
        assert Backoff(base=5.0, multiplier=1.0).delay(4) == 5.0


class TestRetryPolicy:
    """Test suite for RetryPolicy."""

    def test_max_attempts_must_be_positive(self) -> None:
        """Test zero attempts is rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_without_retry_on(self) -> None:
        """Test removing a kind from the retryable set."""
        policy = RetryPolicy().without_retry_on(ErrorKind.CONFLICT)

        assert ErrorKind.CONFLICT not in policy.retryable
        assert ErrorKind.THROTTLED in policy.retryable


class TestRetryFallbackController:
    """Test suite for RetryFallbackController."""

    def setup_method(self) -> None:
        self.sleeps: List[float] = []
        self.controller = RetryFallbackController(sleep=self.sleeps.append)

    def test_success_first_try(self) -> None:
        """Test immediate success records one attempt."""
        outcome = self.controller.execute("/r/1", Technique("delete", lambda: None), RetryPolicy())

        assert outcome.status == RemovalStatus.REMOVED
        assert outcome.attempts_made == 1
        assert outcome.strategy_used == "delete"
        assert self.sleeps == []

    def test_conflict_retried_until_success(self) -> None:
        """Test N-1 conflicts followed by success takes exactly N attempts."""
        calls: List[str] = []
        policy = RetryPolicy(max_attempts=4, backoff=Backoff(base=1.0, multiplier=2.0, maximum=60.0))

        outcome = self.controller.execute("/r/1", Technique("delete", _failing(ErrorKind.CONFLICT, 3, calls)), policy)

        assert outcome.status == RemovalStatus.REMOVED
        assert outcome.attempts_made == 4
        assert self.sleeps == [1.0, 2.0, 4.0]

    def test_retries_exhausted(self) -> None:
        """Test persistent throttling fails after max attempts."""
        calls: List[str] = []
        policy = RetryPolicy(max_attempts=3)

        outcome = self.controller.execute("/r/1", Technique("delete", _failing(ErrorKind.THROTTLED, 99, calls)), policy)

        assert outcome.status == RemovalStatus.FAILED
        assert outcome.attempts_made == 3
        assert outcome.error_kind == ErrorKind.THROTTLED
        assert len(self.sleeps) == 2

    def test_not_found_is_success(self) -> None:
        """Test NOT_FOUND ends the removal as not-found without retries."""
        calls: List[str] = []

        outcome = self.controller.execute(
            "/r/1", Technique("delete", _failing(ErrorKind.NOT_FOUND, 99, calls)), RetryPolicy()
        )

        assert outcome.status == RemovalStatus.NOT_FOUND
        assert outcome.attempts_made == 1
        assert outcome.succeeded is True

    def test_shape_mismatch_falls_back(self) -> None:
        """Test a shape mismatch moves to the next technique, which succeeds."""
        calls: List[str] = []
        policy = RetryPolicy().with_fallbacks(
            Technique("rest-delete", _failing(ErrorKind.SHAPE_MISMATCH, 99, calls, "rest")),
            Technique("delete-by-id", _failing(ErrorKind.SHAPE_MISMATCH, 0, calls, "by-id")),
        )

        outcome = self.controller.execute(
            "/r/1", Technique("association-delete", _failing(ErrorKind.SHAPE_MISMATCH, 99, calls, "primary")), policy
        )

        assert outcome.status == RemovalStatus.REMOVED
        assert outcome.strategy_used == "delete-by-id"
        assert outcome.techniques_tried == ["association-delete", "rest-delete", "delete-by-id"]
        assert outcome.attempts_made == 3
        assert calls == ["primary", "rest", "by-id"]
        assert self.sleeps == []

    def test_chain_exhausted(self) -> None:
        """Test every technique rejected fails with the last error."""
        calls: List[str] = []
        policy = RetryPolicy().with_fallbacks(Technique("rest-delete", _failing(ErrorKind.SHAPE_MISMATCH, 99, calls, "rest")))

        outcome = self.controller.execute(
            "/r/1", Technique("delete", _failing(ErrorKind.SHAPE_MISMATCH, 99, calls)), policy
        )

        assert outcome.status == RemovalStatus.FAILED
        assert outcome.strategy_used == "rest-delete"
        assert outcome.error_kind == ErrorKind.SHAPE_MISMATCH
        assert outcome.attempts_made == 2

    def test_permission_denied_fails_without_fallback(self) -> None:
        """Test kinds outside retryable and fallback_on fail immediately."""
        calls: List[str] = []
        policy = RetryPolicy().with_fallbacks(Technique("rest-delete", lambda: calls.append("rest")))

        outcome = self.controller.execute(
            "/r/1", Technique("delete", _failing(ErrorKind.PERMISSION_DENIED, 99, calls)), policy
        )

        assert outcome.status == RemovalStatus.FAILED
        assert outcome.error_kind == ErrorKind.PERMISSION_DENIED
        assert calls == ["primary"]

    def test_operation_timeout(self) -> None:
        """Test a call exceeding the operation timeout fails as TIMEOUT without retry."""
        release = threading.Event()
        policy = RetryPolicy(operation_timeout=0.05)

        try:
            outcome = self.controller.execute("/r/1", Technique("delete", lambda: release.wait(5)), policy)
        finally:
            release.set()

        assert outcome.status == RemovalStatus.FAILED
        assert outcome.error_kind == ErrorKind.TIMEOUT
        assert outcome.attempts_made == 1
        assert "timed out" in outcome.reason

    def test_call_retries_reads(self) -> None:
        """Test read-only calls are retried on transient errors."""
        calls: List[str] = []
        read = _failing(ErrorKind.THROTTLED, 2, calls)

        def op() -> str:
            read()
            return "ok"

        assert self.controller.call(op, RetryPolicy(max_attempts=3)) == "ok"
        assert len(calls) == 3

    def test_call_raises_non_retryable(self) -> None:
        """Test read-only calls re-raise non-retryable errors."""
        calls: List[str] = []

        with pytest.raises(CloudError) as exc_info:
            self.controller.call(_failing(ErrorKind.NOT_FOUND, 1, calls), RetryPolicy())

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert calls == ["primary"]
