"""Tests for the backoff policy."""

from __future__ import annotations

import pytest

from docsync.replication.retry import compute_backoff, retry_with_backoff


class TestComputeBackoff:
    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(1, 5.0), (2, 10.0), (3, 15.0), (100, 300.0)],
    )
    def test_grows_per_attempt_and_caps(self, attempt: int, expected: float) -> None:
        assert compute_backoff(attempt, retry_delay=5, max_delay=300) == expected

    def test_no_delay(self) -> None:
        assert compute_backoff(0) == 0.0
        assert compute_backoff(3, retry_delay=0) == 0.0


class TestRetryWithBackoff:
    def test_succeeds_after_failures(self) -> None:
        calls: list[int] = []
        sleeps: list[float] = []

        def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("down")
            return "ok"

        assert retry_with_backoff(flaky, max_attempts=3, retry_delay=2, sleep=sleeps.append) == "ok"
        assert sleeps == [2, 4]

    def test_raises_last_error(self) -> None:
        def broken() -> None:
            raise ConnectionError("still down")

        with pytest.raises(ConnectionError, match="still down"):
            retry_with_backoff(broken, max_attempts=2, sleep=lambda _: None)

    def test_non_retryable_propagates_immediately(self) -> None:
        calls: list[int] = []

        def bad() -> None:
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            retry_with_backoff(
                bad, retryable_exceptions=(ConnectionError,), sleep=lambda _: None
            )
        assert len(calls) == 1
