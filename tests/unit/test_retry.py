"""Unit tests for retry with exponential backoff."""

from __future__ import annotations

import pytest

from row_object.core.exceptions import (
    AIError,
    ConfigurationError,
    DatabaseError,
    ValidationError,
)
from row_object.core.retry import RetryPolicy, is_retryable, with_retry


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Flaky:
    """Fails with *error* for the first *failures* calls."""

    def __init__(self, failures: int, error: Exception) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


@pytest.fixture
def sleep() -> FakeSleep:
    return FakeSleep()


class TestIsRetryable:
    @pytest.mark.parametrize(
        "error",
        [
            DatabaseError.connection_failed("sqlite:///x.db"),
            DatabaseError("database is locked", "DB_QUERY_FAILED", transient=True),
            AIError.rate_limit_exceeded("openai"),
            AIError.provider_error("openai", "do"),
            TimeoutError(),
            ConnectionResetError(),
            Exception("429 Too Many Requests"),
            Exception("upstream returned 503"),
        ],
    )
    def test_retryable(self, error: BaseException) -> None:
        assert is_retryable(error)

    @pytest.mark.parametrize(
        "error",
        [
            ValidationError.required_field("sku", "Product"),
            ConfigurationError.missing_configuration("db", "Product"),
            DatabaseError.constraint_violation("UNIQUE constraint failed: products.sku"),
            AIError.invalid_response("openai", "??"),
            Exception("division by zero"),
        ],
    )
    def test_not_retryable(self, error: BaseException) -> None:
        assert not is_retryable(error)


class TestWithRetry:
    async def test_success_first_try(self, sleep: FakeSleep) -> None:
        operation = Flaky(0, TimeoutError())
        assert await with_retry(operation, RetryPolicy(sleep=sleep)) == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    async def test_backoff_delays(self, sleep: FakeSleep) -> None:
        operation = Flaky(3, TimeoutError("timed out"))
        assert await with_retry(operation, RetryPolicy(sleep=sleep)) == "ok"
        assert operation.calls == 4
        assert sleep.delays == [0.5, 1.0, 2.0]

    async def test_gives_up_after_max_retries(self, sleep: FakeSleep) -> None:
        operation = Flaky(10, TimeoutError("timed out"))
        with pytest.raises(TimeoutError):
            await with_retry(operation, RetryPolicy(sleep=sleep))
        assert operation.calls == 4

    async def test_non_retryable_raised_immediately(self, sleep: FakeSleep) -> None:
        operation = Flaky(1, ValidationError.required_field("sku", "Product"))
        with pytest.raises(ValidationError):
            await with_retry(operation, RetryPolicy(sleep=sleep))
        assert operation.calls == 1
        assert sleep.delays == []

    async def test_custom_policy(self, sleep: FakeSleep) -> None:
        operation = Flaky(5, TimeoutError())
        policy = RetryPolicy(max_retries=1, delay=0.1, sleep=sleep)
        with pytest.raises(TimeoutError):
            await with_retry(operation, policy)
        assert sleep.delays == [0.1]

    def test_delay_for(self) -> None:
        policy = RetryPolicy()
        assert [policy.delay_for(n) for n in range(3)] == [0.5, 1.0, 2.0]
