"""Tests for retry with backoff."""

from __future__ import annotations

import asyncio

import pytest

from formknobs.exceptions import (
    NetworkError,
    PermissionDeniedError,
    StorageError,
    TimeoutError,
    ValidationError,
)
from formknobs.retry import (
    DRAFT_OPERATIONS,
    BackoffStrategy,
    RetryConfig,
    RetryExecutor,
    is_transient,
)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestIsTransient:
    """Tests for the default retry predicate."""

    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("down"),
            StorageError("full"),
            TimeoutError("slow"),
            asyncio.TimeoutError(),
            ConnectionResetError(),
        ],
    )
    def test_transient(self, error: Exception) -> None:
        assert is_transient(error)

    @pytest.mark.parametrize(
        "error",
        [PermissionDeniedError("no"), ValidationError("bad"), ValueError("x")],
    )
    def test_not_transient(self, error: Exception) -> None:
        assert not is_transient(error)


class TestDelays:
    """Tests for backoff delay computation."""

    def test_exponential(self) -> None:
        executor = RetryExecutor(RetryConfig(initial_delay=1.0, backoff_multiplier=2.0))
        assert [executor.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_capped_by_max_delay(self) -> None:
        executor = RetryExecutor(RetryConfig(initial_delay=1.0, max_delay=3.0))
        assert executor.delay_for(10) == 3.0

    def test_fixed_and_linear(self) -> None:
        fixed = RetryExecutor(RetryConfig(backoff_strategy=BackoffStrategy.FIXED, initial_delay=0.5))
        linear = RetryExecutor(RetryConfig(backoff_strategy=BackoffStrategy.LINEAR, initial_delay=0.5))
        assert fixed.delay_for(3) == 0.5
        assert linear.delay_for(3) == 1.5

    def test_jitter_stays_in_range(self) -> None:
        executor = RetryExecutor(
            RetryConfig(backoff_strategy=BackoffStrategy.JITTER, initial_delay=1.0, jitter_range=0.1)
        )
        for _ in range(50):
            assert 0.9 <= executor.delay_for(1) <= 1.1

    def test_draft_preset(self) -> None:
        assert DRAFT_OPERATIONS.max_attempts == 2
        assert DRAFT_OPERATIONS.max_delay == 5.0

    def test_from_dict(self) -> None:
        config = RetryConfig.from_dict({"max_attempts": 5, "backoff_strategy": "linear"})
        assert config.max_attempts == 5
        assert config.backoff_strategy is BackoffStrategy.LINEAR


class TestRetryExecutor:
    """Tests for RetryExecutor.execute."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        sleep = RecordingSleep()
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise NetworkError("down")
            return "ok"

        executor = RetryExecutor(RetryConfig(max_attempts=3, initial_delay=1.0), sleep=sleep)
        assert await executor.execute(flaky) == "ok"
        assert calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_raises_last_error(self) -> None:
        sleep = RecordingSleep()

        def always_fails() -> None:
            raise StorageError("still broken")

        executor = RetryExecutor(RetryConfig(max_attempts=2), sleep=sleep)
        with pytest.raises(StorageError, match="still broken"):
            await executor.execute(always_fails)
        assert len(sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_permission_errors_are_not_retried(self) -> None:
        sleep = RecordingSleep()
        calls = 0

        async def forbidden() -> None:
            nonlocal calls
            calls += 1
            raise PermissionDeniedError("nope")

        executor = RetryExecutor(RetryConfig(max_attempts=5), sleep=sleep)
        with pytest.raises(PermissionDeniedError):
            await executor.execute(forbidden)
        assert calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_on_retry_callback(self) -> None:
        seen: list[int] = []
        outcomes = iter([NetworkError("a"), "done"])

        def step() -> str:
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        config = RetryConfig(on_retry=lambda attempt, _e: seen.append(attempt))
        executor = RetryExecutor(config, sleep=RecordingSleep())
        assert await executor.execute(step) == "done"
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_passes_arguments(self) -> None:
        async def add(a: int, b: int = 0) -> int:
            return a + b

        assert await RetryExecutor(sleep=RecordingSleep()).execute(add, 2, b=3) == 5
