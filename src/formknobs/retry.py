"""Retry with backoff for draft persistence and other remote operations.

Example:
    ```python
    from formknobs.retry import DRAFT_OPERATIONS, RetryExecutor

    executor = RetryExecutor(DRAFT_OPERATIONS)
    draft_id = await executor.execute(backend.save, draft)
    ```
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from formknobs.exceptions import (
    NetworkError,
    PermissionDeniedError,
    StorageError,
    TimeoutError,
)

logger = logging.getLogger(__name__)


class BackoffStrategy(Enum):
    """How the delay grows between attempts."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    JITTER = "jitter"


def is_transient(error: BaseException) -> bool:
    """Default retry predicate: transport and storage failures, never permissions."""
    if isinstance(error, PermissionDeniedError):
        return False
    return isinstance(
        error,
        (NetworkError, StorageError, TimeoutError, asyncio.TimeoutError, ConnectionError),
    )


@dataclass(frozen=True)
class RetryConfig:
    """Retry behaviour.

    Attributes:
        max_attempts: Total attempts including the first one
        initial_delay: Delay in seconds before the first retry
        max_delay: Upper bound on any single delay
        backoff_strategy: Delay growth algorithm
        backoff_multiplier: Growth factor for exponential and jitter strategies
        jitter_range: Fractional jitter for the JITTER strategy (0.1 = +/-10%)
        should_retry: Predicate deciding whether an exception is worth retrying
        on_retry: Called with (attempt, exception) before each retry sleep
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    backoff_multiplier: float = 2.0
    jitter_range: float = 0.1
    should_retry: Callable[[BaseException], bool] = is_transient
    on_retry: Callable[[int, Exception], None] | None = None

    def with_overrides(self, **changes: Any) -> RetryConfig:
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        strategy = data.get("backoff_strategy", BackoffStrategy.EXPONENTIAL.value)
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            initial_delay=float(data.get("initial_delay", 1.0)),
            max_delay=float(data.get("max_delay", 30.0)),
            backoff_strategy=BackoffStrategy(strategy),
            backoff_multiplier=float(data.get("backoff_multiplier", 2.0)),
            jitter_range=float(data.get("jitter_range", 0.1)),
        )


DRAFT_OPERATIONS = RetryConfig(
    max_attempts=2,
    initial_delay=1.0,
    max_delay=5.0,
    backoff_multiplier=1.5,
)

NETWORK_REQUESTS = RetryConfig(
    max_attempts=3,
    initial_delay=1.0,
    max_delay=10.0,
    backoff_strategy=BackoffStrategy.JITTER,
)


class RetryExecutor:
    """Runs a sync or async callable until it succeeds or attempts run out.

    Exceptions rejected by ``config.should_retry`` propagate immediately.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after the given failed attempt (1-based)."""
        cfg = self.config
        if cfg.backoff_strategy is BackoffStrategy.FIXED:
            delay = cfg.initial_delay
        elif cfg.backoff_strategy is BackoffStrategy.LINEAR:
            delay = cfg.initial_delay * attempt
        else:
            delay = cfg.initial_delay * (cfg.backoff_multiplier ** (attempt - 1))
            if cfg.backoff_strategy is BackoffStrategy.JITTER:
                delay *= 1 + random.uniform(-cfg.jitter_range, cfg.jitter_range)
        return min(delay, cfg.max_delay)

    async def execute(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call ``func`` with retries.

        Returns:
            The first successful return value

        Raises:
            Exception: The last failure, or the first non-retryable one
        """
        attempts = max(1, self.config.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                result = func(*args, **kwargs)
                if asyncio.iscoroutine(result):
                    result = await result
                return result
            except Exception as e:
                if attempt >= attempts or not self.config.should_retry(e):
                    raise
                delay = self.delay_for(attempt)
                if self.config.on_retry:
                    self.config.on_retry(attempt, e)
                logger.debug(
                    "Retrying after failure (attempt %d/%d), delay=%.2fs: %s",
                    attempt, attempts, delay, e,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")
