"""Error classification and recovery actions for a wizard session.

Failures anywhere in the wizard are normalised into :class:`WizardError`
records. :class:`ErrorRecoveryCoordinator` turns a record into a
:class:`RecoveryStrategy`: a bundle of ready-to-call actions (retry,
skip, jump to a step, save a draft, reset, or surface the error) where
actions that do not apply are ``None``.

Example:
    ```python
    coordinator = ErrorRecoveryCoordinator(engine)
    strategy = coordinator.strategy_for(WizardError.from_exception(exc, step="pricing"))
    if strategy.save_draft:
        await strategy.save_draft()
    elif strategy.surface:
        strategy.surface()  # raises
    ```
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp

from formknobs.exceptions import (
    FormknobsError,
    NetworkError,
    PermissionDeniedError,
    SerializationError,
    StorageError,
    TimeoutError,
    ValidationError,
)
from formknobs.retry import DRAFT_OPERATIONS, RetryConfig, RetryExecutor

if TYPE_CHECKING:
    from formknobs.analytics.recorder import AnalyticsRecorder

logger = logging.getLogger(__name__)

RecoveryAction = Callable[[], Awaitable[Any]]


class ErrorType(str, Enum):
    VALIDATION = "validation"
    NETWORK = "network"
    STORAGE = "storage"
    PERMISSION = "permission"


_NETWORK_EXCEPTIONS: tuple[type[BaseException], ...] = (
    NetworkError,
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    aiohttp.ClientError,
)
_STORAGE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    StorageError,
    SerializationError,
    OSError,
)


@dataclass
class WizardError:
    """A classified wizard failure.

    Attributes:
        type: Failure category
        message: Human-readable description
        field: Offending field, for validation failures
        step: Step the failure happened on
        recoverable: False when no action other than surfacing makes sense
        timestamp: When the failure was recorded (UTC)
        context: Extra structured details
        cause: Original exception, when there was one
    """

    type: ErrorType
    message: str
    field: str | None = None
    step: str | None = None
    recoverable: bool = True
    timestamp: datetime = dataclasses.field(default_factory=lambda: datetime.now(timezone.utc))
    context: dict[str, Any] = dataclasses.field(default_factory=dict)
    cause: BaseException | None = dataclasses.field(default=None, repr=False, compare=False)

    @classmethod
    def from_exception(
        cls, exc: BaseException, step: str | None = None, field: str | None = None
    ) -> WizardError:
        """Classify an exception.

        Permission failures are not recoverable. Anything not recognised as a
        validation, transport or storage failure is treated as a transient
        network failure.
        """
        context = dict(exc.context) if isinstance(exc, FormknobsError) else {}
        if isinstance(exc, (PermissionDeniedError, PermissionError)):
            error_type, recoverable = ErrorType.PERMISSION, False
        elif isinstance(exc, ValidationError):
            error_type, recoverable = ErrorType.VALIDATION, True
        elif isinstance(exc, _NETWORK_EXCEPTIONS):
            error_type, recoverable = ErrorType.NETWORK, True
        elif isinstance(exc, _STORAGE_EXCEPTIONS):
            error_type, recoverable = ErrorType.STORAGE, True
        else:
            error_type, recoverable = ErrorType.NETWORK, True
        return cls(
            type=error_type,
            message=str(exc) or type(exc).__name__,
            field=field or context.get("field"),
            step=step,
            recoverable=recoverable,
            context=context,
            cause=exc,
        )

    @classmethod
    def validation(cls, step: str, errors: dict[str, str]) -> WizardError:
        """Record for a step whose strict validation failed."""
        first_field = next(iter(errors), None)
        message = errors[first_field] if first_field else f"Step {step} is invalid"
        return cls(
            type=ErrorType.VALIDATION,
            message=message,
            field=first_field,
            step=step,
            context={"errors": dict(errors)},
        )

    def to_exception(self) -> BaseException:
        """The exception to raise when this error is surfaced."""
        if self.cause is not None:
            return self.cause
        context = {"step": self.step, "field": self.field, **self.context}
        exc_type = {
            ErrorType.VALIDATION: ValidationError,
            ErrorType.NETWORK: NetworkError,
            ErrorType.STORAGE: StorageError,
            ErrorType.PERMISSION: PermissionDeniedError,
        }[self.type]
        return exc_type(self.message, context=context)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "field": self.field,
            "step": self.step,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }


@dataclass
class RecoveryStrategy:
    """Actions available for one error; inapplicable actions are ``None``."""

    error: WizardError
    retry: RecoveryAction | None = None
    skip: RecoveryAction | None = None
    go_to_step: RecoveryAction | None = None
    save_draft: RecoveryAction | None = None
    reset: RecoveryAction | None = None
    surface: Callable[[], None] | None = None

    def available_actions(self) -> list[str]:
        names = ("retry", "skip", "go_to_step", "save_draft", "reset", "surface")
        return [name for name in names if getattr(self, name) is not None]


class RecoveryHost(Protocol):
    """What the coordinator needs from the wizard it recovers.

    Methods may be sync or async.
    """

    @property
    def current_step_id(self) -> str | None:
        ...

    def can_skip_step(self, step_id: str) -> bool:
        ...

    def validate_current_step(self) -> Any:
        ...

    def skip_step(self) -> Any:
        ...

    def go_to_step(self, step_id: str) -> Any:
        ...

    def save_draft(self) -> Any:
        ...

    def reset(self) -> Any:
        ...


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if asyncio.iscoroutine(result):
        result = await result
    return result


class ErrorRecoveryCoordinator:
    """Classifies failures and offers recovery actions.

    Args:
        host: The wizard the actions operate on
        max_retries: Manual retries offered per error type before ``retry``
            is withdrawn
        retry_config: Backoff used by :meth:`auto_retry`
        recorder: Optional analytics recorder notified of every error
        max_history: Number of recent errors kept
    """

    def __init__(
        self,
        host: RecoveryHost,
        max_retries: int = 3,
        retry_config: RetryConfig = DRAFT_OPERATIONS,
        recorder: AnalyticsRecorder | None = None,
        max_history: int = 50,
    ) -> None:
        self._host = host
        self.max_retries = max_retries
        self._retry_config = retry_config
        self._recorder = recorder
        self._max_history = max_history
        self._history: list[WizardError] = []
        self._retry_counts: dict[ErrorType, int] = {}

    @property
    def history(self) -> list[WizardError]:
        return list(self._history)

    @property
    def last_error(self) -> WizardError | None:
        return self._history[-1] if self._history else None

    def retry_count(self, error_type: ErrorType) -> int:
        return self._retry_counts.get(error_type, 0)

    def can_retry(self, error_type: ErrorType) -> bool:
        return self.retry_count(error_type) < self.max_retries

    def reset_retries(self, error_type: ErrorType | None = None) -> None:
        if error_type is None:
            self._retry_counts.clear()
        else:
            self._retry_counts.pop(error_type, None)

    def record(self, error: WizardError) -> WizardError:
        """Add an error to the history and report it to analytics."""
        self._history.append(error)
        if len(self._history) > self._max_history:
            del self._history[: len(self._history) - self._max_history]
        log = logger.warning if error.recoverable else logger.error
        log(
            "Wizard %s error on step %s: %s", error.type.value, error.step, error.message,
            extra={"error_type": error.type.value, "step_id": error.step},
        )
        if self._recorder is not None:
            self._recorder.track_error(
                error.cause or error.to_exception(),
                {"errorType": error.type.value, "step": error.step, "field": error.field},
            )
        return error

    def clear_history(self) -> None:
        self._history.clear()

    def strategy_for(
        self,
        error: WizardError,
        operation: Callable[[], Any] | None = None,
    ) -> RecoveryStrategy:
        """Build the recovery options for ``error``.

        Args:
            error: The failure to recover from
            operation: What ``retry`` re-runs for network and storage errors;
                defaults to saving the draft

        Returns:
            A strategy whose applicable actions are set
        """
        strategy = RecoveryStrategy(error=error)

        def surface() -> None:
            raise error.to_exception()

        if not error.recoverable or error.type is ErrorType.PERMISSION:
            strategy.surface = surface
            return strategy

        if error.type is ErrorType.VALIDATION:
            current = self._host.current_step_id
            if self.can_retry(error.type):
                strategy.retry = self._counted(error.type, self._host.validate_current_step)
            step = error.step or current
            if step is not None and self._host.can_skip_step(step):
                strategy.skip = lambda: _call(self._host.skip_step)
            if error.step is not None and error.step != current:
                target = error.step
                strategy.go_to_step = lambda: _call(self._host.go_to_step, target)
            return strategy

        if self.can_retry(error.type):
            strategy.retry = self._counted(error.type, operation or self._host.save_draft)
        strategy.save_draft = lambda: _call(self._host.save_draft)
        strategy.reset = lambda: _call(self._host.reset)
        return strategy

    async def auto_retry(
        self,
        operation: Callable[[], Any],
        step: str | None = None,
        config: RetryConfig | None = None,
    ) -> Any:
        """Run ``operation`` with exponential backoff.

        Transient failures are retried. The final failure is recorded and
        re-raised; permission failures are recorded and raised at once.
        """
        executor = RetryExecutor(config or self._retry_config)
        try:
            return await executor.execute(operation)
        except Exception as e:
            self.record(WizardError.from_exception(e, step=step))
            raise

    def _counted(self, error_type: ErrorType, fn: Callable[[], Any]) -> RecoveryAction:
        async def action() -> Any:
            self._retry_counts[error_type] = self.retry_count(error_type) + 1
            return await _call(fn)

        return action
