"""Exception hierarchy for formknobs.

Every error raised by this package derives from :class:`FormknobsError`,
which carries an optional ``context`` dictionary with structured details
(step ids, draft ids, HTTP status codes and so on).

Validation problems in user data are *returned* as
:class:`~formknobs.validation.ValidationResult` objects and never raised.
The :class:`ValidationError` here is reserved for programming errors such
as validating against an unknown step.

Example:
    ```python
    from formknobs.exceptions import FormknobsError, NotFoundError

    try:
        engine.go_to_step("missing")
    except NotFoundError as e:
        logger.error("Step lookup failed: %s (%s)", e, e.context)
    except FormknobsError:
        raise
    ```
"""

from __future__ import annotations

from typing import Any


class FormknobsError(Exception):
    """Base exception for all formknobs errors.

    Attributes:
        context: Dictionary containing contextual information about the error
        details: Alias for context

    Args:
        message: Human-readable error message
        context: Optional dictionary with error context
        details: Alternative to context (takes precedence when both are given)
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.context = details or context or {}
        self.details = self.context


class ValidationError(FormknobsError):
    """Raised when a validation request itself is malformed."""


class ConfigurationError(FormknobsError):
    """Raised when a wizard configuration is invalid or incomplete.

    Example:
        ```python
        raise ConfigurationError(
            "Duplicate step id",
            context={"step_id": "location"}
        )
        ```
    """


class UnknownDraftTypeError(ConfigurationError):
    """Raised when a draft manager is requested for an unsupported wizard kind."""

    def __init__(self, kind: Any):
        super().__init__(
            f"Unknown draft type: {kind}",
            context={"wizard_kind": str(kind)},
        )
        self.kind = kind


class NotFoundError(FormknobsError):
    """Raised when a requested step, draft or resource does not exist."""


class OperationError(FormknobsError):
    """Raised when an operation cannot be performed in the current state."""


class InvalidTransitionError(OperationError):
    """Raised when a lifecycle transition is not allowed.

    Attributes:
        entity: Name of the state machine that rejected the transition
        current_status: Status the entity was in
        target_status: Status that was requested
        allowed: Statuses reachable from ``current_status``
    """

    def __init__(
        self,
        entity: str,
        current_status: str,
        target_status: str,
        allowed: set[str] | None = None,
    ):
        allowed = allowed or set()
        allowed_desc = ", ".join(sorted(allowed)) if allowed else "none"
        super().__init__(
            f"Invalid {entity} transition: {current_status} -> {target_status} "
            f"(allowed: {allowed_desc})",
            context={
                "entity": entity,
                "current_status": current_status,
                "target_status": target_status,
                "allowed": sorted(allowed),
            },
        )
        self.entity = entity
        self.current_status = current_status
        self.target_status = target_status
        self.allowed = allowed


class StorageError(FormknobsError):
    """Raised when a storage tier fails to read or write a draft."""


class StorageQuotaExceededError(StorageError):
    """Raised when a key-value storage has no room for a write."""


class NetworkError(FormknobsError):
    """Raised when a remote service cannot be reached or answers with an error."""


class PermissionDeniedError(FormknobsError):
    """Raised when the server refuses an operation for the current user.

    Permission failures are not recoverable by retrying.
    """


class SerializationError(FormknobsError):
    """Raised when a draft or state payload cannot be encoded or decoded."""


class TimeoutError(FormknobsError):  # noqa: A001
    """Raised when an operation exceeds its time budget."""


__all__ = [
    "ConfigurationError",
    "FormknobsError",
    "InvalidTransitionError",
    "NetworkError",
    "NotFoundError",
    "OperationError",
    "PermissionDeniedError",
    "SerializationError",
    "StorageError",
    "StorageQuotaExceededError",
    "TimeoutError",
    "UnknownDraftTypeError",
    "ValidationError",
]
