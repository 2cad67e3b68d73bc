"""Step and document validation."""

from formknobs.validation.messages import ViolationKind, format_violation
from formknobs.validation.result import (
    DocumentValidationResult,
    ValidationMode,
    ValidationResult,
)
from formknobs.validation.validator import StepValidator

__all__ = [
    "DocumentValidationResult",
    "StepValidator",
    "ValidationMode",
    "ValidationResult",
    "ViolationKind",
    "format_violation",
]
