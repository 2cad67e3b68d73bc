"""Validation result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ValidationMode(str, Enum):
    """STRICT gates navigation; LENIENT accepts incomplete drafts."""

    STRICT = "strict"
    LENIENT = "lenient"


def _add(bucket: dict[str, list[str]], field_path: str, message: str) -> None:
    messages = bucket.setdefault(field_path, [])
    if message not in messages:
        messages.append(message)


@dataclass
class ValidationResult:
    """Outcome of validating one step.

    Attributes:
        step_id: Step that was validated
        errors: Blocking messages keyed by dotted field path
        warnings: Non-blocking messages keyed by dotted field path
        completion: Percentage (0-100) of required fields that hold a value
        missing_fields: Required paths without a value
        mode: Mode the step was validated in
    """

    step_id: str
    errors: dict[str, list[str]] = field(default_factory=dict)
    warnings: dict[str, list[str]] = field(default_factory=dict)
    completion: int = 100
    missing_fields: list[str] = field(default_factory=list)
    mode: ValidationMode = ValidationMode.STRICT

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, field_path: str, message: str) -> None:
        _add(self.errors, field_path, message)

    def add_warning(self, field_path: str, message: str) -> None:
        _add(self.warnings, field_path, message)

    def first_errors(self) -> dict[str, str]:
        """One message per field, the shape the engine keeps in session state."""
        return {path: messages[0] for path, messages in self.errors.items() if messages}

    def errors_for(self, field_path: str) -> list[str]:
        """Messages for a field and anything nested below it."""
        prefix = f"{field_path}."
        return [
            message
            for path, messages in self.errors.items()
            if path == field_path or path.startswith(prefix)
            for message in messages
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "is_valid": self.is_valid,
            "errors": {k: list(v) for k, v in self.errors.items()},
            "warnings": {k: list(v) for k, v in self.warnings.items()},
            "completion": self.completion,
            "missing_fields": list(self.missing_fields),
            "mode": self.mode.value,
        }


@dataclass
class DocumentValidationResult:
    """Outcome of validating every step plus the assembled document.

    Attributes:
        steps: Per-step strict results, in wizard order
        document_errors: Errors from the document schema and cross-step rules,
            grouped by step id (``"document"`` for those tied to no step)
    """

    steps: dict[str, ValidationResult] = field(default_factory=dict)
    document_errors: dict[str, dict[str, list[str]]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors_by_step()

    def add_document_error(self, step_id: str, field_path: str, message: str) -> None:
        _add(self.document_errors.setdefault(step_id, {}), field_path, message)

    def errors_by_step(self) -> dict[str, dict[str, list[str]]]:
        grouped: dict[str, dict[str, list[str]]] = {}
        for step_id, result in self.steps.items():
            for path, messages in result.errors.items():
                for message in messages:
                    _add(grouped.setdefault(step_id, {}), path, message)
        for step_id, fields in self.document_errors.items():
            for path, messages in fields.items():
                for message in messages:
                    _add(grouped.setdefault(step_id, {}), path, message)
        return grouped

    def first_invalid_step(self, step_order: tuple[str, ...] | list[str]) -> str | None:
        """First step in ``step_order`` with any error, else ``None``."""
        grouped = self.errors_by_step()
        for step_id in step_order:
            if step_id in grouped:
                return step_id
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "steps": {k: v.to_dict() for k, v in self.steps.items()},
            "errors": self.errors_by_step(),
        }
