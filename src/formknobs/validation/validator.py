"""Schema-driven step validation.

Each step carries a strict JSON schema that gates forward navigation and
a lenient counterpart used when saving drafts. The lenient schema is
either configured explicitly (``draft_schema``) or derived from the strict
one with :func:`formknobs.schema.lenient_schema`.

Values that are not filled in (``None``, blank strings, empty
collections) are treated as absent in both modes, so a blank required
field reports ``required_missing`` rather than passing silently.

Example:
    ```python
    validator = StepValidator(config)
    result = validator.validate_step("pricing", data)
    if not result.is_valid:
        for field, messages in result.errors.items():
            print(field, messages)
    ```
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

import jsonschema

from formknobs.config.model import DOCUMENT_STEP, Step, WizardConfig
from formknobs.schema import get_path, has_value, lenient_schema, prune_empty, set_path
from formknobs.validation.messages import (
    ViolationKind,
    describe_error,
    format_violation,
)
from formknobs.validation.result import (
    DocumentValidationResult,
    ValidationMode,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def _build_validator(schema: dict[str, Any]) -> jsonschema.Draft202012Validator:
    return jsonschema.Draft202012Validator(schema, format_checker=jsonschema.FormatChecker())


def _sorted_errors(
    validator: jsonschema.Draft202012Validator, instance: Any
) -> list[jsonschema.ValidationError]:
    return sorted(
        validator.iter_errors(instance),
        key=lambda e: (".".join(str(p) for p in e.absolute_path), str(e.validator)),
    )


class StepValidator:
    """Validates form data against a wizard's step and document schemas.

    Validators are compiled once per configuration. Validation never raises
    for bad data; asking for an unknown step raises
    :class:`~formknobs.exceptions.NotFoundError`.

    Args:
        config: The wizard configuration to validate against
    """

    def __init__(self, config: WizardConfig) -> None:
        self.config = config
        self._strict = {step.id: _build_validator(step.schema) for step in config.steps}
        self._lenient = {
            step.id: _build_validator(
                step.draft_schema if step.draft_schema is not None else lenient_schema(step.schema)
            )
            for step in config.steps
        }
        self._document = (
            _build_validator(config.document_schema)
            if config.document_schema is not None
            else None
        )

    def validate_step(
        self,
        step_id: str,
        data: Mapping[str, Any] | None,
        mode: ValidationMode = ValidationMode.STRICT,
    ) -> ValidationResult:
        """Validate the data relevant to one step.

        In STRICT mode missing required fields are errors. In LENIENT mode
        they are reported as warnings and only malformed values are errors.

        Args:
            step_id: Step to validate
            data: Whole form data (steps share one document)
            mode: Validation mode

        Returns:
            The step's validation result, including its completion percentage
        """
        step = self.config.get_step(step_id)
        data = data or {}
        instance = prune_empty(data)
        validator = self._strict[step.id] if mode is ValidationMode.STRICT else self._lenient[step.id]

        result = ValidationResult(step_id=step.id, mode=mode)
        for error in _sorted_errors(validator, instance):
            for field_path, message, _kind in describe_error(error):
                result.add_error(field_path, message)

        result.completion, result.missing_fields = self._completion(step, data)
        if mode is ValidationMode.LENIENT:
            for path in result.missing_fields:
                result.add_warning(
                    path, format_violation(path, ViolationKind.REQUIRED_MISSING)
                )
        for path in step.recommended_fields:
            if not has_value(get_path(data, path)):
                result.add_warning(path, f"{path} is recommended")
        return result

    def validate_all(self, data: Mapping[str, Any] | None) -> DocumentValidationResult:
        """Validate the whole document before completion.

        Every step is validated strictly (optional steps only once any of
        their fields is filled in), then the document schema, then the
        configured cross-step rules.
        """
        data = data or {}
        outcome = DocumentValidationResult()
        for step in self.config.steps:
            mode = ValidationMode.STRICT
            if step.optional and not self._is_touched(step, data):
                mode = ValidationMode.LENIENT
            result = self.validate_step(step.id, data, mode)
            if mode is ValidationMode.LENIENT:
                result.warnings.clear()
            outcome.steps[step.id] = result

        if self._document is not None:
            for error in _sorted_errors(self._document, prune_empty(data)):
                for field_path, message, _kind in describe_error(error):
                    step_id = self.config.step_for_field(field_path) or DOCUMENT_STEP
                    outcome.add_document_error(step_id, field_path, message)

        for rule in self.config.cross_step_rules:
            violations = rule.check(dict(data)) or {}
            for field_path, message in violations.items():
                outcome.add_document_error(rule.step_id, field_path, message)

        if not outcome.is_valid:
            logger.debug(
                "Document validation failed for %s wizard: %s",
                self.config.kind.value, sorted(outcome.errors_by_step()),
            )
        return outcome

    def validate_field(
        self,
        step_id: str,
        field_path: str,
        value: Any,
        data: Mapping[str, Any] | None = None,
    ) -> list[str]:
        """Validate a single field as if ``value`` were entered into ``data``.

        Returns:
            Error messages for the field and anything nested below it
        """
        candidate = copy.deepcopy(dict(data or {}))
        set_path(candidate, field_path, value)
        return self.validate_step(step_id, candidate).errors_for(field_path)

    def completion(self, step_id: str, data: Mapping[str, Any] | None) -> int:
        percent, _missing = self._completion(self.config.get_step(step_id), data or {})
        return percent

    def overall_progress(self, data: Mapping[str, Any] | None) -> int:
        """Mean completion of the required steps (all steps if none are required)."""
        steps = [s for s in self.config.steps if not s.optional] or list(self.config.steps)
        total = sum(self._completion(step, data or {})[0] for step in steps)
        return round(total / len(steps))

    def next_incomplete_step(self, data: Mapping[str, Any] | None) -> str | None:
        """First required step that does not pass strict validation."""
        for step in self.config.steps:
            if not step.optional and not self.validate_step(step.id, data).is_valid:
                return step.id
        return None

    def can_navigate_to(self, target_step_id: str, data: Mapping[str, Any] | None) -> bool:
        """Whether every required step before ``target_step_id`` is valid."""
        target_index = self.config.index_of(target_step_id)
        return all(
            step.optional or self.validate_step(step.id, data).is_valid
            for step in self.config.steps[:target_index]
        )

    def _completion(self, step: Step, data: Mapping[str, Any]) -> tuple[int, list[str]]:
        if not step.required_fields:
            return 100, []
        missing = [p for p in step.required_fields if not has_value(get_path(data, p))]
        filled = len(step.required_fields) - len(missing)
        return round(100 * filled / len(step.required_fields)), missing

    def _is_touched(self, step: Step, data: Mapping[str, Any]) -> bool:
        fields = list((step.schema.get("properties") or {}).keys()) or list(step.required_fields)
        return any(has_value(get_path(data, f)) for f in fields)
