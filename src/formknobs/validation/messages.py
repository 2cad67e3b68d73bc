"""Violation kinds and the message templates rendered for them."""

from __future__ import annotations

from enum import Enum
from typing import Any

import jsonschema

ROOT_FIELD = "_root"


class ViolationKind(str, Enum):
    """Category of a field-level validation failure."""

    TYPE_MISMATCH = "type_mismatch"
    RANGE_VIOLATION = "range_violation"
    REQUIRED_MISSING = "required_missing"
    ENUM_INVALID = "enum_invalid"
    FORMAT_INVALID = "format_invalid"


_RANGE_TEMPLATES = {
    "minimum": "{field} must be at least {limit}",
    "maximum": "{field} must be at most {limit}",
    "exclusiveMinimum": "{field} must be greater than {limit}",
    "exclusiveMaximum": "{field} must be less than {limit}",
    "multipleOf": "{field} must be a multiple of {limit}",
    "minLength": "{field} must be at least {limit} characters",
    "maxLength": "{field} must be at most {limit} characters",
    "minItems": "{field} must contain at least {limit} items",
    "maxItems": "{field} must contain at most {limit} items",
    "minProperties": "{field} must have at least {limit} entries",
    "maxProperties": "{field} must have at most {limit} entries",
}

_RANGE_KEYWORDS = frozenset(_RANGE_TEMPLATES)


def format_violation(field: str, kind: ViolationKind, constraint: Any = None) -> str:
    """Render the user-facing message for one violation.

    Args:
        field: Dotted field path
        kind: Violation category
        constraint: Kind-specific detail. The expected type (or list of types)
            for ``TYPE_MISMATCH``; a ``(keyword, limit)`` pair for
            ``RANGE_VIOLATION``; the allowed values for ``ENUM_INVALID``; a
            ``(keyword, value)`` pair or a format name for ``FORMAT_INVALID``

    Example:
        ```python
        format_violation("price", ViolationKind.RANGE_VIOLATION, ("minimum", 0))
        # 'price must be at least 0'
        ```
    """
    name = field or "value"
    if kind is ViolationKind.REQUIRED_MISSING:
        return f"{name} is required"
    if kind is ViolationKind.TYPE_MISMATCH:
        expected = constraint
        if isinstance(expected, (list, tuple)):
            expected = " or ".join(str(t) for t in expected)
        return f"{name} must be of type {expected}" if expected else f"{name} has the wrong type"
    if kind is ViolationKind.RANGE_VIOLATION:
        if isinstance(constraint, tuple) and len(constraint) == 2:
            keyword, limit = constraint
            template = _RANGE_TEMPLATES.get(keyword)
            if template:
                return template.format(field=name, limit=limit)
        return f"{name} is out of range"
    if kind is ViolationKind.ENUM_INVALID:
        if constraint:
            allowed = ", ".join(str(v) for v in constraint)
            return f"{name} must be one of: {allowed}"
        return f"{name} is not an allowed value"
    if kind is ViolationKind.FORMAT_INVALID:
        if isinstance(constraint, tuple) and len(constraint) == 2:
            keyword, value = constraint
            if keyword == "format":
                return f"{name} must be a valid {value}"
            if keyword == "pattern":
                return f"{name} does not match the expected pattern"
        elif isinstance(constraint, str):
            return f"{name} must be a valid {constraint}"
        return f"{name} has an invalid format"
    raise ValueError(f"Unknown violation kind: {kind}")


def _path_of(error: jsonschema.ValidationError) -> str:
    return ".".join(str(p) for p in error.absolute_path)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def describe_error(error: jsonschema.ValidationError) -> list[tuple[str, str, ViolationKind | None]]:
    """Translate one jsonschema error into ``(field, message, kind)`` triples.

    ``required`` and ``dependentRequired`` failures name the missing child
    field rather than the object that lacks it.
    """
    path = _path_of(error)
    keyword = error.validator
    value = error.validator_value
    instance = error.instance

    if keyword == "required":
        present = instance if isinstance(instance, dict) else {}
        return [
            (field, format_violation(field, ViolationKind.REQUIRED_MISSING), ViolationKind.REQUIRED_MISSING)
            for field in (_join(path, name) for name in value if name not in present)
        ]
    if keyword == "dependentRequired":
        present = instance if isinstance(instance, dict) else {}
        missing: list[tuple[str, str, ViolationKind | None]] = []
        for trigger, dependencies in value.items():
            if trigger not in present:
                continue
            for dep in dependencies:
                if dep not in present:
                    field = _join(path, dep)
                    message = f"{field} is required when {_join(path, trigger)} is provided"
                    missing.append((field, message, ViolationKind.REQUIRED_MISSING))
        return missing

    field = path or ROOT_FIELD
    if keyword == "type":
        kind = ViolationKind.TYPE_MISMATCH
        return [(field, format_violation(path, kind, value), kind)]
    if keyword in _RANGE_KEYWORDS:
        kind = ViolationKind.RANGE_VIOLATION
        return [(field, format_violation(path, kind, (keyword, value)), kind)]
    if keyword == "enum":
        kind = ViolationKind.ENUM_INVALID
        return [(field, format_violation(path, kind, value), kind)]
    if keyword == "const":
        kind = ViolationKind.ENUM_INVALID
        return [(field, format_violation(path, kind, [value]), kind)]
    if keyword in ("pattern", "format"):
        kind = ViolationKind.FORMAT_INVALID
        return [(field, format_violation(path, kind, (keyword, value)), kind)]
    return [(field, error.message, None)]
