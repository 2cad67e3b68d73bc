"""Tests for violation messages."""

from __future__ import annotations

from typing import Any

import jsonschema
import pytest

from formknobs.validation.messages import (
    ROOT_FIELD,
    ViolationKind,
    describe_error,
    format_violation,
)


def _describe(schema: dict[str, Any], instance: Any) -> list[tuple[str, str, ViolationKind | None]]:
    validator = jsonschema.Draft202012Validator(schema, format_checker=jsonschema.FormatChecker())
    described = []
    for error in validator.iter_errors(instance):
        described.extend(describe_error(error))
    return described


class TestFormatViolation:
    """Tests for the message templates."""

    @pytest.mark.parametrize(
        "kind, constraint, expected",
        [
            (ViolationKind.REQUIRED_MISSING, None, "price is required"),
            (ViolationKind.TYPE_MISMATCH, "number", "price must be of type number"),
            (ViolationKind.TYPE_MISMATCH, ["number", "null"], "price must be of type number or null"),
            (ViolationKind.RANGE_VIOLATION, ("minimum", 0), "price must be at least 0"),
            (ViolationKind.RANGE_VIOLATION, ("exclusiveMaximum", 10), "price must be less than 10"),
            (ViolationKind.RANGE_VIOLATION, ("minLength", 5), "price must be at least 5 characters"),
            (ViolationKind.RANGE_VIOLATION, ("maxItems", 3), "price must contain at most 3 items"),
            (ViolationKind.RANGE_VIOLATION, None, "price is out of range"),
            (ViolationKind.ENUM_INVALID, ["USD", "EUR"], "price must be one of: USD, EUR"),
            (ViolationKind.ENUM_INVALID, None, "price is not an allowed value"),
            (ViolationKind.FORMAT_INVALID, ("format", "email"), "price must be a valid email"),
            (ViolationKind.FORMAT_INVALID, ("pattern", "^x$"), "price does not match the expected pattern"),
            (ViolationKind.FORMAT_INVALID, "date", "price must be a valid date"),
        ],
    )
    def test_templates(self, kind: ViolationKind, constraint: Any, expected: str) -> None:
        assert format_violation("price", kind, constraint) == expected

    def test_blank_field_name(self) -> None:
        assert format_violation("", ViolationKind.REQUIRED_MISSING) == "value is required"


class TestDescribeError:
    """Tests for translating jsonschema errors."""

    def test_required_names_missing_child(self) -> None:
        schema = {
            "type": "object",
            "properties": {"address": {"type": "object", "required": ["street", "city"]}},
        }
        described = _describe(schema, {"address": {"street": "Main"}})
        assert described == [
            ("address.city", "address.city is required", ViolationKind.REQUIRED_MISSING)
        ]

    def test_dependent_required(self) -> None:
        schema = {"type": "object", "dependentRequired": {"deposit": ["currency"]}}
        described = _describe(schema, {"deposit": 10})
        assert described == [
            (
                "currency",
                "currency is required when deposit is provided",
                ViolationKind.REQUIRED_MISSING,
            )
        ]

    def test_type_range_enum_pattern(self) -> None:
        schema = {
            "type": "object",
            "properties": {
                "price": {"type": "number", "minimum": 0},
                "currency": {"enum": ["USD", "EUR"]},
                "zip": {"type": "string", "pattern": "^[0-9]{5}$"},
                "count": {"type": "integer"},
            },
        }
        described = {
            field: (message, kind)
            for field, message, kind in _describe(
                schema, {"price": -1, "currency": "GBP", "zip": "x", "count": "1"}
            )
        }
        assert described["price"] == ("price must be at least 0", ViolationKind.RANGE_VIOLATION)
        assert described["currency"] == (
            "currency must be one of: USD, EUR",
            ViolationKind.ENUM_INVALID,
        )
        assert described["zip"] == (
            "zip does not match the expected pattern",
            ViolationKind.FORMAT_INVALID,
        )
        assert described["count"] == ("count must be of type integer", ViolationKind.TYPE_MISMATCH)

    def test_const(self) -> None:
        described = _describe({"properties": {"agree": {"const": True}}}, {"agree": False})
        assert described == [("agree", "agree must be one of: True", ViolationKind.ENUM_INVALID)]

    def test_root_errors(self) -> None:
        described = _describe({"type": "object"}, "hello")
        assert described == [
            (ROOT_FIELD, "value must be of type object", ViolationKind.TYPE_MISMATCH)
        ]

    def test_unmapped_keyword_falls_back_to_jsonschema_message(self) -> None:
        described = _describe({"properties": {"tags": {"uniqueItems": True}}}, {"tags": [1, 1]})
        assert len(described) == 1
        field, message, kind = described[0]
        assert field == "tags"
        assert kind is None
        assert message
