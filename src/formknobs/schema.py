"""Helpers for working with step schemas and nested form data.

Form data is a plain ``dict``; nested values are addressed with dotted
paths such as ``"address.street"``. Step schemas are JSON Schema
(draft 2020-12) object schemas.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from typing import Any

# Keywords removed when deriving a lenient (draft) schema from a strict one.
RELAXED_KEYWORDS = frozenset(
    {"required", "minLength", "minItems", "minProperties", "dependentRequired"}
)

_SUBSCHEMA_MAPS = ("properties", "patternProperties", "$defs", "definitions", "dependentSchemas")
_SUBSCHEMA_SINGLE = (
    "items", "additionalProperties", "not", "if", "then", "else",
    "contains", "propertyNames", "unevaluatedProperties", "unevaluatedItems",
)
_SUBSCHEMA_LISTS = ("allOf", "anyOf", "oneOf", "prefixItems")


def has_value(value: Any) -> bool:
    """Whether a field counts as filled in.

    ``None``, blank strings and empty collections are missing. ``0`` and
    ``False`` are real answers.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def get_path(data: Mapping[str, Any] | None, path: str) -> Any:
    """Read a dotted path from nested mappings, returning ``None`` when absent."""
    current: Any = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def set_path(data: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Write ``value`` at a dotted path, creating intermediate dicts."""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value
    return data


def required_paths(schema: Mapping[str, Any] | None, prefix: str = "") -> list[str]:
    """List the dotted paths a schema requires.

    A required object property whose own schema has ``required`` entries is
    expanded into those nested paths instead of being listed itself.

    Example:
        ```python
        schema = {
            "type": "object",
            "required": ["title", "address"],
            "properties": {
                "address": {"type": "object", "required": ["street", "city"]},
            },
        }
        required_paths(schema)
        # ['title', 'address.street', 'address.city']
        ```
    """
    if not schema:
        return []
    properties = schema.get("properties") or {}
    paths: list[str] = []
    for name in schema.get("required") or []:
        path = f"{prefix}{name}"
        child = properties.get(name) or {}
        nested = required_paths(child, prefix=f"{path}.") if child.get("required") else []
        paths.extend(nested or [path])
    return paths


def top_level_fields(schema: Mapping[str, Any] | None) -> list[str]:
    return list((schema or {}).get("properties") or {})


def lenient_schema(schema: Mapping[str, Any]) -> dict[str, Any]:
    """Derive a draft schema that tolerates incomplete data.

    Presence and minimum-size constraints are dropped recursively; types,
    enums, patterns and numeric ranges stay, so whatever *is* filled in must
    still be well formed.
    """
    result: dict[str, Any] = {}
    for key, value in schema.items():
        if key in RELAXED_KEYWORDS:
            continue
        if key in _SUBSCHEMA_MAPS and isinstance(value, Mapping):
            result[key] = {
                name: lenient_schema(sub) if isinstance(sub, Mapping) else sub
                for name, sub in value.items()
            }
        elif key in _SUBSCHEMA_SINGLE and isinstance(value, Mapping):
            result[key] = lenient_schema(value)
        elif key in _SUBSCHEMA_LISTS and isinstance(value, list):
            result[key] = [
                lenient_schema(sub) if isinstance(sub, Mapping) else sub
                for sub in value
            ]
        else:
            result[key] = copy.deepcopy(value)
    return result


def prune_empty(data: Mapping[str, Any]) -> dict[str, Any]:
    """Drop unfilled values (see :func:`has_value`) from nested dicts."""
    pruned: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            value = prune_empty(value)
        if has_value(value):
            pruned[key] = value
    return pruned


def iter_leaf_paths(data: Mapping[str, Any], prefix: str = "") -> Iterator[str]:
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping) and value:
            yield from iter_leaf_paths(value, prefix=f"{path}.")
        else:
            yield path
