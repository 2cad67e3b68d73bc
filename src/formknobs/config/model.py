"""Immutable wizard configuration.

A :class:`WizardConfig` describes one wizard flavour: its ordered steps,
the JSON schemas that gate each step, the schema of the assembled
document, cross-step rules, and persistence and navigation settings.
Configurations are built once (usually from YAML, see
:class:`~formknobs.config.loader.WizardConfigLoader`) and never mutated.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import jsonschema

from formknobs.config.resolver import resolve_callable
from formknobs.exceptions import ConfigurationError, NotFoundError
from formknobs.schema import required_paths

logger = logging.getLogger(__name__)

DOCUMENT_STEP = "document"
"""Pseudo step id for document-level errors that belong to no step."""


class WizardKind(str, Enum):
    """The closed set of wizard flavours."""

    PROPERTY = "property"
    LAND = "land"
    BLOG = "blog"

    @classmethod
    def parse(cls, value: str | WizardKind) -> WizardKind:
        """Convert a string to a kind, raising ``ConfigurationError`` when unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown wizard kind: {value}",
                context={"kind": value, "supported": [k.value for k in cls]},
            ) from e


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


@dataclass(frozen=True)
class Step:
    """One wizard step.

    Attributes:
        id: Unique step id
        title: Display title
        schema: Strict JSON schema gating forward navigation
        optional: Whether the step may be skipped
        draft_schema: Explicit lenient schema used for draft saves; derived
            from ``schema`` when absent
        required_fields: Dotted paths counted for completion; derived from
            ``schema`` when absent
        recommended_fields: Optional fields reported as warnings when empty
        description: Free text shown by the UI
    """

    id: str
    title: str = ""
    schema: dict[str, Any] = field(default_factory=dict)
    optional: bool = False
    draft_schema: dict[str, Any] | None = None
    required_fields: tuple[str, ...] = ()
    recommended_fields: tuple[str, ...] = ()
    description: str = ""

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        schemas: Mapping[str, dict[str, Any]] | None = None,
    ) -> Step:
        """Build a step, resolving schema names against ``schemas``."""
        step_id = data.get("id") or data.get("name")
        if not step_id:
            raise ConfigurationError("Step is missing an 'id'", context={"step": dict(data)})

        schema = _resolve_schema(data.get("schema"), schemas, step_id) or {"type": "object"}
        draft_schema = _resolve_schema(data.get("draft_schema"), schemas, step_id)
        required = data.get("required_fields")
        return cls(
            id=str(step_id),
            title=str(data.get("title", step_id)),
            schema=schema,
            optional=bool(data.get("optional", False)),
            draft_schema=draft_schema,
            required_fields=tuple(required) if required is not None else tuple(required_paths(schema)),
            recommended_fields=tuple(data.get("recommended_fields") or ()),
            description=str(data.get("description", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "optional": self.optional,
            "schema": self.schema,
            "required_fields": list(self.required_fields),
        }
        if self.draft_schema is not None:
            result["draft_schema"] = self.draft_schema
        if self.recommended_fields:
            result["recommended_fields"] = list(self.recommended_fields)
        if self.description:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class CrossStepRule:
    """A check spanning several steps.

    ``check`` receives the whole form data and returns a mapping of
    field path to error message (empty or ``None`` when satisfied).
    Errors are reported under ``step_id``.
    """

    name: str
    check: Callable[[dict[str, Any]], Mapping[str, str] | None]
    step_id: str = DOCUMENT_STEP


@dataclass(frozen=True)
class PersistenceSettings:
    """Draft persistence settings.

    Attributes:
        auto_save: Enables the periodic and on-advance autosave
        auto_save_interval: Seconds between periodic autosaves while dirty
        draft_ttl_hours: Age after which drafts are purged
        server_timeout: Seconds before a server call gives way to the cache
        mirror_to_cache: Also write server-saved drafts to the client cache
    """

    auto_save: bool = True
    auto_save_interval: float = 30.0
    draft_ttl_hours: float = 24.0
    server_timeout: float = 10.0
    mirror_to_cache: bool = True

    @property
    def ttl_seconds(self) -> float:
        return self.draft_ttl_hours * 3600.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PersistenceSettings:
        if not data:
            return cls()
        settings = cls(
            auto_save=bool(data.get("auto_save", True)),
            auto_save_interval=float(data.get("auto_save_interval", 30.0)),
            draft_ttl_hours=float(data.get("draft_ttl_hours", 24.0)),
            server_timeout=float(data.get("server_timeout", 10.0)),
            mirror_to_cache=bool(data.get("mirror_to_cache", True)),
        )
        if settings.auto_save_interval <= 0 or settings.draft_ttl_hours <= 0:
            raise ConfigurationError(
                "auto_save_interval and draft_ttl_hours must be positive",
                context={"persistence": dict(data)},
            )
        return settings


@dataclass(frozen=True)
class NavigationSettings:
    allow_skip_steps: bool = False
    max_history: int = 50

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> NavigationSettings:
        if not data:
            return cls()
        return cls(
            allow_skip_steps=bool(data.get("allow_skip_steps", False)),
            max_history=int(data.get("max_history", 50)),
        )


@dataclass(frozen=True)
class WizardConfig:
    """Complete description of a wizard flavour.

    Example:
        ```python
        config = WizardConfig.from_dict({
            "kind": "blog",
            "steps": [
                {"id": "content", "schema": {
                    "type": "object",
                    "required": ["title"],
                    "properties": {"title": {"type": "string", "minLength": 5}},
                }},
                {"id": "seo", "optional": True},
            ],
        })
        config.step_ids  # ('content', 'seo')
        ```
    """

    kind: WizardKind
    steps: tuple[Step, ...]
    title: str = ""
    document_schema: dict[str, Any] | None = None
    cross_step_rules: tuple[CrossStepRule, ...] = ()
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    navigation: NavigationSettings = field(default_factory=NavigationSettings)

    def __post_init__(self) -> None:
        if not self.steps:
            raise ConfigurationError(
                "A wizard needs at least one step", context={"kind": self.kind.value}
            )
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ConfigurationError(
                    f"Duplicate step id: {step.id}",
                    context={"kind": self.kind.value, "step_id": step.id},
                )
            if step.id == DOCUMENT_STEP:
                raise ConfigurationError(
                    f"'{DOCUMENT_STEP}' is reserved and cannot be used as a step id",
                    context={"kind": self.kind.value},
                )
            seen.add(step.id)
        for rule in self.cross_step_rules:
            if rule.step_id != DOCUMENT_STEP and rule.step_id not in seen:
                raise ConfigurationError(
                    f"Rule '{rule.name}' refers to unknown step '{rule.step_id}'",
                    context={"rule": rule.name, "step_id": rule.step_id},
                )
        for name, schema in self._all_schemas():
            _check_schema(schema, name)

    @property
    def step_ids(self) -> tuple[str, ...]:
        return tuple(step.id for step in self.steps)

    @property
    def first_step(self) -> Step:
        return self.steps[0]

    def get_step(self, step_id: str) -> Step:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise NotFoundError(
            f"Unknown step: {step_id}",
            context={"kind": self.kind.value, "step_id": step_id, "steps": list(self.step_ids)},
        )

    def has_step(self, step_id: str) -> bool:
        return step_id in self.step_ids

    def index_of(self, step_id: str) -> int:
        return self.step_ids.index(self.get_step(step_id).id)

    def step_for_field(self, path: str) -> str | None:
        """Find the step whose schema declares the top-level key of ``path``."""
        top = path.split(".", 1)[0]
        for step in self.steps:
            if top in (step.schema.get("properties") or {}):
                return step.id
        return None

    def _all_schemas(self) -> list[tuple[str, dict[str, Any]]]:
        schemas = [(f"steps.{s.id}.schema", s.schema) for s in self.steps]
        schemas.extend(
            (f"steps.{s.id}.draft_schema", s.draft_schema)
            for s in self.steps
            if s.draft_schema is not None
        )
        if self.document_schema is not None:
            schemas.append(("document_schema", self.document_schema))
        return schemas

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        functions: dict[str, Callable[..., Any]] | None = None,
    ) -> WizardConfig:
        """Build a configuration from a plain dict (e.g. parsed YAML).

        Args:
            data: Configuration mapping with ``kind`` and ``steps`` keys, plus
                optional ``schemas``, ``document_schema``, ``cross_step_rules``,
                ``persistence`` and ``navigation``
            functions: Named callables that rule ``check`` entries may refer to
                instead of module references

        Raises:
            ConfigurationError: If the structure or any schema is invalid
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Wizard configuration must be a mapping")
        if "kind" not in data:
            raise ConfigurationError("Wizard configuration must have a 'kind'")
        raw_steps = data.get("steps")
        if not isinstance(raw_steps, list):
            raise ConfigurationError(
                "Wizard configuration must have a 'steps' list",
                context={"kind": data.get("kind")},
            )

        schemas = data.get("schemas") or {}
        steps = tuple(Step.from_dict(raw, schemas) for raw in raw_steps)
        rules = tuple(
            CrossStepRule(
                name=str(raw.get("name", f"rule_{i}")),
                check=resolve_callable(raw["check"], functions),
                step_id=str(raw.get("step", DOCUMENT_STEP)),
            )
            for i, raw in enumerate(data.get("cross_step_rules") or [])
        )
        return cls(
            kind=WizardKind.parse(data["kind"]),
            steps=steps,
            title=str(data.get("title", "")),
            document_schema=_resolve_schema(data.get("document_schema"), schemas, "document"),
            cross_step_rules=rules,
            persistence=PersistenceSettings.from_dict(data.get("persistence")),
            navigation=NavigationSettings.from_dict(data.get("navigation")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "title": self.title,
            "steps": [step.to_dict() for step in self.steps],
            "persistence": {
                "auto_save": self.persistence.auto_save,
                "auto_save_interval": self.persistence.auto_save_interval,
                "draft_ttl_hours": self.persistence.draft_ttl_hours,
                "server_timeout": self.persistence.server_timeout,
                "mirror_to_cache": self.persistence.mirror_to_cache,
            },
            "navigation": {
                "allow_skip_steps": self.navigation.allow_skip_steps,
                "max_history": self.navigation.max_history,
            },
        }
        if self.document_schema is not None:
            result["document_schema"] = self.document_schema
        return result


def _resolve_schema(
    ref: Any,
    schemas: Mapping[str, dict[str, Any]] | None,
    owner: str,
) -> dict[str, Any] | None:
    if ref is None:
        return None
    if isinstance(ref, str):
        if not schemas or ref not in schemas:
            raise ConfigurationError(
                f"Unknown schema reference '{ref}' in {owner}",
                context={"schema": ref, "available": sorted(schemas or {})},
            )
        return dict(schemas[ref])
    if isinstance(ref, Mapping):
        return dict(ref)
    raise ConfigurationError(
        f"Schema for {owner} must be a mapping or a schema name",
        context={"owner": owner, "type": type(ref).__name__},
    )


def _check_schema(schema: dict[str, Any], name: str) -> None:
    try:
        jsonschema.Draft202012Validator.check_schema(schema)
    except jsonschema.SchemaError as e:
        raise ConfigurationError(
            f"Invalid JSON schema at {name}: {e.message}",
            context={"schema": name},
        ) from e
