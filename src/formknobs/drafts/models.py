"""Draft records and save outcomes.

A draft is a resumable snapshot of an unfinished wizard: the form data,
the step the user was on, and which steps are complete. Drafts expire
``draft_ttl_hours`` after their last save. The persisted shape uses
camelCase keys::

    {"draftId": ..., "userId": ..., "wizardKind": "property",
     "formData": {...}, "currentStepId": "pricing",
     "stepProgress": {"basic_info": true}, "savedAt": 1718000000000}
"""

from __future__ import annotations

import json
import re
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from formknobs.config.model import WizardKind
from formknobs.exceptions import SerializationError

Clock = Callable[[], float]
"""Returns the current time in epoch seconds (``time.time`` by default)."""

DEFAULT_TTL_HOURS = 24.0

_USER_FRAGMENT = re.compile(r"[^A-Za-z0-9]")


def now_ms(clock: Clock = time.time) -> int:
    return int(clock() * 1000)


def generate_draft_id(kind: WizardKind | str, user_id: str, clock: Clock = time.time) -> str:
    """Create a collision-resistant draft id.

    The id combines the wizard kind, the save time in milliseconds, 64 random
    bits and a sanitized fragment of the user id, e.g.
    ``property-1718000000000-9f3a1c2b7d4e5f60-user42``.
    """
    kind_value = kind.value if isinstance(kind, WizardKind) else str(kind)
    fragment = _USER_FRAGMENT.sub("", user_id or "")[:8] or "anon"
    return f"{kind_value}-{now_ms(clock)}-{secrets.token_hex(8)}-{fragment}"


@dataclass
class Draft:
    """A saved, resumable wizard session.

    Attributes:
        draft_id: Unique id, stable across overwrites
        user_id: Owner of the draft
        wizard_kind: Wizard flavour the draft belongs to
        form_data: Form data at save time
        current_step_id: Step the user was on at save time
        step_progress: Step id to completed flag
        saved_at: Save time in epoch milliseconds
    """

    draft_id: str
    user_id: str
    wizard_kind: WizardKind
    form_data: dict[str, Any] = field(default_factory=dict)
    current_step_id: str = ""
    step_progress: dict[str, bool] = field(default_factory=dict)
    saved_at: int = 0

    def age_seconds(self, clock: Clock = time.time) -> float:
        return (now_ms(clock) - self.saved_at) / 1000.0

    def is_expired(self, ttl_seconds: float, clock: Clock = time.time) -> bool:
        """A draft is expired once strictly more than the TTL has passed."""
        return self.age_seconds(clock) > ttl_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "draftId": self.draft_id,
            "userId": self.user_id,
            "wizardKind": self.wizard_kind.value,
            "formData": self.form_data,
            "currentStepId": self.current_step_id,
            "stepProgress": dict(self.step_progress),
            "savedAt": self.saved_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Draft:
        """Parse the persisted shape.

        Raises:
            SerializationError: If required keys are missing or malformed
        """
        if not isinstance(data, dict):
            raise SerializationError(
                "Draft payload must be an object", context={"type": type(data).__name__}
            )
        try:
            form_data = data.get("formData") or {}
            step_progress = data.get("stepProgress") or {}
            if not isinstance(form_data, dict) or not isinstance(step_progress, dict):
                raise TypeError("formData and stepProgress must be objects")
            return cls(
                draft_id=str(data["draftId"]),
                user_id=str(data["userId"]),
                wizard_kind=WizardKind(data["wizardKind"]),
                form_data=form_data,
                current_step_id=str(data.get("currentStepId") or ""),
                step_progress={str(k): bool(v) for k, v in step_progress.items()},
                saved_at=int(data["savedAt"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(
                f"Malformed draft payload: {e}",
                context={"draft_id": data.get("draftId")},
            ) from e

    def to_json(self) -> str:
        try:
            return json.dumps(self.to_dict())
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Draft {self.draft_id} is not JSON serializable: {e}",
                context={"draft_id": self.draft_id},
            ) from e

    @classmethod
    def from_json(cls, raw: str) -> Draft:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Draft is not valid JSON: {e}") from e
        return cls.from_dict(payload)


class StorageTier(str, Enum):
    """Where a draft ended up."""

    SERVER = "server"
    CLIENT_CACHE = "client_cache"
    NONE = "none"


@dataclass
class SaveOutcome:
    """Result of a two-tier save.

    Attributes:
        success: Whether the draft was persisted anywhere
        draft_id: Id of the saved draft
        tier: Tier that holds the authoritative copy
        errors: Failures encountered along the way, including ones that
            were recovered from by falling back to the cache
    """

    success: bool
    draft_id: str
    tier: StorageTier
    errors: list[Exception] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when the server tier did not take the save."""
        return self.tier is not StorageTier.SERVER

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "draft_id": self.draft_id,
            "tier": self.tier.value,
            "degraded": self.degraded,
            "errors": [str(e) for e in self.errors],
        }
