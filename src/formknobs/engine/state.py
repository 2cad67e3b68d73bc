"""Session state owned by :class:`~formknobs.engine.wizard.WizardEngine`."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from formknobs.lifecycle import WizardStatus

if TYPE_CHECKING:
    from formknobs.recovery import WizardError


@dataclass
class WizardSessionState:
    """Everything the UI renders from.

    Only the engine writes to this object; callers should treat it as
    read-only.

    Attributes:
        current_step_id: Id of the visible step
        current_step_index: Position of the visible step
        data: The document being assembled
        field_errors: Step id to ``{field path: message}``
        step_progress: Step id to completed flag
        status: Lifecycle status
        is_dirty: Unsaved edits exist
        is_loading: A draft load is in progress
        is_saving: At least one save is in flight
        draft_id: Id of the session's draft, once assigned
        version: Incremented on every data change
        last_saved_at: Epoch ms of the last successful save
        last_error: Most recent recorded failure
        save_warning: Non-blocking message about the last save
    """

    current_step_id: str
    current_step_index: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    field_errors: dict[str, dict[str, str]] = field(default_factory=dict)
    step_progress: dict[str, bool] = field(default_factory=dict)
    status: WizardStatus = WizardStatus.IDLE
    is_dirty: bool = False
    is_loading: bool = False
    is_saving: bool = False
    draft_id: str | None = None
    version: int = 0
    last_saved_at: int | None = None
    last_error: WizardError | None = None
    save_warning: str | None = None

    @property
    def has_errors(self) -> bool:
        return any(self.field_errors.values())

    def errors_for_step(self, step_id: str) -> dict[str, str]:
        return dict(self.field_errors.get(step_id, {}))

    def clear_field_errors(self, fields: list[str]) -> None:
        """Drop errors for the given paths and anything nested below them."""
        for step_errors in self.field_errors.values():
            for path in list(step_errors):
                if any(path == f or path.startswith(f"{f}.") for f in fields):
                    del step_errors[path]
        self.field_errors = {k: v for k, v in self.field_errors.items() if v}

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_step_id": self.current_step_id,
            "current_step_index": self.current_step_index,
            "data": copy.deepcopy(self.data),
            "field_errors": copy.deepcopy(self.field_errors),
            "step_progress": dict(self.step_progress),
            "status": self.status.value,
            "is_dirty": self.is_dirty,
            "is_loading": self.is_loading,
            "is_saving": self.is_saving,
            "draft_id": self.draft_id,
            "version": self.version,
            "last_saved_at": self.last_saved_at,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "save_warning": self.save_warning,
        }
