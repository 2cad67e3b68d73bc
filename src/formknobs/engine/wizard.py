"""The wizard engine: navigation, autosave and completion.

:class:`WizardEngine` drives one user's pass through a wizard. It owns
the session state, validates steps before letting the user advance,
saves drafts in the background, reports telemetry, and hands the
finished document to an ``on_complete`` collaborator.

Lifecycle::

    idle --start()--> active --complete()--> completing --> completed
                        ^                        |
                        +---- validation or -----+
                              handler failure
    any non-terminal status --cancel()--> cancelled

Example:
    ```python
    engine = WizardEngine.create(
        config,
        user_id="user-42",
        manager=DraftManager.in_memory(),
        storage=InMemoryKeyValueStorage(),
        on_complete=publish_listing,
    )
    await engine.start()
    engine.update_data({"title": "Sunny flat", "price": 120000})
    if not await engine.next_step():
        show_errors(engine.state.field_errors)
    ...
    await engine.complete()
    await engine.dispose()
    ```
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from formknobs.analytics.recorder import AnalyticsRecorder
from formknobs.analytics.sinks import AnalyticsSink
from formknobs.config.model import Step, WizardConfig
from formknobs.drafts.manager import DraftManager
from formknobs.drafts.models import Clock, SaveOutcome, generate_draft_id
from formknobs.drafts.storage import KeyValueStorage
from formknobs.drafts.store import DraftStore
from formknobs.engine.autosave import AutosaveScheduler
from formknobs.engine.history import StateHistory
from formknobs.engine.state import WizardSessionState
from formknobs.exceptions import (
    ConfigurationError,
    OperationError,
    PermissionDeniedError,
    SerializationError,
)
from formknobs.lifecycle import Lifecycle, WizardStatus
from formknobs.recovery import ErrorRecoveryCoordinator, RecoveryStrategy, WizardError
from formknobs.validation import StepValidator, ValidationMode, ValidationResult

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.0"

CompletionHandler = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class DraftSnapshot:
    """Data and position captured when a save is requested."""

    draft_id: str
    data: dict[str, Any]
    step_id: str
    step_progress: dict[str, bool]
    version: int


class WizardEngine:
    """State machine orchestrating validation, drafts and analytics.

    Args:
        config: Wizard definition
        user_id: Owner of the session and its drafts
        draft_store: Two-tier draft store, or ``None`` to disable drafts
        recorder: Analytics recorder, or ``None`` to disable telemetry
        on_complete: Receives the validated document; may be async. Its
            exceptions propagate out of :meth:`complete`
        on_update: Called with the state after every change
        initial_data: Starting document
        validator: Step validator (built from ``config`` when omitted)
    """

    def __init__(
        self,
        config: WizardConfig,
        user_id: str,
        draft_store: DraftStore | None = None,
        recorder: AnalyticsRecorder | None = None,
        on_complete: CompletionHandler | None = None,
        on_update: Callable[[WizardSessionState], Any] | None = None,
        initial_data: dict[str, Any] | None = None,
        validator: StepValidator | None = None,
    ) -> None:
        self.config = config
        self.user_id = user_id
        self.draft_store = draft_store
        self.recorder = recorder
        self.validator = validator or StepValidator(config)
        self._on_complete = on_complete
        self._on_update = on_update
        self._initial_data = copy.deepcopy(initial_data or {})
        self._owns_recorder = False

        self._lifecycle = Lifecycle(config.kind.value)
        self.state = WizardSessionState(
            current_step_id=config.first_step.id,
            data=copy.deepcopy(self._initial_data),
        )
        self._history = StateHistory(config.navigation.max_history)
        self.recovery = ErrorRecoveryCoordinator(self, recorder=recorder)

        self._pending_saves: set[asyncio.Task[SaveOutcome | None]] = set()
        self._saves_in_flight = 0
        self._step_started_at = time.monotonic()
        self._autosave: AutosaveScheduler | None = None
        if draft_store is not None and config.persistence.auto_save:
            self._autosave = AutosaveScheduler(
                config.persistence.auto_save_interval,
                should_save=self._autosave_due,
                trigger=self._spawn_autosave,
            )

    @classmethod
    def create(
        cls,
        config: WizardConfig,
        user_id: str,
        manager: DraftManager | None = None,
        storage: KeyValueStorage | None = None,
        analytics_sink: AnalyticsSink | None = None,
        on_complete: CompletionHandler | None = None,
        clock: Clock = time.time,
        **kwargs: Any,
    ) -> WizardEngine:
        """Build an engine with its own draft store and analytics recorder.

        The recorder is disposed together with the engine.
        """
        store = None
        if manager is not None or storage is not None:
            store = DraftStore.create(config.kind, config.persistence, manager, storage, clock=clock)
        recorder = AnalyticsRecorder.create(sink=analytics_sink, user_id=user_id)
        engine = cls(
            config,
            user_id,
            draft_store=store,
            recorder=recorder,
            on_complete=on_complete,
            **kwargs,
        )
        engine._owns_recorder = True
        return engine

    # -- Properties --

    @property
    def status(self) -> WizardStatus:
        return self._lifecycle.status

    @property
    def current_step(self) -> Step:
        return self.config.steps[self.state.current_step_index]

    @property
    def current_step_id(self) -> str:
        return self.state.current_step_id

    @property
    def is_first_step(self) -> bool:
        return self.state.current_step_index == 0

    @property
    def is_last_step(self) -> bool:
        return self.state.current_step_index == len(self.config.steps) - 1

    @property
    def progress(self) -> int:
        """Position-based progress: percentage of steps reached."""
        return round(100 * (self.state.current_step_index + 1) / len(self.config.steps))

    @property
    def completion(self) -> int:
        """Content-based progress: mean completion of required steps."""
        return self.validator.overall_progress(self.state.data)

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def pending_save_count(self) -> int:
        return len(self._pending_saves)

    # -- Lifecycle --

    async def start(self, draft_id: str | None = None) -> None:
        """Activate the wizard, optionally resuming a draft.

        Raises:
            InvalidTransitionError: If the wizard was already started
        """
        self._move_to(WizardStatus.ACTIVE)
        self._history.record(self.state.data, self.state.current_step_index)
        if draft_id is not None:
            await self.load_draft(draft_id)
        self._step_started_at = time.monotonic()
        self._track("track_step_started", self.state.current_step_id)
        if self._autosave is not None:
            self._autosave.start()
        logger.info(
            "Started %s wizard for user %s", self.config.kind.value, self.user_id,
            extra={"wizard_kind": self.config.kind.value, "draft_id": self.state.draft_id},
        )
        self._notify()

    async def cancel(self) -> None:
        """Abandon the session. Drafts are kept and in-flight saves finish."""
        self._move_to(WizardStatus.CANCELLED)
        if self._autosave is not None:
            await self._autosave.stop()
        self._track("track_wizard_abandoned", self.state.current_step_id)
        logger.info("Cancelled %s wizard", self.config.kind.value)
        self._notify()

    async def dispose(self, final_save: bool = False) -> None:
        """Release the engine.

        Args:
            final_save: Save a last draft first when there are unsaved edits
        """
        if self._autosave is not None:
            await self._autosave.stop()
        if final_save and self.state.is_dirty and not self._lifecycle.is_terminal:
            await self.save_draft()
        await self.wait_for_pending_saves()
        if self.recorder is not None and self._owns_recorder:
            await self.recorder.dispose()

    async def wait_for_pending_saves(self) -> None:
        while self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    # -- Editing --

    def update_data(self, partial: dict[str, Any]) -> None:
        """Shallow-merge ``partial`` into the document.

        Errors for the changed fields are cleared and the session becomes
        dirty.
        """
        self._ensure_active()
        if not partial:
            return
        self.state.data.update(copy.deepcopy(partial))
        self.state.clear_field_errors(list(partial))
        self._mark_changed()
        self._history.record(self.state.data, self.state.current_step_index)
        self._track("track_field_changed", self.state.current_step_id, sorted(partial))
        self._notify()

    def validate_current_step(self) -> ValidationResult:
        """Strictly validate the current step and publish its errors."""
        step_id = self.state.current_step_id
        result = self.validator.validate_step(step_id, self.state.data)
        self._set_step_errors(step_id, result.first_errors())
        self._notify()
        return result

    def validate_field(self, field_path: str, value: Any) -> list[str]:
        return self.validator.validate_field(
            self.state.current_step_id, field_path, value, self.state.data
        )

    def undo(self) -> bool:
        entry = self._history.undo()
        if entry is None:
            return False
        self._restore(entry.data, entry.step_index)
        return True

    def redo(self) -> bool:
        entry = self._history.redo()
        if entry is None:
            return False
        self._restore(entry.data, entry.step_index)
        return True

    def reset(self) -> None:
        """Start over from the initial document on the first step."""
        self._ensure_active()
        self.state.data = copy.deepcopy(self._initial_data)
        self.state.field_errors = {}
        self.state.step_progress = {}
        self.state.draft_id = None
        self.state.save_warning = None
        self.state.last_error = None
        self._set_position(0)
        self._mark_changed()
        self.state.is_dirty = False
        self._history.clear()
        self._history.record(self.state.data, 0)
        self.recovery.reset_retries()
        self._notify()

    # -- Navigation --

    async def next_step(self) -> bool:
        """Validate the current step strictly and advance.

        On success the step is marked complete, the wizard moves on (it
        stays put on the last step) and an autosave is started in the
        background. On failure the step's field errors are published.

        Returns:
            True if the current step was valid
        """
        self._ensure_active()
        step_id = self.state.current_step_id
        result = self.validator.validate_step(step_id, self.state.data)
        if not result.is_valid:
            errors = result.first_errors()
            self._set_step_errors(step_id, errors)
            self.state.last_error = WizardError.validation(step_id, errors)
            self._track("track_validation_failure", step_id, errors)
            self._notify()
            return False

        self._set_step_errors(step_id, {})
        self.state.step_progress[step_id] = True
        self._track(
            "track_step_completion",
            step_id,
            round((time.monotonic() - self._step_started_at) * 1000),
        )
        if not self.is_last_step:
            self._enter_step(self.state.current_step_index + 1)
        if self._autosave is not None:
            self._spawn_save(self._snapshot())
        self._notify()
        return True

    def previous_step(self) -> bool:
        self._ensure_active()
        if self.is_first_step:
            return False
        self._enter_step(self.state.current_step_index - 1)
        self._notify()
        return True

    def go_to_step(self, step_id: str) -> bool:
        """Jump to a step.

        Moving back is always allowed. Moving forward requires every
        required step in between to be valid, unless the wizard allows
        skipping.

        Raises:
            NotFoundError: If ``step_id`` is not a step of this wizard
        """
        self._ensure_active()
        target = self.config.index_of(step_id)
        current = self.state.current_step_index
        allowed = (
            target <= current
            or self.config.navigation.allow_skip_steps
            or self.validator.can_navigate_to(step_id, self.state.data)
        )
        self._track("track_navigation", self.state.current_step_id, step_id, allowed)
        if not allowed:
            return False
        if target != current:
            self._enter_step(target)
            self._notify()
        return True

    def can_skip_step(self, step_id: str) -> bool:
        return self.config.get_step(step_id).optional or self.config.navigation.allow_skip_steps

    def skip_step(self) -> bool:
        """Advance without validating, if the current step may be skipped."""
        self._ensure_active()
        step_id = self.state.current_step_id
        if self.is_last_step or not self.can_skip_step(step_id):
            return False
        self._set_step_errors(step_id, {})
        self.state.step_progress.setdefault(step_id, False)
        self._enter_step(self.state.current_step_index + 1)
        self._notify()
        return True

    # -- Drafts --

    async def save_draft(self) -> SaveOutcome | None:
        """Save a draft of the current data and step.

        Drafts are validated leniently; malformed values are reported in
        ``state.save_warning`` but never block the save.

        Returns:
            The save outcome, or ``None`` when drafts are disabled
        """
        if self.draft_store is None:
            return None
        return await self._save_snapshot(self._snapshot())

    async def load_draft(self, draft_id: str) -> bool:
        """Replace the session with a stored draft.

        Returns:
            False if no live draft with that id exists for this user
        """
        if self.draft_store is None:
            return False
        if self._lifecycle.is_terminal:
            raise OperationError(
                "Cannot load a draft into a finished wizard",
                context={"status": self.status.value, "draft_id": draft_id},
            )
        self.state.is_loading = True
        self._notify()
        try:
            draft = await self.draft_store.load(draft_id, self.user_id)
        finally:
            self.state.is_loading = False

        if draft is None or draft.wizard_kind is not self.config.kind:
            logger.info("Draft %s not found", draft_id, extra={"draft_id": draft_id})
            self._notify()
            return False

        self.state.data = copy.deepcopy(draft.form_data)
        self.state.step_progress = dict(draft.step_progress)
        self.state.draft_id = draft.draft_id
        self.state.field_errors = {}
        self.state.last_saved_at = draft.saved_at
        index = (
            self.config.index_of(draft.current_step_id)
            if self.config.has_step(draft.current_step_id)
            else 0
        )
        self._set_position(index)
        self._mark_changed()
        self.state.is_dirty = False
        self._history.clear()
        self._history.record(self.state.data, index)
        self._track("track_draft_loaded", draft.draft_id, draft.current_step_id)
        logger.info(
            "Loaded draft %s at step %s", draft.draft_id, draft.current_step_id,
            extra={"draft_id": draft.draft_id, "step_id": draft.current_step_id},
        )
        self._notify()
        return True

    async def delete_draft(self) -> bool:
        if self.draft_store is None or self.state.draft_id is None:
            return False
        await self.wait_for_pending_saves()
        removed = await self.draft_store.delete(self.state.draft_id, self.user_id)
        self.state.draft_id = None
        self._notify()
        return removed

    # -- Completion --

    async def complete(self) -> bool:
        """Validate the whole document and hand it to ``on_complete``.

        On validation failure the errors are published, the wizard jumps to
        the first invalid step and False is returned. Exceptions from the
        handler propagate and the draft is kept. On success the draft is
        deleted.

        Raises:
            ConfigurationError: If no completion handler was configured
        """
        if self._on_complete is None:
            raise ConfigurationError(
                "No on_complete handler configured", context={"kind": self.config.kind.value}
            )
        self._ensure_active()
        self._move_to(WizardStatus.COMPLETING)

        outcome = self.validator.validate_all(self.state.data)
        if not outcome.is_valid:
            grouped = outcome.errors_by_step()
            self.state.field_errors = {
                step_id: {path: messages[0] for path, messages in fields.items()}
                for step_id, fields in grouped.items()
            }
            first = outcome.first_invalid_step(self.config.step_ids)
            if first is not None:
                self._enter_step(self.config.index_of(first))
                self.state.last_error = WizardError.validation(
                    first, self.state.field_errors.get(first, {})
                )
                self._track("track_validation_failure", first, self.state.field_errors[first])
            else:
                self.state.last_error = WizardError.validation(
                    self.state.current_step_id,
                    next(iter(self.state.field_errors.values()), {}),
                )
            self._move_to(WizardStatus.ACTIVE)
            self._notify()
            return False

        try:
            result = self._on_complete(copy.deepcopy(self.state.data))
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            self.state.last_error = self.recovery.record(
                WizardError.from_exception(e, step=self.state.current_step_id)
            )
            self._move_to(WizardStatus.ACTIVE)
            self._notify()
            raise

        self._move_to(WizardStatus.COMPLETED)
        if self._autosave is not None:
            await self._autosave.stop()
        await self.delete_draft()
        self.state.is_dirty = False
        self._track("track_wizard_completed")
        logger.info(
            "Completed %s wizard for user %s", self.config.kind.value, self.user_id,
            extra={"wizard_kind": self.config.kind.value},
        )
        self._notify()
        return True

    # -- Recovery --

    def recovery_strategy(self, error: WizardError | None = None) -> RecoveryStrategy | None:
        """Recovery options for ``error`` (defaults to the last recorded error)."""
        target = error or self.state.last_error
        if target is None:
            return None
        return self.recovery.strategy_for(target)

    # -- Export / import --

    def export_state(self) -> str:
        """Serialize the session to JSON for a manual backup."""
        payload = {
            "version": EXPORT_FORMAT_VERSION,
            "wizardKind": self.config.kind.value,
            "exportedAt": datetime.now(timezone.utc).isoformat(),
            "state": {
                "currentStepId": self.state.current_step_id,
                "data": self.state.data,
                "stepProgress": self.state.step_progress,
                "draftId": self.state.draft_id,
            },
        }
        try:
            return json.dumps(payload, indent=2)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Wizard state is not JSON serializable: {e}") from e

    def import_state(self, raw: str) -> None:
        """Restore a session exported by :meth:`export_state`.

        Raises:
            SerializationError: If the payload is not a compatible export
        """
        self._ensure_active()
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Invalid wizard export: {e}") from e
        if not isinstance(payload, dict) or payload.get("version") != EXPORT_FORMAT_VERSION:
            raise SerializationError(
                "Unsupported wizard export version",
                context={"version": payload.get("version") if isinstance(payload, dict) else None},
            )
        if payload.get("wizardKind") != self.config.kind.value:
            raise SerializationError(
                "Wizard export belongs to a different wizard",
                context={"expected": self.config.kind.value, "found": payload.get("wizardKind")},
            )
        state = payload.get("state") or {}
        data = state.get("data")
        if not isinstance(data, dict):
            raise SerializationError("Wizard export has no data")

        step_id = state.get("currentStepId")
        index = self.config.index_of(step_id) if self.config.has_step(step_id) else 0
        self.state.data = data
        self.state.step_progress = {
            str(k): bool(v) for k, v in (state.get("stepProgress") or {}).items()
        }
        self.state.draft_id = state.get("draftId") or self.state.draft_id
        self.state.field_errors = {}
        self._set_position(index)
        self._mark_changed()
        self._history.record(self.state.data, index)
        self._notify()

    # -- Internals --

    def _ensure_active(self) -> None:
        if self.status is not WizardStatus.ACTIVE:
            raise OperationError(
                f"Wizard is {self.status.value}, not active",
                context={"status": self.status.value, "kind": self.config.kind.value},
            )

    def _move_to(self, status: WizardStatus) -> None:
        self._lifecycle.move_to(status)
        self.state.status = status

    def _mark_changed(self) -> None:
        self.state.version += 1
        self.state.is_dirty = True

    def _set_position(self, index: int) -> None:
        self.state.current_step_index = index
        self.state.current_step_id = self.config.steps[index].id

    def _enter_step(self, index: int) -> None:
        self._set_position(index)
        self._step_started_at = time.monotonic()
        self._track("track_step_started", self.state.current_step_id)

    def _set_step_errors(self, step_id: str, errors: dict[str, str]) -> None:
        if errors:
            self.state.field_errors[step_id] = dict(errors)
        else:
            self.state.field_errors.pop(step_id, None)

    def _restore(self, data: dict[str, Any], step_index: int) -> None:
        self._ensure_active()
        self.state.data = data
        self.state.field_errors = {}
        self._set_position(min(step_index, len(self.config.steps) - 1))
        self._mark_changed()
        self._notify()

    def _snapshot(self) -> DraftSnapshot:
        if self.state.draft_id is None:
            self.state.draft_id = generate_draft_id(self.config.kind, self.user_id)
        return DraftSnapshot(
            draft_id=self.state.draft_id,
            data=copy.deepcopy(self.state.data),
            step_id=self.state.current_step_id,
            step_progress=dict(self.state.step_progress),
            version=self.state.version,
        )

    async def _save_snapshot(self, snapshot: DraftSnapshot) -> SaveOutcome | None:
        assert self.draft_store is not None
        lenient = self.validator.validate_step(
            snapshot.step_id, snapshot.data, ValidationMode.LENIENT
        )
        draft = self.draft_store.new_draft(
            self.user_id,
            snapshot.data,
            snapshot.step_id,
            snapshot.step_progress,
            draft_id=snapshot.draft_id,
        )

        self._saves_in_flight += 1
        self.state.is_saving = True
        self._notify()
        try:
            outcome = await self.draft_store.save(draft)
        finally:
            self._saves_in_flight -= 1
            self.state.is_saving = self._saves_in_flight > 0
        self._apply_save_outcome(outcome, snapshot, draft.saved_at, lenient)
        return outcome

    def _apply_save_outcome(
        self,
        outcome: SaveOutcome,
        snapshot: DraftSnapshot,
        saved_at: int,
        lenient: ValidationResult,
    ) -> None:
        warnings: list[str] = []
        if not lenient.is_valid:
            warnings.append("Draft saved with invalid fields: " + ", ".join(sorted(lenient.errors)))

        if outcome.success:
            self.state.draft_id = outcome.draft_id
            if self.state.version == snapshot.version:
                self.state.is_dirty = False
            if self.state.last_saved_at is None or saved_at >= self.state.last_saved_at:
                self.state.last_saved_at = saved_at
            self._track("track_draft_saved", outcome.draft_id, outcome.tier.value, snapshot.step_id)
            if outcome.degraded:
                warnings.insert(0, "Saved on this device only; the server is unavailable")
            for error in outcome.errors:
                recorded = self.recovery.record(WizardError.from_exception(error, step=snapshot.step_id))
                if isinstance(error, PermissionDeniedError):
                    self.state.last_error = recorded
            self.recovery.reset_retries()
        else:
            failure = outcome.errors[-1] if outcome.errors else OperationError("Draft save failed")
            self.state.last_error = self.recovery.record(
                WizardError.from_exception(failure, step=snapshot.step_id)
            )
            warnings.insert(0, "Draft could not be saved")
        self.state.save_warning = "; ".join(warnings) or None
        self._notify()

    def _spawn_save(self, snapshot: DraftSnapshot) -> None:
        task = asyncio.get_running_loop().create_task(self._save_snapshot(snapshot))
        self._pending_saves.add(task)
        task.add_done_callback(self._save_finished)

    def _save_finished(self, task: asyncio.Task[SaveOutcome | None]) -> None:
        self._pending_saves.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background draft save failed: %s", error, exc_info=error)
            self.state.last_error = self.recovery.record(
                WizardError.from_exception(error, step=self.state.current_step_id)
            )

    def _autosave_due(self) -> bool:
        return (
            self.status is WizardStatus.ACTIVE
            and self.state.is_dirty
            and not self._pending_saves
        )

    def _spawn_autosave(self) -> None:
        self._spawn_save(self._snapshot())

    def _track(self, method: str, *args: Any) -> None:
        if self.recorder is None:
            return
        try:
            getattr(self.recorder, method)(*args)
        except Exception:
            logger.exception("Analytics %s failed", method)

    def _notify(self) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(self.state)
        except Exception:
            logger.exception("on_update callback failed")
