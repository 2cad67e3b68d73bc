"""Wizard lifecycle statuses and the transitions allowed between them.

A wizard session moves ``idle -> active -> completing -> completed``.
``completing`` falls back to ``active`` when final validation or the
completion handler fails, and any non-terminal status may be
``cancelled``. Saving runs in parallel with these statuses and is
tracked separately by the engine (``is_saving``).
"""

from __future__ import annotations

import logging
from enum import Enum

from formknobs.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


class WizardStatus(str, Enum):
    """Lifecycle status of a wizard session."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETING = "completing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


WIZARD_TRANSITIONS: dict[WizardStatus, frozenset[WizardStatus]] = {
    WizardStatus.IDLE: frozenset({WizardStatus.ACTIVE, WizardStatus.CANCELLED}),
    WizardStatus.ACTIVE: frozenset({WizardStatus.COMPLETING, WizardStatus.CANCELLED}),
    WizardStatus.COMPLETING: frozenset(
        {WizardStatus.ACTIVE, WizardStatus.COMPLETED, WizardStatus.CANCELLED}
    ),
    WizardStatus.COMPLETED: frozenset(),
    WizardStatus.CANCELLED: frozenset(),
}


class Lifecycle:
    """Holds a session's current status and rejects illegal moves.

    Args:
        name: Label used in errors and log records (usually the wizard kind)
        initial: Starting status

    Example:
        ```python
        lifecycle = Lifecycle("property")
        lifecycle.move_to(WizardStatus.ACTIVE)
        lifecycle.move_to(WizardStatus.IDLE)  # raises InvalidTransitionError
        ```
    """

    def __init__(self, name: str, initial: WizardStatus = WizardStatus.IDLE) -> None:
        self._name = name
        self._status = initial

    @property
    def status(self) -> WizardStatus:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return not WIZARD_TRANSITIONS[self._status]

    def can_move_to(self, target: WizardStatus) -> bool:
        return target in WIZARD_TRANSITIONS[self._status]

    def move_to(self, target: WizardStatus) -> None:
        """Change status, raising if the transition is not allowed.

        Raises:
            InvalidTransitionError: If ``target`` is not reachable in one step
        """
        allowed = WIZARD_TRANSITIONS[self._status]
        if target not in allowed:
            raise InvalidTransitionError(
                entity=f"wizard:{self._name}",
                current_status=self._status.value,
                target_status=target.value,
                allowed={s.value for s in allowed},
            )
        if target is not self._status:
            logger.debug(
                "Wizard %s: %s -> %s", self._name, self._status.value, target.value
            )
        self._status = target

    def __repr__(self) -> str:
        return f"Lifecycle({self._name!r}, {self._status.value})"
