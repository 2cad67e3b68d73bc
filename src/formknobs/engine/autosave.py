"""Periodic autosave timer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class AutosaveScheduler:
    """Fires ``trigger`` every ``interval`` seconds while ``should_save`` holds.

    The trigger must only *start* a save (for example by spawning a task)
    and return immediately. Stopping the scheduler cancels the timer, never
    a save that is already running.

    Args:
        interval: Seconds between checks
        should_save: Returns True when there is something to save
        trigger: Starts a save
    """

    def __init__(
        self,
        interval: float,
        should_save: Callable[[], bool],
        trigger: Callable[[], object],
    ) -> None:
        if interval <= 0:
            raise ValueError("Autosave interval must be positive")
        self._interval = interval
        self._should_save = should_save
        self._trigger = trigger
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Autosave already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("Autosave started with %ss interval", self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Autosave stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                if self._should_save():
                    self._trigger()
            except Exception:
                logger.exception("Autosave trigger failed")
