"""
Autosave scheduling.

A debounced timer that saves the edit buffer after a period of idle edit
activity. Time is read from an injectable clock so the timer can be driven
by tests without real delays.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from prompt_vault.storage.repository import AUTOSAVE_ENABLED_KEY, KeyValueStore

from .editor import Editor
from .notifications import Severity
from .session_store import SaveMode

logger = logging.getLogger(__name__)

AUTOSAVE_IDLE_SECONDS = 2.0

Clock = Callable[[], float]


class ScheduledTask:
    """A cancellable one-shot task that becomes due after ``delay`` seconds.

    Rescheduling replaces any pending deadline (debounce, not throttle).
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]], clock: Clock = time.monotonic):
        self.delay = delay
        self._callback = callback
        self._clock = clock
        self._deadline: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def schedule(self) -> None:
        self._deadline = self._clock() + self.delay

    def cancel(self) -> None:
        self._deadline = None

    def due(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    async def fire_if_due(self) -> bool:
        """Run the callback if the deadline passed; returns whether it ran."""
        if not self.due():
            return False
        self._deadline = None
        await self._callback()
        return True


class AutosaveScheduler:
    """Debounced autosave driven by edit activity.

    The enabled flag is a persisted preference, on by default.
    """

    def __init__(
        self,
        editor: Editor,
        preferences: KeyValueStore,
        idle_seconds: float = AUTOSAVE_IDLE_SECONDS,
        clock: Clock = time.monotonic,
        default_enabled: bool = True,
    ):
        self._editor = editor
        self._preferences = preferences
        self._task = ScheduledTask(idle_seconds, self._autosave, clock)
        stored = preferences.get_json(AUTOSAVE_ENABLED_KEY)
        self._enabled = stored if isinstance(stored, bool) else default_enabled
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> bool:
        return self._task.pending

    def on_edit(self) -> None:
        """Restart the idle timer after an idea or prompt change."""
        if self._closed or not self._enabled:
            return
        if self._editor.is_empty:
            return
        self._task.schedule()
        logger.debug("Autosave scheduled in %.1fs", self._task.delay)

    def set_enabled(self, enabled: bool) -> None:
        """Enable or pause autosave.

        Pausing cancels any pending save; enabling waits for the next edit.
        """
        self._enabled = enabled
        if not enabled:
            self._task.cancel()
        self._preferences.set_json(AUTOSAVE_ENABLED_KEY, enabled)
        self._editor.store.notifier.notify(
            "Autosave enabled" if enabled else "Autosave paused", Severity.INFO
        )

    def toggle(self) -> bool:
        self.set_enabled(not self._enabled)
        return self._enabled

    async def poll(self) -> bool:
        """Fire the autosave if the idle window has elapsed."""
        if self._closed:
            return False
        return await self._task.fire_if_due()

    async def _autosave(self) -> None:
        logger.debug("Autosave firing")
        await self._editor.global_save(SaveMode.AUTOSAVE)

    async def run(self, interval: float = 0.1) -> None:
        """Drive ``poll`` in real time until ``close`` is called."""
        while not self._closed:
            try:
                await self.poll()
            except Exception:
                logger.exception("Autosave failed")
            await asyncio.sleep(interval)

    def close(self) -> None:
        """Tear down: cancel the pending save and stop ``run``."""
        self._closed = True
        self._task.cancel()
