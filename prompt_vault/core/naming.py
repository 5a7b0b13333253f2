"""
Session naming workflow.

Coordinates the "name this session" and "rename session" decisions before
any store mutation happens.
"""

from enum import Enum, auto
from typing import Optional

from .editor import Editor
from .session_store import SaveMode


class NamingState(Enum):
    CLOSED = auto()
    OPEN_NEW = auto()
    OPEN_RENAME = auto()


class NamingOutcome(Enum):
    SKIPPED = auto()    # Buffer was empty, reset without asking
    OPENED = auto()
    SAVED = auto()
    RENAMED = auto()
    DISCARDED = auto()
    CANCELLED = auto()


class NamingStateError(Exception):
    """Raised when a decision is made while no naming dialog is open."""


class NamingWorkflow:
    """Modal decision point for naming new sessions and renaming old ones."""

    def __init__(self, editor: Editor):
        self._editor = editor
        self.state = NamingState.CLOSED
        self.initial_name = ""
        self.session_id: Optional[str] = None

    def request_new_session(self) -> NamingOutcome:
        """Start a new session, asking for a name if there is work to keep."""
        if self._editor.is_empty:
            self._editor.reset()
            return NamingOutcome.SKIPPED
        self._open(NamingState.OPEN_NEW, "", None)
        return NamingOutcome.OPENED

    def request_rename(self, session_id: str) -> Optional[NamingOutcome]:
        session = self._editor.store.get(session_id)
        if session is None:
            return None
        self._open(NamingState.OPEN_RENAME, session.name or "", session_id)
        return NamingOutcome.OPENED

    async def confirm(self, name: str) -> NamingOutcome:
        """Apply the entered name."""
        state, session_id = self.state, self.session_id
        self._require_open()
        self._close()
        if state is NamingState.OPEN_RENAME:
            self._editor.store.rename(session_id, name)
            return NamingOutcome.RENAMED
        await self._editor.global_save(SaveMode.MANUAL, name)
        self._editor.reset()
        return NamingOutcome.SAVED

    def discard(self) -> NamingOutcome:
        """Drop the in-progress work and start fresh without saving."""
        state = self.state
        self._require_open()
        self._close()
        if state is NamingState.OPEN_NEW:
            self._editor.reset()
        return NamingOutcome.DISCARDED

    def cancel(self) -> NamingOutcome:
        """Close the dialog leaving buffer and active session untouched."""
        self._require_open()
        self._close()
        return NamingOutcome.CANCELLED

    def _open(self, state: NamingState, initial_name: str, session_id: Optional[str]) -> None:
        self.state = state
        self.initial_name = initial_name
        self.session_id = session_id

    def _close(self) -> None:
        self._open(NamingState.CLOSED, "", None)

    def _require_open(self) -> None:
        if self.state is NamingState.CLOSED:
            raise NamingStateError("No naming dialog is open")
