"""
Edit buffer and global save orchestration.

The editor holds the text currently being worked on and turns it into
store mutations. Autosave and the naming workflow both go through
``Editor.global_save``.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from prompt_vault.storage.models import DEFAULT_MODEL

from .notifications import Severity
from .session_store import (
    DeleteResult,
    PromptData,
    SaveMode,
    SaveResult,
    SessionStore,
)

logger = logging.getLogger(__name__)

DEFAULT_FRAMEWORK = ""
DEFAULT_USE_CASE = "General"
TITLE_MIN_LENGTH = 15
TITLE_MAX_LENGTH = 30


class TitleGenerator(Protocol):
    async def generate_session_title(self, idea_text: str, model: str) -> dict:
        ...


@dataclass
class EditBuffer:
    """In-progress prompt being edited."""
    idea: str = ""
    use_case: str = DEFAULT_USE_CASE
    framework_acronym: str = DEFAULT_FRAMEWORK
    generated_prompt: str = ""
    model: str = DEFAULT_MODEL

    @property
    def is_empty(self) -> bool:
        return not self.idea.strip() and not self.generated_prompt.strip()

    def to_prompt_data(self) -> PromptData:
        return PromptData(
            idea=self.idea,
            use_case=self.use_case,
            framework_acronym=self.framework_acronym,
            optimized_prompt=self.generated_prompt,
            model=self.model,
        )


def fallback_title(idea: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Deterministic session title: leading characters of the idea."""
    return idea[:max_length] + ("..." if len(idea) > max_length else "")


class Editor:
    """Coordinates the edit buffer with the session store."""

    def __init__(
        self,
        store: SessionStore,
        title_generator: Optional[TitleGenerator] = None,
        title_min_length: int = TITLE_MIN_LENGTH,
        title_max_length: int = TITLE_MAX_LENGTH,
    ):
        self.store = store
        self.buffer = EditBuffer(model=store.default_model)
        self.reset_key = 0
        self._title_generator = title_generator
        self._title_min_length = title_min_length
        self._title_max_length = title_max_length

    @property
    def is_empty(self) -> bool:
        return self.buffer.is_empty

    def edit(self, **fields) -> None:
        """Update buffer fields by name."""
        for name, value in fields.items():
            if not hasattr(self.buffer, name):
                raise AttributeError(f"Unknown buffer field: {name}")
            setattr(self.buffer, name, value)

    async def global_save(self, mode: SaveMode = SaveMode.MANUAL, name: Optional[str] = None) -> Optional[SaveResult]:
        """Save the buffer; no-op when there is nothing to save.

        An autosave that is about to start a new session gets a title from
        the title generator, falling back to a truncated idea. The buffer is
        captured before the title call; the save is dropped if the editor
        was reset or a session became active while the title was pending.

        Returns:
            SaveResult, or None when nothing was saved
        """
        if not self.buffer.idea and not self.buffer.generated_prompt:
            return None

        prompt_data = self.buffer.to_prompt_data()
        session_name = name
        if (mode is SaveMode.AUTOSAVE
                and self.store.active_session_id is None
                and not session_name
                and len(prompt_data.idea) > self._title_min_length):
            reset_key = self.reset_key
            session_name = await self._generate_title(prompt_data.idea, prompt_data.model)
            if self.reset_key != reset_key or self.store.active_session_id is not None:
                logger.info("Dropping autosave: editor state changed while the title was pending")
                return None

        return await self.store.create_or_update(prompt_data, mode, session_name)

    async def _generate_title(self, idea: str, model: str) -> str:
        if self._title_generator is not None:
            try:
                result = await self._title_generator.generate_session_title(idea, model)
                title = (result or {}).get("text", "").strip()
                if title:
                    return title
            except Exception as e:
                logger.warning("Title generation failed, using fallback: %s", e)
        return fallback_title(idea, self._title_max_length)

    def load(self, session_id: str, version_id: Optional[str] = None) -> bool:
        """Load a session version into the buffer for iteration."""
        selection = self.store.select_for_iteration(session_id, version_id)
        if selection is None:
            return False
        version = selection.version
        self.buffer = EditBuffer(
            idea=version.idea,
            use_case=version.use_case,
            framework_acronym=version.framework_acronym,
            generated_prompt=version.optimized_prompt,
            model=version.model,
        )
        if version_id and version.version_id == version_id:
            message = f"Version {selection.distance} loaded. Changes will update the current version."
        else:
            message = "Session loaded. Autosave active."
        self.store.notifier.notify(message, Severity.INFO)
        return True

    def cancel_iteration(self) -> None:
        self.store.cancel_iteration()
        self.store.notifier.notify("Editing cancelled. You are in a new session.", Severity.INFO)

    def delete_session(self, session_id: str) -> DeleteResult:
        return self._clear_if_active(self.store.delete_session(session_id))

    def delete_version(self, session_id: str, version_id: str) -> DeleteResult:
        """Delete a version; removing the last one can end the iteration."""
        return self._clear_if_active(self.store.delete_version(session_id, version_id))

    def _clear_if_active(self, result: DeleteResult) -> DeleteResult:
        if result.cleared_active:
            self.buffer.idea = ""
            self.buffer.generated_prompt = ""
        return result

    def reset(self) -> None:
        """Clear the buffer and start a fresh session.

        Bumps ``reset_key`` so dependent views can rebuild with defaults.
        """
        self.buffer = EditBuffer(model=self.buffer.model)
        self.store.cancel_iteration()
        self.reset_key += 1
        self.store.notifier.notify("Clean canvas. New session started.", Severity.INFO)
