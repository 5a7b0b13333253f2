"""
Session and version store.

Owns the in-memory collection of prompt sessions, their version histories
and the active-iteration pointer. Every mutation is written through to the
key-value store; storage failures degrade to an in-memory-only change.

Save pipeline:
1. Classify - resolve draft handling and the effective prompt text
2. Summarize - ask the collaborator for a change summary (manual saves only)
3. Apply - mutate the collection
4. Persist - write the collection to the key-value store
5. Notify - emit the user-visible outcome
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol

from prompt_vault.storage.models import (
    DEFAULT_MODEL,
    DRAFT_FRAMEWORK,
    INITIAL_DRAFT_SUMMARY,
    INITIAL_VERSION_SUMMARY,
    MANUAL_UPDATE_SUMMARY,
    PromptSession,
    PromptVersion,
    latest_version,
    with_fields,
)
from prompt_vault.storage.repository import SAVED_PROMPTS_KEY, KeyValueStore

from .migration import load_collection
from .notifications import Notifier, Severity

logger = logging.getLogger(__name__)

DRAFT_SAVED_MESSAGE = "Draft saved!"
SESSION_SAVED_MESSAGE = "New session saved!"
VERSION_SAVED_MESSAGE = "New version saved!"
PERSIST_FAILED_MESSAGE = "Could not write to storage. Changes are kept in memory only."


class SaveMode(Enum):
    """How a save was triggered."""
    MANUAL = "manual"
    AUTOSAVE = "autosave"


class ChangeSummarizer(Protocol):
    async def generate_change_summary(self, previous_text: str, new_text: str, model: str) -> str:
        ...


@dataclass(frozen=True)
class PromptData:
    """Contents of the edit buffer at save time."""
    idea: str
    use_case: str
    framework_acronym: str
    optimized_prompt: str
    model: str


@dataclass(frozen=True)
class ResolvedSave:
    """Prompt data after draft classification."""
    idea: str
    use_case: str
    framework_acronym: str
    prompt_text: str
    model: str
    is_draft: bool


@dataclass
class SaveResult:
    """Outcome of a create-or-update call."""
    sessions: List[PromptSession]
    message: str
    session_id: Optional[str]
    persisted: bool = True
    discarded: bool = False


@dataclass(frozen=True)
class DeleteResult:
    removed: bool
    cleared_active: bool = False


@dataclass(frozen=True)
class Selection:
    """A version loaded for editing.

    ``distance`` is ``count - index``: 1-based position counted from the
    oldest version, used for display only.
    """
    session: PromptSession
    version: PromptVersion
    distance: int


def classify(prompt_data: PromptData) -> ResolvedSave:
    """Resolve draft handling for a save.

    A save with an idea but no optimized prompt is a draft: the idea becomes
    the prompt text. An empty framework always falls back to the draft
    sentinel.
    """
    is_draft = not prompt_data.optimized_prompt and bool(prompt_data.idea)
    return ResolvedSave(
        idea=prompt_data.idea,
        use_case=prompt_data.use_case,
        framework_acronym=prompt_data.framework_acronym or DRAFT_FRAMEWORK,
        prompt_text=prompt_data.optimized_prompt or prompt_data.idea,
        model=prompt_data.model,
        is_draft=is_draft,
    )


def _now() -> str:
    return datetime.now().isoformat()


class SessionStore:
    """Single writer for the session collection and active iteration."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        notifier: Optional[Notifier] = None,
        summarizer: Optional[ChangeSummarizer] = None,
        default_model: str = DEFAULT_MODEL,
    ):
        self._kv = kv_store
        self._notifier = notifier or Notifier()
        self._summarizer = summarizer
        self.default_model = default_model
        self._sessions: List[PromptSession] = load_collection(kv_store, default_model)
        self._active_id: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def kv_store(self) -> KeyValueStore:
        return self._kv

    @property
    def sessions(self) -> List[PromptSession]:
        return list(self._sessions)

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active_id

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def get(self, session_id: str) -> Optional[PromptSession]:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def version_count(self) -> int:
        """Total number of versions across all sessions."""
        return sum(len(s.versions) for s in self._sessions)

    def search(self, query: str = "") -> List[PromptSession]:
        """Find sessions whose name, base idea or any version matches.

        Results are ordered by latest version creation time, newest first.
        """
        needle = query.lower()
        matches = [
            s for s in self._sessions
            if (s.name and needle in s.name.lower())
            or needle in s.base_idea.lower()
            or any(needle in v.optimized_prompt.lower() for v in s.versions)
        ]
        return sorted(matches, key=lambda s: latest_version(s).created_at, reverse=True)

    async def create_or_update(
        self,
        prompt_data: PromptData,
        mode: SaveMode = SaveMode.MANUAL,
        session_name: Optional[str] = None,
    ) -> SaveResult:
        """Create a new session or update the active one.

        Saves are sequenced: a save waits for any in-flight save to finish
        before reading the collection.

        Args:
            prompt_data: Current edit buffer contents
            mode: MANUAL appends a version, AUTOSAVE overwrites the latest
            session_name: Optional name to assign to the session

        Returns:
            SaveResult with the updated collection and outcome message
            (always empty for autosaves)
        """
        async with self._lock:
            resolved = classify(prompt_data)
            session = self.get(self._active_id) if self._active_id else None

            if session is None:
                session = self._create_session(resolved, session_name)
                message = DRAFT_SAVED_MESSAGE if resolved.is_draft else SESSION_SAVED_MESSAGE
            elif mode is SaveMode.AUTOSAVE:
                self._overwrite_latest(session, resolved, session_name)
                message = ""
            else:
                target_id = session.id
                summary = await self._summarize(session, resolved)
                session = self.get(target_id)
                if session is None or self._active_id != target_id:
                    logger.info("Discarding save for session %s: target changed during summary", target_id)
                    return SaveResult(self.sessions, "", self._active_id, persisted=False, discarded=True)
                self._append_version(session, resolved, summary, session_name)
                message = VERSION_SAVED_MESSAGE

            persisted = self._persist()
            if mode is SaveMode.MANUAL and message:
                self._notifier.notify(message, Severity.SUCCESS)
            return SaveResult(
                sessions=self.sessions,
                message=message if mode is SaveMode.MANUAL else "",
                session_id=session.id,
                persisted=persisted,
            )

    def _create_session(self, resolved: ResolvedSave, session_name: Optional[str]) -> PromptSession:
        version = self._new_version(
            resolved,
            INITIAL_DRAFT_SUMMARY if resolved.is_draft else INITIAL_VERSION_SUMMARY,
        )
        session = PromptSession(
            id=str(uuid.uuid4()),
            name=session_name,
            base_idea=resolved.idea,
            created_at=version.created_at,
            versions=[version],
        )
        self._sessions.insert(0, session)
        self._active_id = session.id
        logger.debug("Created session %s", session.id)
        return session

    def _overwrite_latest(self, session: PromptSession, resolved: ResolvedSave, session_name: Optional[str]) -> None:
        session.versions[0] = with_fields(
            latest_version(session),
            idea=resolved.idea,
            use_case=resolved.use_case,
            framework_acronym=resolved.framework_acronym,
            optimized_prompt=resolved.prompt_text,
            model=resolved.model,
        )
        session.base_idea = resolved.idea
        if session_name:
            session.name = session_name

    def _append_version(
        self,
        session: PromptSession,
        resolved: ResolvedSave,
        summary: str,
        session_name: Optional[str],
    ) -> None:
        session.versions.insert(0, self._new_version(resolved, summary))
        session.base_idea = resolved.idea
        if session_name:
            session.name = session_name

    async def _summarize(self, session: PromptSession, resolved: ResolvedSave) -> str:
        previous = latest_version(session).optimized_prompt
        if resolved.is_draft or not previous or self._summarizer is None:
            return MANUAL_UPDATE_SUMMARY
        try:
            summary = await self._summarizer.generate_change_summary(
                previous, resolved.prompt_text, resolved.model
            )
        except Exception as e:
            logger.warning("Change summary failed, using fallback: %s", e)
            return MANUAL_UPDATE_SUMMARY
        return (summary or "").strip() or MANUAL_UPDATE_SUMMARY

    @staticmethod
    def _new_version(resolved: ResolvedSave, summary: str) -> PromptVersion:
        return PromptVersion(
            version_id=str(uuid.uuid4()),
            idea=resolved.idea,
            use_case=resolved.use_case,
            framework_acronym=resolved.framework_acronym,
            optimized_prompt=resolved.prompt_text,
            model=resolved.model,
            created_at=_now(),
            change_summary=summary,
        )

    def _persist(self) -> bool:
        ok = self._kv.set_json(SAVED_PROMPTS_KEY, [s.to_dict() for s in self._sessions])
        if not ok:
            logger.warning("Session collection kept in memory only")
            self._notifier.notify(PERSIST_FAILED_MESSAGE, Severity.ERROR)
        return ok

    def delete_session(self, session_id: str) -> DeleteResult:
        """Remove a session.

        Returns:
            DeleteResult; ``cleared_active`` tells the caller to reset its
            edit buffer
        """
        session = self.get(session_id)
        if session is None:
            return DeleteResult(removed=False)
        self._sessions.remove(session)
        cleared = self._active_id == session_id
        if cleared:
            self._active_id = None
        self._persist()
        self._notifier.notify("Session deleted.", Severity.INFO)
        return DeleteResult(removed=True, cleared_active=cleared)

    def delete_version(self, session_id: str, version_id: str) -> DeleteResult:
        """Remove one version; a session left with no versions is removed."""
        session = self.get(session_id)
        if session is None:
            return DeleteResult(removed=False)
        remaining = [v for v in session.versions if v.version_id != version_id]
        if len(remaining) == len(session.versions):
            return DeleteResult(removed=False)

        cleared = False
        if remaining:
            session.versions = remaining
        else:
            self._sessions.remove(session)
            cleared = self._active_id == session_id
            if cleared:
                self._active_id = None
        self._persist()
        self._notifier.notify("Version deleted.", Severity.INFO)
        return DeleteResult(removed=True, cleared_active=cleared)

    def select_for_iteration(self, session_id: str, version_id: Optional[str] = None) -> Optional[Selection]:
        """Make a session active and return the version to edit.

        Falls back to the latest version when ``version_id`` is missing or
        unknown. Unknown sessions leave the state unchanged.
        """
        session = self.get(session_id)
        if session is None or not session.versions:
            return None
        self._active_id = session_id

        index = 0
        if version_id:
            for i, version in enumerate(session.versions):
                if version.version_id == version_id:
                    index = i
                    break
        return Selection(
            session=session,
            version=session.versions[index],
            distance=len(session.versions) - index,
        )

    def cancel_iteration(self) -> None:
        self._active_id = None

    def rename(self, session_id: str, new_name: str) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        session.name = new_name
        self._persist()
        self._notifier.notify("Session renamed.", Severity.SUCCESS)
        return True
