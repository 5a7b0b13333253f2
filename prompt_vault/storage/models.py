"""
Data models for storage layer.

Defines prompt sessions, their versions and token usage records.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

DRAFT_FRAMEWORK = "DRAFT"
DEFAULT_MODEL = "gemini-3-flash-preview"

INITIAL_VERSION_SUMMARY = "Initial version."
INITIAL_DRAFT_SUMMARY = "Initial draft."
IMPORTED_VERSION_SUMMARY = "Imported version."
MANUAL_UPDATE_SUMMARY = "Manual update."


class ActionType(Enum):
    """Which generation operation produced a usage record."""
    OPTIMIZATION = "optimization"
    GENERATION = "generation"
    EXPANSION = "expansion"
    ANALYSIS = "analysis"
    CHAT = "chat"


@dataclass(frozen=True)
class PromptVersion:
    """One immutable snapshot of a prompt-building attempt."""
    version_id: str
    idea: str
    use_case: str
    framework_acronym: str
    optimized_prompt: str
    model: str
    created_at: str
    change_summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "versionId": self.version_id,
            "idea": self.idea,
            "useCase": self.use_case,
            "frameworkAcronym": self.framework_acronym,
            "optimizedPrompt": self.optimized_prompt,
            "model": self.model,
            "createdAt": self.created_at,
            "changeSummary": self.change_summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptVersion":
        return cls(
            version_id=data["versionId"],
            idea=data.get("idea") or "",
            use_case=data.get("useCase") or "",
            framework_acronym=data.get("frameworkAcronym") or DRAFT_FRAMEWORK,
            optimized_prompt=data.get("optimizedPrompt") or "",
            model=data.get("model") or DEFAULT_MODEL,
            created_at=data.get("createdAt") or "",
            change_summary=data.get("changeSummary") or "",
        )


@dataclass
class PromptSession:
    """A named history of versions, newest first.

    A session always holds at least one version while it is part of the
    collection.
    """
    id: str
    base_idea: str
    created_at: str
    versions: List[PromptVersion] = field(default_factory=list)
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "baseIdea": self.base_idea,
            "createdAt": self.created_at,
            "versions": [v.to_dict() for v in self.versions],
        }
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptSession":
        return cls(
            id=data["id"],
            name=data.get("name"),
            base_idea=data.get("baseIdea") or "",
            created_at=data.get("createdAt") or "",
            versions=[PromptVersion.from_dict(v) for v in data.get("versions", [])],
        )


def latest_version(session: PromptSession) -> PromptVersion:
    """Return the most recent version of a session."""
    if not session.versions:
        raise ValueError(f"Session {session.id} has no versions")
    return session.versions[0]


def with_fields(version: PromptVersion, **changes: Any) -> PromptVersion:
    """Copy of a version with some fields replaced."""
    return replace(version, **changes)


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of token consumption for one generation call.

    Records are append-only: once ingested they are never modified.
    """
    model: str
    action_type: ActionType
    prompt_tokens: int
    candidates_tokens: int
    total_tokens: int
    timestamp: int  # epoch milliseconds
    thinking_tokens: Optional[int] = None
    cached_content_tokens: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "actionType": self.action_type.value,
            "promptTokens": self.prompt_tokens,
            "candidatesTokens": self.candidates_tokens,
            "thinkingTokens": self.thinking_tokens,
            "cachedContentTokens": self.cached_content_tokens,
            "totalTokens": self.total_tokens,
            "timestamp": self.timestamp,
        }
