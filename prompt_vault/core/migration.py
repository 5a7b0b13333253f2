"""
Version migration for persisted session data.

Upgrades legacy single-version records (flat fields on the session) into
the current multi-version shape. Migration is idempotent.
"""

import logging
import uuid
from typing import Any, List

from prompt_vault.storage.models import (
    DEFAULT_MODEL,
    DRAFT_FRAMEWORK,
    IMPORTED_VERSION_SUMMARY,
    PromptSession,
    PromptVersion,
)
from prompt_vault.storage.repository import SAVED_PROMPTS_KEY, KeyValueStore

logger = logging.getLogger(__name__)


def migrate_collection(raw: Any, default_model: str = DEFAULT_MODEL) -> List[PromptSession]:
    """Convert a persisted blob into a list of sessions in current shape.

    Entries that already carry a non-empty ``versions`` list pass through,
    with any version lacking a ``model`` backfilled with ``default_model``.
    Flat legacy entries become a session holding exactly one imported
    version.

    Args:
        raw: Decoded JSON blob (expected to be a list of mappings)
        default_model: Model identifier used for backfilling

    Returns:
        List of sessions, same order as stored
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("Ignoring stored sessions of type %s", type(raw).__name__)
        return []

    sessions = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed session entry at index %d", index)
            continue
        try:
            sessions.append(_migrate_entry(entry, default_model))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping unreadable session entry at index %d: %s", index, e)
    return sessions


def _migrate_entry(entry: dict, default_model: str) -> PromptSession:
    versions = entry.get("versions")
    if isinstance(versions, list) and versions:
        data = dict(entry)
        data["versions"] = [
            {**v, "model": v.get("model") or default_model} for v in versions
        ]
        return PromptSession.from_dict(data)

    # Legacy flat record
    version = PromptVersion(
        version_id=str(uuid.uuid4()),
        idea=entry.get("idea") or "",
        use_case=entry.get("useCase") or "",
        framework_acronym=entry.get("frameworkAcronym") or DRAFT_FRAMEWORK,
        optimized_prompt=entry.get("optimizedPrompt") or "",
        model=default_model,
        created_at=entry.get("createdAt") or "",
        change_summary=IMPORTED_VERSION_SUMMARY,
    )
    return PromptSession(
        id=entry["id"],
        name=entry.get("name"),
        base_idea=entry.get("idea") or "",
        created_at=entry.get("createdAt") or "",
        versions=[version],
    )


def load_collection(store: KeyValueStore, default_model: str = DEFAULT_MODEL) -> List[PromptSession]:
    """Load and migrate the stored collection.

    Never raises: absent data yields an empty collection, and read or parse
    errors are logged and treated as empty.
    """
    try:
        raw = store.get_json(SAVED_PROMPTS_KEY)
        return migrate_collection(raw, default_model)
    except Exception:
        logger.exception("Could not load saved sessions")
        return []
