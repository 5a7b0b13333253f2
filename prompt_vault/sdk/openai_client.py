"""
OpenAI-backed generation collaborators.

Produces change summaries and session titles, recording a usage record for
every completed call.
"""

import logging
import sqlite3
import time
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ..core.analytics import UsageAggregator
from ..storage.models import ActionType, UsageRecord
from ..storage.repository import initialize_schema, insert_usage_record

logger = logging.getLogger(__name__)

TITLE_CONTEXT_CHARS = 500


class CollaboratorError(Exception):
    """Raised when the generation service returns an unusable response."""


class OpenAICollaborator:
    """Summary and title generator over the OpenAI chat API.

    Service failures propagate to the caller, which owns the fallback.
    """

    def __init__(
        self,
        model: str,
        db_path: Optional[str] = None,
        aggregator: Optional[UsageAggregator] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """Initialize the collaborator.

        Args:
            model: Model used when the caller does not pick one (required)
            db_path: Optional usage ledger to append records to
            aggregator: Optional aggregator receiving usage records
            client: Preconfigured client, defaults to AsyncOpenAI()

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.db_path = db_path
        self.aggregator = aggregator
        self.client = client or AsyncOpenAI()
        if db_path:
            try:
                initialize_schema(db_path)
            except sqlite3.Error as e:
                logger.warning("Could not prepare usage ledger %s: %s", db_path, e)

    async def generate_change_summary(self, previous_text: str, new_text: str, model: Optional[str] = None) -> str:
        """Describe in one short sentence what changed between two prompts."""
        prompt = (
            "Summarize in one very short sentence (max 10 words) what changed "
            "between these two versions of the prompt.\n"
            f'V1: "{previous_text}"\n'
            f'V2: "{new_text}"'
        )
        text = await self._complete(
            [{"role": "user", "content": prompt}],
            model or self.model,
            ActionType.ANALYSIS,
        )
        return text.strip()

    async def generate_session_title(self, idea_text: str, model: Optional[str] = None) -> Dict[str, str]:
        """Generate a 3-5 word title for an idea."""
        prompt = (
            "Task: generate a SHORT title (3-5 words) for this text. Only the "
            f'title, no quotes, no intro. Text: "{idea_text[:TITLE_CONTEXT_CHARS]}"'
        )
        text = await self._complete(
            [{"role": "user", "content": prompt}],
            model or self.model,
            ActionType.GENERATION,
            temperature=0.3,
            max_tokens=20,
        )
        return {"text": text.strip().strip('"\'')}

    async def _complete(
        self,
        messages: List[Dict[str, str]],
        model: str,
        action_type: ActionType,
        **kwargs: Any
    ) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            **kwargs
        )

        if response.usage:
            self._record(response.usage, model, action_type)

        if not response.choices or response.choices[0].message.content is None:
            raise CollaboratorError("Generation response has no content")
        return response.choices[0].message.content

    def _record(self, usage: Any, model: str, action_type: ActionType) -> None:
        completion_details = getattr(usage, "completion_tokens_details", None)
        prompt_details = getattr(usage, "prompt_tokens_details", None)
        record = UsageRecord(
            model=model,
            action_type=action_type,
            prompt_tokens=usage.prompt_tokens,
            candidates_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            timestamp=int(time.time() * 1000),
            thinking_tokens=getattr(completion_details, "reasoning_tokens", None),
            cached_content_tokens=getattr(prompt_details, "cached_tokens", None),
        )
        if self.aggregator is not None:
            self.aggregator.record_usage(record)
        if self.db_path:
            try:
                insert_usage_record(record, self.db_path)
            except sqlite3.Error as e:
                logger.warning("Usage record not written to ledger: %s", e)
