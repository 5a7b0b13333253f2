"""
SDK for prompt-vault.

Provides the generation collaborators used by saves and autosaves.
"""

from .openai_client import CollaboratorError, OpenAICollaborator

__all__ = ["CollaboratorError", "OpenAICollaborator"]
