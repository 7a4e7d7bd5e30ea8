"""Exception hierarchy for arthagent."""

from __future__ import annotations

from typing import Optional


class ArthagentError(Exception):
    """Base class for all arthagent errors."""


class TransientError(ArthagentError):
    """A failure worth retrying, e.g. a timeout or a 5xx from a collaborator."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StepFailed(ArthagentError):
    """A required step exhausted its attempts."""

    def __init__(self, step_name: str, cause: BaseException, attempts: int = 1) -> None:
        super().__init__(f"Step '{step_name}' failed after {attempts} attempt(s): {cause}")
        self.step_name = step_name
        self.cause = cause
        self.attempts = attempts


class ExtractionError(ArthagentError):
    """Structured output from the language model could not be used."""


class AuthenticationError(ArthagentError):
    """The caller could not be identified."""


class ConversationOwnershipError(ArthagentError):
    """A message targeted a conversation that belongs to another user."""

    def __init__(self, chat_id: str, user_id: str) -> None:
        super().__init__(f"Conversation {chat_id} does not belong to {user_id}")
        self.chat_id = chat_id
        self.user_id = user_id
