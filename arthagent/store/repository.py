"""Document store abstraction for profiles, transactions and conversations."""

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from ..models import (
    Conversation,
    ConversationMessage,
    ConversationSummary,
    FinancialProfile,
    Goal,
    ProfilePatch,
    Transaction,
    UserPatch,
    UserRecord,
)


class DocumentStore(Protocol):
    """Protocol for the per-user document store.

    Every mutation is either field-scoped (patches, increments) or
    append-only, so concurrent writers for one user commute.
    """

    async def init(self) -> None:
        """Prepare the backend (create tables, connect)."""

    async def close(self) -> None:
        """Release backend resources."""

    async def get_profile(self, user_id: str) -> FinancialProfile | None:
        """Return the stored profile or ``None``."""

    async def ensure_profile(self, user_id: str) -> FinancialProfile:
        """Return the profile, creating an empty one if absent."""

    async def patch_profile(self, user_id: str, patch: ProfilePatch) -> FinancialProfile:
        """Apply ``patch`` touching only the fields it sets."""

    async def get_user(self, user_id: str) -> UserRecord | None:
        """Return the user record or ``None``."""

    async def ensure_user(self, user_id: str, email: Optional[str] = None) -> UserRecord:
        """Return the user record, creating it if absent."""

    async def patch_user(self, user_id: str, patch: UserPatch) -> UserRecord:
        """Apply ``patch`` to the user record."""

    async def add_goal(self, user_id: str, goal: Goal) -> bool:
        """Append ``goal``; ``False`` if its id is already stored."""

    async def record_transaction(self, transaction: Transaction) -> bool:
        """Insert ``transaction`` and adjust the cached balance atomically.

        Returns ``False`` without touching the balance when the transaction id
        already exists.
        """

    async def list_transactions(
        self, user_id: str, since: Optional[date] = None
    ) -> list[Transaction]:
        """Transactions for ``user_id`` ordered by date."""

    async def append_message(
        self,
        chat_id: str,
        user_id: str,
        message: ConversationMessage,
        title: Optional[str] = None,
    ) -> bool:
        """Append to the conversation, creating it lazily.

        Idempotent on ``(chat_id, message.message_id)``; returns ``False``
        when the message was already stored.
        Raises :class:`~arthagent.errors.ConversationOwnershipError` when
        ``chat_id`` belongs to a different user.
        """

    async def get_conversation(self, chat_id: str) -> Conversation | None:
        """Return the conversation with its messages in append order."""

    async def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        """Summaries of the user's conversations, most recent first."""
