"""In-memory document store."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional

from ..errors import ConversationOwnershipError
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
    apply_profile_patch,
    utcnow,
)
from .repository import DocumentStore


class InMemoryDocumentStore(DocumentStore):
    """Keep documents in local memory.

    Useful for tests and the embedded development server. A single
    ``asyncio.Lock`` plays the role of the store's per-document transaction.
    """

    def __init__(self) -> None:
        self._profiles: Dict[str, FinancialProfile] = {}
        self._users: Dict[str, UserRecord] = {}
        self._transactions: Dict[str, Transaction] = {}
        self._by_user: Dict[str, List[str]] = defaultdict(list)
        self._conversations: Dict[str, Conversation] = {}
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    async def get_profile(self, user_id: str) -> FinancialProfile | None:
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    async def ensure_profile(self, user_id: str) -> FinancialProfile:
        async with self._lock:
            profile = self._profiles.setdefault(user_id, FinancialProfile(user_id=user_id))
            return profile.model_copy(deep=True)

    async def patch_profile(self, user_id: str, patch: ProfilePatch) -> FinancialProfile:
        async with self._lock:
            current = self._profiles.get(user_id) or FinancialProfile(user_id=user_id)
            updated = apply_profile_patch(current, patch)
            self._profiles[user_id] = updated
            return updated.model_copy(deep=True)

    async def get_user(self, user_id: str) -> UserRecord | None:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def ensure_user(self, user_id: str, email: Optional[str] = None) -> UserRecord:
        async with self._lock:
            user = self._users.setdefault(user_id, UserRecord(user_id=user_id, email=email))
            return user.model_copy(deep=True)

    async def patch_user(self, user_id: str, patch: UserPatch) -> UserRecord:
        async with self._lock:
            current = self._users.get(user_id) or UserRecord(user_id=user_id)
            updated = current.model_copy(update=patch.scalar_fields())
            self._users[user_id] = updated
            return updated.model_copy(deep=True)

    async def add_goal(self, user_id: str, goal: Goal) -> bool:
        async with self._lock:
            user = self._users.setdefault(user_id, UserRecord(user_id=user_id))
            if any(g.goal_id == goal.goal_id for g in user.goals):
                return False
            user.goals.append(goal)
            return True

    # ------------------------------------------------------------------
    async def record_transaction(self, transaction: Transaction) -> bool:
        async with self._lock:
            if transaction.transaction_id in self._transactions:
                return False
            self._transactions[transaction.transaction_id] = transaction
            self._by_user[transaction.user_id].append(transaction.transaction_id)
            profile = self._profiles.get(transaction.user_id) or FinancialProfile(
                user_id=transaction.user_id
            )
            self._profiles[transaction.user_id] = profile.model_copy(
                update={"balance": profile.balance + transaction.balance_delta}
            )
            return True

    async def list_transactions(
        self, user_id: str, since: Optional[date] = None
    ) -> list[Transaction]:
        items = [self._transactions[tid] for tid in self._by_user.get(user_id, [])]
        if since is not None:
            items = [t for t in items if t.date >= since]
        return sorted(items, key=lambda t: t.date)

    # ------------------------------------------------------------------
    async def append_message(
        self,
        chat_id: str,
        user_id: str,
        message: ConversationMessage,
        title: Optional[str] = None,
    ) -> bool:
        async with self._lock:
            conversation = self._conversations.get(chat_id)
            if conversation is None:
                conversation = Conversation(
                    chat_id=chat_id, user_id=user_id, title=title or "New Chat"
                )
                self._conversations[chat_id] = conversation
            elif conversation.user_id != user_id:
                raise ConversationOwnershipError(chat_id, user_id)
            if any(m.message_id == message.message_id for m in conversation.messages):
                return False
            conversation.messages.append(message.model_copy(deep=True))
            return True

    async def get_conversation(self, chat_id: str) -> Conversation | None:
        conversation = self._conversations.get(chat_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        summaries = [
            ConversationSummary(
                chat_id=c.chat_id,
                title=c.title,
                message_count=len(c.messages),
                updated_at=c.messages[-1].timestamp if c.messages else c.created_at,
            )
            for c in self._conversations.values()
            if c.user_id == user_id
        ]
        return sorted(summaries, key=lambda s: s.updated_at or utcnow(), reverse=True)
