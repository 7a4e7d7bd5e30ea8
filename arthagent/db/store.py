"""SQL-backed document store built on SQLModel and SQLAlchemy's async engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Optional

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from ..errors import ConversationOwnershipError
from ..models import (
    PROFILE_FIELD_PATHS,
    Conversation,
    ConversationMessage,
    ConversationSummary,
    FinancialProfile,
    Goal,
    Liability,
    ProfilePatch,
    Transaction,
    UserPatch,
    UserRecord,
    merge_liabilities,
    utcnow,
)
from ..store.repository import DocumentStore
from .models import (
    ConversationRow,
    GoalRow,
    MessageRow,
    ProfileRow,
    TransactionRow,
    UserRow,
)

logger = logging.getLogger(__name__)


def _profile_from_row(row: ProfileRow) -> FinancialProfile:
    data: dict[str, Any] = {"user_id": row.user_id}
    for column, path in PROFILE_FIELD_PATHS.items():
        target = data
        for parent in path[:-1]:
            target = target.setdefault(parent, {})
        target[path[-1]] = getattr(row, column)
    data["liabilities"] = row.liabilities or []
    data["balance"] = row.balance
    data["updated_at"] = row.updated_at
    return FinancialProfile.model_validate(data)


def _transaction_from_row(row: TransactionRow) -> Transaction:
    return Transaction(
        transaction_id=row.transaction_id,
        user_id=row.user_id,
        type=row.type,
        amount=row.amount,
        category=row.category,
        frequency=row.frequency,
        date=row.date,
        description=row.description,
        source=row.source,
    )


class SQLDocumentStore(DocumentStore):
    """Document store on SQLite (aiosqlite) or PostgreSQL (asyncpg)."""

    def __init__(self, database_url: str) -> None:
        connect_args = (
            {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        )
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )

    async def init(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    def _insert_ignore(self, model: type[SQLModel], **values: Any):
        """``INSERT ... ON CONFLICT DO NOTHING`` for the active dialect."""
        dialect = postgresql if self.engine.dialect.name == "postgresql" else sqlite
        return dialect.insert(model).values(**values).on_conflict_do_nothing()

    async def _ensure_profile_row(self, session: AsyncSession, user_id: str) -> None:
        await session.execute(
            self._insert_ignore(ProfileRow, user_id=user_id, liabilities=[], updated_at=utcnow())
        )

    async def _ensure_user_row(
        self, session: AsyncSession, user_id: str, email: Optional[str] = None
    ) -> None:
        await session.execute(
            self._insert_ignore(UserRow, user_id=user_id, email=email, created_at=utcnow())
        )

    # ------------------------------------------------------------------
    # Profiles
    async def get_profile(self, user_id: str) -> FinancialProfile | None:
        async with self.session() as session:
            row = await session.get(ProfileRow, user_id)
            return _profile_from_row(row) if row else None

    async def ensure_profile(self, user_id: str) -> FinancialProfile:
        async with self.session() as session:
            async with session.begin():
                await self._ensure_profile_row(session, user_id)
        return await self.get_profile(user_id)

    async def patch_profile(self, user_id: str, patch: ProfilePatch) -> FinancialProfile:
        values = patch.scalar_fields()
        async with self.session() as session:
            async with session.begin():
                await self._ensure_profile_row(session, user_id)
                if patch.liabilities:
                    row = await session.get(ProfileRow, user_id, with_for_update=True)
                    current = [Liability.model_validate(item) for item in row.liabilities or []]
                    values["liabilities"] = [
                        item.model_dump() for item in merge_liabilities(current, patch.liabilities)
                    ]
                values["updated_at"] = utcnow()
                await session.execute(
                    update(ProfileRow).where(ProfileRow.user_id == user_id).values(**values)
                )
        logger.debug(f"Patched profile {user_id}: {sorted(values)}")
        return await self.get_profile(user_id)

    # ------------------------------------------------------------------
    # Users and goals
    async def get_user(self, user_id: str) -> UserRecord | None:
        async with self.session() as session:
            row = await session.get(UserRow, user_id)
            if row is None:
                return None
            goals = (
                await session.execute(
                    select(GoalRow).where(GoalRow.user_id == user_id).order_by(GoalRow.created_at)
                )
            ).scalars().all()
        return UserRecord(
            user_id=row.user_id,
            email=row.email,
            age=row.age,
            risk_profile=row.risk_profile,
            occupation=row.occupation,
            goals=[
                Goal(
                    goal_id=g.goal_id,
                    name=g.name,
                    target_amount=g.target_amount,
                    time_horizon_months=g.time_horizon_months,
                    priority=g.priority,
                    created_at=g.created_at,
                )
                for g in goals
            ],
        )

    async def ensure_user(self, user_id: str, email: Optional[str] = None) -> UserRecord:
        async with self.session() as session:
            async with session.begin():
                await self._ensure_user_row(session, user_id, email)
        return await self.get_user(user_id)

    async def patch_user(self, user_id: str, patch: UserPatch) -> UserRecord:
        values = patch.scalar_fields()
        async with self.session() as session:
            async with session.begin():
                await self._ensure_user_row(session, user_id)
                if values:
                    await session.execute(
                        update(UserRow).where(UserRow.user_id == user_id).values(**values)
                    )
        return await self.get_user(user_id)

    async def add_goal(self, user_id: str, goal: Goal) -> bool:
        async with self.session() as session:
            async with session.begin():
                await self._ensure_user_row(session, user_id)
                result = await session.execute(
                    self._insert_ignore(
                        GoalRow,
                        goal_id=goal.goal_id,
                        user_id=user_id,
                        name=goal.name,
                        target_amount=goal.target_amount,
                        time_horizon_months=goal.time_horizon_months,
                        priority=goal.priority,
                        created_at=goal.created_at,
                    )
                )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Transactions
    async def record_transaction(self, transaction: Transaction) -> bool:
        async with self.session() as session:
            async with session.begin():
                await self._ensure_profile_row(session, transaction.user_id)
                result = await session.execute(
                    self._insert_ignore(
                        TransactionRow,
                        transaction_id=transaction.transaction_id,
                        user_id=transaction.user_id,
                        type=transaction.type.value,
                        amount=transaction.amount,
                        category=transaction.category,
                        frequency=transaction.frequency,
                        date=transaction.date,
                        description=transaction.description,
                        source=transaction.source,
                        created_at=utcnow(),
                    )
                )
                inserted = result.rowcount > 0
                if inserted and transaction.balance_delta:
                    await session.execute(
                        update(ProfileRow)
                        .where(ProfileRow.user_id == transaction.user_id)
                        .values(balance=ProfileRow.balance + transaction.balance_delta)
                    )
        if not inserted:
            logger.info(f"Transaction {transaction.transaction_id} already recorded")
        return inserted

    async def list_transactions(
        self, user_id: str, since: Optional[date] = None
    ) -> list[Transaction]:
        query = select(TransactionRow).where(TransactionRow.user_id == user_id)
        if since is not None:
            query = query.where(TransactionRow.date >= since)
        query = query.order_by(TransactionRow.date, TransactionRow.created_at)
        async with self.session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [_transaction_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Conversations
    async def append_message(
        self,
        chat_id: str,
        user_id: str,
        message: ConversationMessage,
        title: Optional[str] = None,
    ) -> bool:
        async with self.session() as session:
            async with session.begin():
                await session.execute(
                    self._insert_ignore(
                        ConversationRow,
                        chat_id=chat_id,
                        user_id=user_id,
                        title=title or "New Chat",
                        created_at=utcnow(),
                        updated_at=utcnow(),
                    )
                )
                owner = await session.scalar(
                    select(ConversationRow.user_id).where(ConversationRow.chat_id == chat_id)
                )
                if owner != user_id:
                    raise ConversationOwnershipError(chat_id, user_id)
                result = await session.execute(
                    self._insert_ignore(
                        MessageRow,
                        chat_id=chat_id,
                        message_id=message.message_id,
                        sender=message.sender,
                        text=message.text,
                        agents_involved=list(message.agents_involved),
                        timestamp=message.timestamp,
                    )
                )
                inserted = result.rowcount > 0
                if inserted:
                    await session.execute(
                        update(ConversationRow)
                        .where(ConversationRow.chat_id == chat_id)
                        .values(updated_at=utcnow())
                    )
        return inserted

    async def get_conversation(self, chat_id: str) -> Conversation | None:
        async with self.session() as session:
            row = await session.get(ConversationRow, chat_id)
            if row is None:
                return None
            messages = (
                await session.execute(
                    select(MessageRow).where(MessageRow.chat_id == chat_id).order_by(MessageRow.id)
                )
            ).scalars().all()
        return Conversation(
            chat_id=row.chat_id,
            user_id=row.user_id,
            title=row.title,
            created_at=row.created_at,
            messages=[
                ConversationMessage(
                    message_id=m.message_id,
                    sender=m.sender,
                    text=m.text,
                    agents_involved=m.agents_involved or [],
                    timestamp=m.timestamp,
                )
                for m in messages
            ],
        )

    async def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        counts = (
            select(MessageRow.chat_id, func.count(MessageRow.id).label("n"))
            .group_by(MessageRow.chat_id)
            .subquery()
        )
        query = (
            select(ConversationRow, counts.c.n)
            .outerjoin(counts, counts.c.chat_id == ConversationRow.chat_id)
            .where(ConversationRow.user_id == user_id)
            .order_by(ConversationRow.updated_at.desc())
        )
        async with self.session() as session:
            rows = (await session.execute(query)).all()
        return [
            ConversationSummary(
                chat_id=conv.chat_id,
                title=conv.title,
                message_count=n or 0,
                updated_at=conv.updated_at,
            )
            for conv, n in rows
        ]
