from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import JSON, Column, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from ..models import utcnow


class UserRow(SQLModel, table=True):
    """Identity-level facts about a user."""

    __tablename__ = "users"

    user_id: str = Field(primary_key=True)
    email: Optional[str] = None
    age: Optional[int] = None
    risk_profile: Optional[str] = None
    occupation: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utcnow)


class GoalRow(SQLModel, table=True):
    __tablename__ = "goals"

    goal_id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    name: str
    target_amount: float
    time_horizon_months: int = 12
    priority: str = "medium"
    created_at: dt.datetime = Field(default_factory=utcnow)


class ProfileRow(SQLModel, table=True):
    """Financial profile with one column per patchable field."""

    __tablename__ = "financial_profiles"

    user_id: str = Field(primary_key=True)
    employment_type: Optional[str] = None
    monthly_burn_rate: float = 0.0
    monthly_income: Optional[float] = None
    dependents: Optional[int] = None
    emergency_fund: float = 0.0
    fixed_deposits: float = 0.0
    mutual_funds: float = 0.0
    stocks: float = 0.0
    gold: float = 0.0
    real_estate: float = 0.0
    life_insurance_cover: float = 0.0
    health_insurance_cover: float = 0.0
    monthly_premium: float = 0.0
    tax_regime: Optional[str] = None
    pan: Optional[str] = None
    is_gst_registered: bool = False
    presumptive_taxation: bool = False
    income_volatility_score: Optional[float] = None
    liabilities: list = Field(default_factory=list, sa_column=Column(JSON))
    balance: float = 0.0
    updated_at: dt.datetime = Field(default_factory=utcnow)


class TransactionRow(SQLModel, table=True):
    """Append-only ledger entry."""

    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_user_date", "user_id", "date"),)

    transaction_id: str = Field(primary_key=True)
    user_id: str
    type: str
    amount: float
    category: str = "uncategorized"
    frequency: str = "one-time"
    date: dt.date
    description: Optional[str] = None
    source: str = "text"
    created_at: dt.datetime = Field(default_factory=utcnow)


class ConversationRow(SQLModel, table=True):
    __tablename__ = "conversations"

    chat_id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    title: str = "New Chat"
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


class MessageRow(SQLModel, table=True):
    """One conversation message; ``id`` preserves append order."""

    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("chat_id", "message_id", name="uq_messages_chat_message"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    chat_id: str = Field(index=True)
    message_id: str
    sender: str
    text: str
    agents_involved: list = Field(default_factory=list, sa_column=Column(JSON))
    timestamp: dt.datetime = Field(default_factory=utcnow)
