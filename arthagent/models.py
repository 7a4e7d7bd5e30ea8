"""Domain models for profiles, transactions and conversations."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmploymentType(str, Enum):
    SALARIED = "salaried"
    GIG = "gig"
    BUSINESS = "business"
    STUDENT = "student"
    RETIRED = "retired"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    SAVINGS = "savings"


LiabilityType = Literal["home_loan", "car_loan", "personal_loan", "credit_card", "other"]


class Assets(BaseModel):
    emergency_fund: float = 0.0
    fixed_deposits: float = 0.0
    mutual_funds: float = 0.0
    stocks: float = 0.0
    gold: float = 0.0
    real_estate: float = 0.0

    @property
    def investments(self) -> float:
        return self.fixed_deposits + self.mutual_funds + self.stocks


class Liability(BaseModel):
    type: LiabilityType = "other"
    outstanding_amount: float = Field(default=0.0, ge=0)
    interest_rate: float = Field(default=0.0, ge=0)
    monthly_emi: float = Field(default=0.0, ge=0)


class Insurance(BaseModel):
    life_insurance_cover: float = 0.0
    health_insurance_cover: float = 0.0
    monthly_premium: float = 0.0


class TaxDetails(BaseModel):
    regime: Optional[Literal["new", "old"]] = None
    pan: Optional[str] = None
    is_gst_registered: bool = False
    presumptive_taxation: bool = False


class FinancialProfile(BaseModel):
    """Per-user mutable aggregate of financial facts.

    Only ever changed through field-scoped patches so that concurrent writers
    touching different fields do not clobber each other.
    """

    user_id: str
    employment_type: Optional[EmploymentType] = None
    monthly_burn_rate: float = 0.0
    monthly_income: Optional[float] = None
    dependents: Optional[int] = None
    assets: Assets = Field(default_factory=Assets)
    liabilities: List[Liability] = Field(default_factory=list)
    insurance: Insurance = Field(default_factory=Insurance)
    tax_details: TaxDetails = Field(default_factory=TaxDetails)
    income_volatility_score: Optional[float] = None
    balance: float = 0.0
    updated_at: datetime = Field(default_factory=utcnow)


class Goal(BaseModel):
    goal_id: str
    name: str
    target_amount: float = Field(gt=0)
    time_horizon_months: int = Field(default=12, ge=1)
    priority: Literal["high", "medium", "low"] = "medium"
    created_at: datetime = Field(default_factory=utcnow)


class UserRecord(BaseModel):
    user_id: str
    email: Optional[str] = None
    age: Optional[int] = None
    risk_profile: Optional[Literal["conservative", "moderate", "aggressive"]] = None
    occupation: Optional[str] = None
    goals: List[Goal] = Field(default_factory=list)


class Transaction(BaseModel):
    """Immutable ledger entry."""

    model_config = {"frozen": True}

    transaction_id: str
    user_id: str
    type: TransactionType
    amount: float = Field(gt=0)
    category: str = "uncategorized"
    frequency: Literal["monthly", "yearly", "one-time"] = "one-time"
    date: date
    description: Optional[str] = None
    source: str = "text"

    @property
    def balance_delta(self) -> float:
        if self.type == TransactionType.INCOME:
            return self.amount
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return 0.0


class ConversationMessage(BaseModel):
    message_id: str
    sender: Literal["user", "assistant"]
    text: str
    agents_involved: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    chat_id: str
    user_id: str
    title: str = "New Chat"
    messages: List[ConversationMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class ConversationSummary(BaseModel):
    chat_id: str
    title: str
    message_count: int = 0
    updated_at: Optional[datetime] = None


# Flat patch field -> location on FinancialProfile. The flat names double as
# column names in the SQL store.
PROFILE_FIELD_PATHS = {
    "employment_type": ("employment_type",),
    "monthly_burn_rate": ("monthly_burn_rate",),
    "monthly_income": ("monthly_income",),
    "dependents": ("dependents",),
    "emergency_fund": ("assets", "emergency_fund"),
    "fixed_deposits": ("assets", "fixed_deposits"),
    "mutual_funds": ("assets", "mutual_funds"),
    "stocks": ("assets", "stocks"),
    "gold": ("assets", "gold"),
    "real_estate": ("assets", "real_estate"),
    "life_insurance_cover": ("insurance", "life_insurance_cover"),
    "health_insurance_cover": ("insurance", "health_insurance_cover"),
    "monthly_premium": ("insurance", "monthly_premium"),
    "tax_regime": ("tax_details", "regime"),
    "pan": ("tax_details", "pan"),
    "is_gst_registered": ("tax_details", "is_gst_registered"),
    "presumptive_taxation": ("tax_details", "presumptive_taxation"),
    "income_volatility_score": ("income_volatility_score",),
}


class ProfilePatch(BaseModel):
    """Field-scoped update to a FinancialProfile.

    ``None`` means "leave as is". The liabilities of each type in a patch
    replace the stored ones of that type and new types are appended, so
    re-applying a patch is a no-op.
    """

    employment_type: Optional[EmploymentType] = None
    monthly_burn_rate: Optional[float] = Field(default=None, ge=0)
    monthly_income: Optional[float] = Field(default=None, ge=0)
    dependents: Optional[int] = Field(default=None, ge=0)
    emergency_fund: Optional[float] = Field(default=None, ge=0)
    fixed_deposits: Optional[float] = Field(default=None, ge=0)
    mutual_funds: Optional[float] = Field(default=None, ge=0)
    stocks: Optional[float] = Field(default=None, ge=0)
    gold: Optional[float] = Field(default=None, ge=0)
    real_estate: Optional[float] = Field(default=None, ge=0)
    life_insurance_cover: Optional[float] = Field(default=None, ge=0)
    health_insurance_cover: Optional[float] = Field(default=None, ge=0)
    monthly_premium: Optional[float] = Field(default=None, ge=0)
    tax_regime: Optional[Literal["new", "old"]] = None
    pan: Optional[str] = None
    is_gst_registered: Optional[bool] = None
    presumptive_taxation: Optional[bool] = None
    income_volatility_score: Optional[float] = None
    liabilities: List[Liability] = Field(default_factory=list)

    def scalar_fields(self) -> dict:
        """Set scalar fields keyed by their flat name."""
        return self.model_dump(mode="json", exclude_none=True, exclude={"liabilities"})

    @property
    def is_empty(self) -> bool:
        return not self.scalar_fields() and not self.liabilities


class UserPatch(BaseModel):
    age: Optional[int] = Field(default=None, ge=0, le=120)
    email: Optional[str] = None
    occupation: Optional[str] = None
    risk_profile: Optional[Literal["conservative", "moderate", "aggressive"]] = None

    def scalar_fields(self) -> dict:
        return self.model_dump(exclude_none=True)

    @property
    def is_empty(self) -> bool:
        return not self.scalar_fields()


def merge_liabilities(current: List[Liability], incoming: List[Liability]) -> List[Liability]:
    """Merge liabilities stated in one message into the stored list.

    The incoming entries of a type are the full set of that type: they take
    the place of every stored entry of the same type, keeping each one (two
    credit cards stay two cards). Types not mentioned are kept as stored and
    new types are appended.
    """
    by_type: Dict[str, List[Liability]] = {}
    for liability in incoming:
        by_type.setdefault(liability.type, []).append(liability)

    merged: List[Liability] = []
    placed = set()
    for existing in current:
        if existing.type not in by_type:
            merged.append(existing)
        elif existing.type not in placed:
            merged.extend(by_type[existing.type])
            placed.add(existing.type)
    for kind, items in by_type.items():
        if kind not in placed:
            merged.extend(items)
    return merged


def apply_profile_patch(profile: FinancialProfile, patch: ProfilePatch) -> FinancialProfile:
    """Return a copy of ``profile`` with ``patch`` applied."""
    data = profile.model_dump()
    for name, value in patch.scalar_fields().items():
        *parents, leaf = PROFILE_FIELD_PATHS[name]
        target = data
        for parent in parents:
            target = target[parent]
        target[leaf] = value
    if patch.liabilities:
        data["liabilities"] = [
            item.model_dump()
            for item in merge_liabilities(profile.liabilities, patch.liabilities)
        ]
    data["updated_at"] = utcnow()
    return FinancialProfile.model_validate(data)
