"""Profile completeness gate.

Decides whether a profile carries enough facts for analysis and which
questions to ask when it does not.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..constants import MAX_CLARIFYING_QUESTIONS
from ..models import FinancialProfile, Transaction, TransactionType, UserRecord


class ProfileField(str, Enum):
    AGE = "age"
    MONTHLY_EXPENSES = "monthlyExpenses"
    EMPLOYMENT_TYPE = "employmentType"
    EMERGENCY_FUND = "emergencyFund"
    LIFE_INSURANCE = "lifeInsurance"
    HEALTH_INSURANCE = "healthInsurance"
    TAX_REGIME = "taxRegime"
    DEBTS = "debts"
    INVESTMENTS = "investments"


CRITICAL_FIELDS = (
    ProfileField.AGE,
    ProfileField.MONTHLY_EXPENSES,
    ProfileField.EMPLOYMENT_TYPE,
)

PRIORITY = (
    ProfileField.AGE,
    ProfileField.MONTHLY_EXPENSES,
    ProfileField.EMPLOYMENT_TYPE,
    ProfileField.EMERGENCY_FUND,
    ProfileField.LIFE_INSURANCE,
    ProfileField.HEALTH_INSURANCE,
)

QUESTIONS: Dict[ProfileField, str] = {
    ProfileField.AGE: "What is your age? (Needed for retirement planning and insurance sizing)",
    ProfileField.MONTHLY_EXPENSES: (
        "What are your average monthly expenses? (Needed for emergency fund and savings analysis)"
    ),
    ProfileField.EMPLOYMENT_TYPE: (
        "What is your employment type? Options: salaried, gig worker, business owner, "
        "student, or retired"
    ),
    ProfileField.EMERGENCY_FUND: "Do you have an emergency fund? If yes, how much?",
    ProfileField.LIFE_INSURANCE: "Do you have life insurance? If yes, what is the cover amount?",
    ProfileField.HEALTH_INSURANCE: "Do you have health insurance? If yes, what is the cover amount?",
    ProfileField.TAX_REGIME: "Which tax regime do you currently use? (new/old)",
    ProfileField.DEBTS: (
        "Do you have any loans or debts? (home loan, car loan, credit cards, personal loans)"
    ),
    ProfileField.INVESTMENTS: (
        "Do you have any investments? (mutual funds, stocks, fixed deposits, PPF, etc.)"
    ),
}


class CompletenessReport(BaseModel):
    has_critical_gaps: bool
    missing_fields: List[ProfileField] = Field(default_factory=list)
    clarifying_questions: List[str] = Field(default_factory=list)
    score: int = 0


class AvailableAnalyses(BaseModel):
    tax: bool = False
    emergency_fund: bool = False
    debt: bool = False
    insurance: bool = False
    retirement: bool = False
    savings: bool = False
    volatility: bool = False


def _has_age(user: Optional[UserRecord]) -> bool:
    return bool(user is not None and user.age)


def detect_missing_fields(
    profile: FinancialProfile, user: Optional[UserRecord]
) -> List[ProfileField]:
    """All nine tracked fields that are absent or zero, in detection order."""
    missing = []
    if not _has_age(user):
        missing.append(ProfileField.AGE)
    if not profile.monthly_burn_rate:
        missing.append(ProfileField.MONTHLY_EXPENSES)
    if profile.employment_type is None:
        missing.append(ProfileField.EMPLOYMENT_TYPE)
    if not profile.assets.emergency_fund:
        missing.append(ProfileField.EMERGENCY_FUND)
    if not profile.insurance.life_insurance_cover:
        missing.append(ProfileField.LIFE_INSURANCE)
    if not profile.insurance.health_insurance_cover:
        missing.append(ProfileField.HEALTH_INSURANCE)
    if not profile.tax_details.regime:
        missing.append(ProfileField.TAX_REGIME)
    if not profile.liabilities:
        missing.append(ProfileField.DEBTS)
    if not profile.assets.investments:
        missing.append(ProfileField.INVESTMENTS)
    return missing


def prioritize(
    missing: Sequence[ProfileField], limit: int = MAX_CLARIFYING_QUESTIONS
) -> List[ProfileField]:
    """Order ``missing`` by the fixed priority list, then detection order."""
    ordered = [field for field in PRIORITY if field in missing]
    ordered += [field for field in missing if field not in ordered]
    return ordered[:limit]


def completeness_score(profile: FinancialProfile, user: Optional[UserRecord]) -> int:
    """Percentage of the twelve tracked facts that are present."""
    checks = [
        _has_age(user),
        profile.monthly_burn_rate > 0,
        profile.employment_type is not None,
        profile.assets.emergency_fund > 0,
        profile.insurance.life_insurance_cover > 0,
        profile.insurance.health_insurance_cover > 0,
        bool(profile.tax_details.regime),
        bool(profile.liabilities),
        profile.assets.investments > 0,
        bool(profile.tax_details.pan),
        profile.income_volatility_score is not None,
        profile.assets.real_estate > 0,
    ]
    return round(sum(checks) / len(checks) * 100)


def evaluate(profile: FinancialProfile, user: Optional[UserRecord]) -> CompletenessReport:
    missing = detect_missing_fields(profile, user)
    critical = [field for field in CRITICAL_FIELDS if field in missing]
    return CompletenessReport(
        has_critical_gaps=bool(critical),
        missing_fields=critical,
        clarifying_questions=[QUESTIONS[field] for field in prioritize(missing)],
        score=completeness_score(profile, user),
    )


def available_analyses(
    profile: FinancialProfile,
    user: Optional[UserRecord],
    transactions: Sequence[Transaction],
) -> AvailableAnalyses:
    """Which analyses are backed by real data rather than defaults."""
    has_age = _has_age(user)
    has_expenses = profile.monthly_burn_rate > 0
    has_income = any(t.type == TransactionType.INCOME for t in transactions) or bool(
        profile.monthly_income
    )
    has_employment = profile.employment_type is not None
    return AvailableAnalyses(
        tax=has_income,
        emergency_fund=has_expenses and has_employment,
        debt=has_income and bool(profile.liabilities),
        insurance=has_age and has_income,
        retirement=has_age and has_expenses,
        savings=has_income and has_expenses,
        volatility=any(t.type == TransactionType.INCOME for t in transactions),
    )
