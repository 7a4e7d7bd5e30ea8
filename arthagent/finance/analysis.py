"""Financial analysis engine combining profile facts with the math library."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date
from typing import Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..config import FinanceConfig
from ..models import (
    EmploymentType,
    FinancialProfile,
    Transaction,
    TransactionType,
    UserRecord,
)
from .completeness import AvailableAnalyses, available_analyses
from .math import (
    DebtAnalysis,
    IncomeVolatility,
    RetirementPlan,
    SavingsRate,
    TaxComparison,
    analyze_debt,
    compare_tax_regimes,
    coverage_gap,
    emergency_fund_gap,
    emergency_fund_target,
    income_volatility,
    insurance_needs,
    monthly_income_buckets,
    retirement_corpus,
    savings_rate,
)

logger = logging.getLogger(__name__)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class IncomeSummary(_Frozen):
    monthly: float
    annual: float
    source: Literal["transactions", "declared", "default"]


class ExpenseSummary(_Frozen):
    monthly: float
    annual: float
    source: Literal["profile", "default"]


class EmergencyFundStatus(_Frozen):
    current: float
    recommended: float
    recommended_months: int
    coverage_months: float
    gap: float
    status: Literal["adequate", "insufficient"]
    reasoning: str


class CoverStatus(_Frozen):
    current: float
    recommended: float
    gap: float


class InsuranceStatus(_Frozen):
    life: CoverStatus
    health: CoverStatus


class AnalysisSnapshot(_Frozen):
    """Everything the report needs, computed afresh for each run."""

    age: int
    employment_type: Optional[EmploymentType] = None
    dependents: int
    income: IncomeSummary
    expenses: ExpenseSummary
    savings: SavingsRate
    emergency_fund: EmergencyFundStatus
    insurance: InsuranceStatus
    debt: DebtAnalysis
    tax: TaxComparison
    retirement: Optional[RetirementPlan] = None
    volatility: IncomeVolatility
    available: AvailableAnalyses = Field(default_factory=AvailableAnalyses)


def analyze(
    profile: FinancialProfile,
    user: Optional[UserRecord],
    transactions: Sequence[Transaction],
    config: Optional[FinanceConfig] = None,
) -> AnalysisSnapshot:
    """Build an :class:`AnalysisSnapshot` without touching ``profile``.

    Monthly income is the mean of the monthly income buckets found in
    ``transactions``; without income transactions the profile's declared
    income is used, then ``config.default_monthly_income``.
    """
    config = config or FinanceConfig()
    age = user.age if user is not None and user.age else config.default_age
    dependents = profile.dependents if profile.dependents is not None else config.default_dependents

    buckets = monthly_income_buckets(transactions)
    if buckets:
        monthly_income = sum(buckets.values()) / len(buckets)
        income_source = "transactions"
    elif profile.monthly_income:
        monthly_income = profile.monthly_income
        income_source = "declared"
    else:
        monthly_income = config.default_monthly_income
        income_source = "default"

    if profile.monthly_burn_rate > 0:
        monthly_expenses = profile.monthly_burn_rate
        expense_source = "profile"
    else:
        monthly_expenses = config.default_monthly_expenses
        expense_source = "default"

    volatility = income_volatility(list(buckets.values()))

    has_health = profile.insurance.health_insurance_cover > 0
    ef_target = emergency_fund_target(
        monthly_expenses, profile.employment_type, dependents, has_health
    )
    ef_current = profile.assets.emergency_fund
    ef_gap = emergency_fund_gap(ef_target.amount, ef_current)
    emergency = EmergencyFundStatus(
        current=ef_current,
        recommended=ef_target.amount,
        recommended_months=ef_target.months,
        coverage_months=round(ef_current / monthly_expenses, 2) if monthly_expenses > 0 else 0.0,
        gap=ef_gap,
        status="adequate" if ef_gap == 0 else "insufficient",
        reasoning=ef_target.reasoning,
    )

    annual_income = monthly_income * 12
    tax = compare_tax_regimes(annual_income, config.default_deductions, config)
    debt = analyze_debt(profile.liabilities, monthly_income)

    needs = insurance_needs(age, annual_income, dependents, debt.total_debt, config)
    insurance = InsuranceStatus(
        life=CoverStatus(
            current=profile.insurance.life_insurance_cover,
            recommended=needs.life_cover,
            gap=coverage_gap(needs.life_cover, profile.insurance.life_insurance_cover),
        ),
        health=CoverStatus(
            current=profile.insurance.health_insurance_cover,
            recommended=needs.health_cover,
            gap=coverage_gap(needs.health_cover, profile.insurance.health_insurance_cover),
        ),
    )

    retirement = None
    if age < config.retirement_age:
        retirement = retirement_corpus(
            age,
            config.retirement_age,
            monthly_expenses,
            inflation_rate=config.inflation_rate,
            return_rate=config.return_rate,
            real_return_spread=config.real_return_spread,
        )

    logger.debug(
        f"Analysis for {profile.user_id}: income {monthly_income:.0f} ({income_source}), "
        f"expenses {monthly_expenses:.0f} ({expense_source})"
    )
    return AnalysisSnapshot(
        age=age,
        employment_type=profile.employment_type,
        dependents=dependents,
        income=IncomeSummary(monthly=monthly_income, annual=annual_income, source=income_source),
        expenses=ExpenseSummary(
            monthly=monthly_expenses, annual=monthly_expenses * 12, source=expense_source
        ),
        savings=savings_rate(monthly_income, monthly_expenses),
        emergency_fund=emergency,
        insurance=insurance,
        debt=debt,
        tax=tax,
        retirement=retirement,
        volatility=volatility,
        available=available_analyses(profile, user, transactions),
    )


class MonthlyCashflow(BaseModel):
    month: str
    income: float = 0.0
    expenses: float = 0.0
    savings: float = 0.0

    @property
    def net(self) -> float:
        return self.income - self.expenses


class CashflowSummary(BaseModel):
    months: List[MonthlyCashflow] = Field(default_factory=list)
    total_income: float = 0.0
    total_expenses: float = 0.0
    total_savings: float = 0.0
    savings_rate: float = 0.0
    top_expense_categories: Dict[str, float] = Field(default_factory=dict)


def summarize_cashflow(
    transactions: Sequence[Transaction], since: Optional[date] = None
) -> CashflowSummary:
    """Monthly income, expense and savings totals from the ledger."""
    by_month: Dict[str, MonthlyCashflow] = {}
    categories: Counter = Counter()
    totals: Dict[TransactionType, float] = defaultdict(float)

    for txn in transactions:
        if since is not None and txn.date < since:
            continue
        key = txn.date.strftime("%Y-%m")
        bucket = by_month.setdefault(key, MonthlyCashflow(month=key))
        if txn.type == TransactionType.INCOME:
            bucket.income += txn.amount
        elif txn.type == TransactionType.EXPENSE:
            bucket.expenses += txn.amount
            categories[txn.category] += txn.amount
        else:
            bucket.savings += txn.amount
        totals[txn.type] += txn.amount

    income = totals[TransactionType.INCOME]
    expenses = totals[TransactionType.EXPENSE]
    return CashflowSummary(
        months=[by_month[k] for k in sorted(by_month)],
        total_income=income,
        total_expenses=expenses,
        total_savings=totals[TransactionType.SAVINGS],
        savings_rate=round((income - expenses) / income * 100, 2) if income > 0 else 0.0,
        top_expense_categories=dict(categories.most_common(3)),
    )
