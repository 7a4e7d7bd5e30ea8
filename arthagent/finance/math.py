"""Deterministic personal-finance calculations.

Every function here is pure: inputs in, a frozen result model out. Constants
(tax slabs, cover multipliers, retirement assumptions) come from
:class:`~arthagent.config.FinanceConfig` so they can be changed through
configuration without touching the formulas.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from ..config import FinanceConfig, TaxRegimeConfig, TaxSlab
from ..models import EmploymentType, Liability, Transaction, TransactionType

_DEFAULTS = FinanceConfig()


class _Result(BaseModel):
    model_config = ConfigDict(frozen=True)


# ==================== TAX ====================


class TaxBreakdown(_Result):
    regime: Literal["new", "old"]
    taxable_income: float
    gross_tax: float
    rebate: float
    cess: float
    total_tax: float
    effective_rate: float


class TaxComparison(_Result):
    new_regime: TaxBreakdown
    old_regime: TaxBreakdown
    recommendation: Literal["new", "old"]
    savings: float


def slab_tax(income: float, slabs: Sequence[TaxSlab]) -> float:
    """Tax on ``income`` where each rate applies only inside its bracket."""
    tax = 0.0
    for slab in slabs:
        if income <= slab.lower:
            break
        upper = income if slab.upper is None else min(income, slab.upper)
        tax += (upper - slab.lower) * slab.rate
    return tax


def regime_tax(
    taxable_income: float, regime: TaxRegimeConfig, cess_rate: float = _DEFAULTS.cess_rate
) -> TaxBreakdown:
    taxable_income = max(taxable_income, 0.0)
    gross = slab_tax(taxable_income, regime.slabs)
    rebate = 0.0
    if taxable_income <= regime.rebate_threshold:
        rebate = gross if regime.rebate_cap is None else min(gross, regime.rebate_cap)
    cess = (gross - rebate) * cess_rate
    total = gross - rebate + cess
    effective = (total / taxable_income) * 100 if taxable_income > 0 else 0.0
    return TaxBreakdown(
        regime=regime.name,
        taxable_income=taxable_income,
        gross_tax=gross,
        rebate=rebate,
        cess=cess,
        total_tax=total,
        effective_rate=round(effective, 2),
    )


def compare_tax_regimes(
    gross_income: float,
    deductions: float = 0.0,
    config: Optional[FinanceConfig] = None,
) -> TaxComparison:
    """Compare both regimes for an annual ``gross_income``.

    The new regime only gets its standard deduction; the old regime gets
    ``deductions``. On equal totals the new regime is recommended.
    """
    config = config or _DEFAULTS
    new = regime_tax(
        gross_income - config.new_regime.standard_deduction, config.new_regime, config.cess_rate
    )
    old = regime_tax(gross_income - deductions, config.old_regime, config.cess_rate)
    recommendation = "new" if new.total_tax <= old.total_tax else "old"
    return TaxComparison(
        new_regime=new,
        old_regime=old,
        recommendation=recommendation,
        savings=abs(new.total_tax - old.total_tax),
    )


# ==================== EMERGENCY FUND ====================


class EmergencyFundTarget(_Result):
    months: int
    amount: float
    reasoning: str


_EMPLOYMENT_EXTRA_MONTHS = {
    EmploymentType.GIG: 3,
    EmploymentType.BUSINESS: 3,
    EmploymentType.RETIRED: 9,
}


def emergency_fund_target(
    monthly_expenses: float,
    employment_type: EmploymentType | str | None,
    dependents: int,
    has_health_insurance: bool,
) -> EmergencyFundTarget:
    employment = EmploymentType(employment_type) if employment_type else None
    months = 3
    months += _EMPLOYMENT_EXTRA_MONTHS.get(employment, 0)
    if dependents > 2:
        months += 1
    if not has_health_insurance:
        months += 2
    label = employment.value if employment else "unspecified"
    return EmergencyFundTarget(
        months=months,
        amount=monthly_expenses * months,
        reasoning=(
            f"Based on {label} employment, {dependents} dependents, and "
            f"{'with' if has_health_insurance else 'without'} health insurance."
        ),
    )


def emergency_fund_gap(target: float, current: float) -> float:
    return max(0.0, target - current)


# ==================== DEBT ====================


class DebtAnalysis(_Result):
    total_debt: float
    total_emi: float
    dti_ratio: float
    weighted_interest: float
    status: Literal["healthy", "moderate", "critical"]
    recommendation: str
    repayment_order: List[Liability]
    highest_interest_debt: Optional[Liability] = None


def analyze_debt(liabilities: Sequence[Liability], monthly_income: float) -> DebtAnalysis:
    total_debt = sum(item.outstanding_amount for item in liabilities)
    total_emi = sum(item.monthly_emi for item in liabilities)
    dti = (total_emi / monthly_income) * 100 if monthly_income > 0 else 0.0
    weighted = (
        sum(item.interest_rate * item.outstanding_amount for item in liabilities) / total_debt
        if total_debt > 0
        else 0.0
    )

    if dti < 30:
        status = "healthy"
        recommendation = "Your debt levels are manageable. Focus on building your emergency fund."
    elif dti < 50:
        status = "moderate"
        recommendation = "Consider consolidating debt and repay the highest-interest loan first."
    else:
        status = "critical"
        recommendation = "Your debt burden is very high. Stop new borrowing and seek professional counselling."

    # Avalanche: highest rate first.
    ordered = sorted(liabilities, key=lambda item: item.interest_rate, reverse=True)
    return DebtAnalysis(
        total_debt=total_debt,
        total_emi=total_emi,
        dti_ratio=round(dti, 2),
        weighted_interest=round(weighted, 2),
        status=status,
        recommendation=recommendation,
        repayment_order=ordered,
        highest_interest_debt=ordered[0] if ordered else None,
    )


# ==================== INSURANCE ====================


class InsuranceNeeds(_Result):
    life_cover: float
    health_cover: float
    years_to_retirement: int
    life_reasoning: str
    health_reasoning: str


def insurance_needs(
    age: int,
    annual_income: float,
    dependents: int,
    liabilities: float,
    config: Optional[FinanceConfig] = None,
) -> InsuranceNeeds:
    """Human-life-value life cover and an age-banded health cover."""
    config = config or _DEFAULTS
    years = max(config.retirement_age - age, 0)
    life = (
        annual_income * years * config.income_replacement_factor
        + liabilities
        + dependents * config.life_cover_per_dependent
    )

    if age > 60:
        health = 1_500_000
    elif age > 45:
        health = 1_000_000
    else:
        health = 500_000
    health += dependents * config.health_cover_per_dependent

    return InsuranceNeeds(
        life_cover=round(life),
        health_cover=health,
        years_to_retirement=years,
        life_reasoning=(
            f"Based on {years} years to retirement, current income, and {dependents} dependents."
        ),
        health_reasoning=f"Recommended for age {age} with {dependents} dependents.",
    )


def coverage_gap(recommended: float, current: float) -> float:
    return max(0.0, recommended - current)


# ==================== INCOME VOLATILITY ====================


class IncomeVolatility(_Result):
    score: int
    std_dev: float
    coefficient: float
    classification: Literal["stable", "moderate", "volatile"]
    months: int


def monthly_income_buckets(transactions: Iterable[Transaction]) -> dict[str, float]:
    """Total income per calendar month (``YYYY-MM``), oldest first."""
    buckets: dict[str, float] = defaultdict(float)
    for txn in transactions:
        if txn.type == TransactionType.INCOME:
            buckets[txn.date.strftime("%Y-%m")] += txn.amount
    return dict(sorted(buckets.items()))


def income_volatility(monthly_incomes: Sequence[float]) -> IncomeVolatility:
    """Score income stability on 0-10 from the coefficient of variation."""
    n = len(monthly_incomes)
    if n < 3:
        return IncomeVolatility(
            score=0, std_dev=0.0, coefficient=0.0, classification="stable", months=n
        )

    mean = sum(monthly_incomes) / n
    variance = sum((value - mean) ** 2 for value in monthly_incomes) / n
    std_dev = math.sqrt(variance)
    coefficient = (std_dev / mean) * 100 if mean > 0 else 0.0

    if coefficient < 10:
        score = 0
    elif coefficient < 20:
        score = 3
    elif coefficient < 30:
        score = 5
    elif coefficient < 40:
        score = 7
    else:
        score = 10

    if score < 4:
        classification = "stable"
    elif score < 7:
        classification = "moderate"
    else:
        classification = "volatile"

    return IncomeVolatility(
        score=score,
        std_dev=round(std_dev, 2),
        coefficient=round(coefficient, 2),
        classification=classification,
        months=n,
    )


# ==================== RETIREMENT ====================


class RetirementPlan(_Result):
    corpus_needed: float
    monthly_sip: float
    years_to_retire: int
    future_monthly_expense: float


def retirement_corpus(
    current_age: int,
    retirement_age: int,
    monthly_expenses_today: float,
    inflation_rate: float = _DEFAULTS.inflation_rate,
    return_rate: float = _DEFAULTS.return_rate,
    real_return_spread: float = _DEFAULTS.real_return_spread,
) -> RetirementPlan:
    """Corpus for inflation-adjusted expenses and the SIP that builds it.

    The SIP inverts the future value of an annuity due at ``return_rate / 12``
    over the months left to retirement.
    """
    years = max(retirement_age - current_age, 0)
    future_expense = monthly_expenses_today * (1 + inflation_rate) ** years
    corpus = (future_expense * 12) / (inflation_rate + real_return_spread)

    months = years * 12
    monthly_rate = return_rate / 12
    if months == 0:
        sip = 0.0
    elif monthly_rate == 0:
        sip = corpus / months
    else:
        growth = (1 + monthly_rate) ** months
        sip = corpus / (((growth - 1) / monthly_rate) * (1 + monthly_rate))

    return RetirementPlan(
        corpus_needed=round(corpus),
        monthly_sip=round(sip),
        years_to_retire=years,
        future_monthly_expense=round(future_expense, 2),
    )


# ==================== SAVINGS RATE ====================


class SavingsRate(_Result):
    rate: float
    monthly_savings: float
    status: Literal["excellent", "good", "fair", "poor"]
    recommendation: str


def savings_rate(monthly_income: float, monthly_expenses: float) -> SavingsRate:
    savings = monthly_income - monthly_expenses
    rate = (savings / monthly_income) * 100 if monthly_income > 0 else 0.0

    if rate >= 30:
        status = "excellent"
        recommendation = "Outstanding! Consider increasing equity investments for long-term growth."
    elif rate >= 20:
        status = "good"
        recommendation = "Great job! Trim discretionary spending to push your savings rate higher."
    elif rate >= 10:
        status = "fair"
        recommendation = "Room for improvement. Review expenses and identify areas to cut back."
    else:
        status = "poor"
        recommendation = "You are barely saving. Create a strict budget and reduce expenses."

    return SavingsRate(
        rate=round(rate, 2),
        monthly_savings=savings,
        status=status,
        recommendation=recommendation,
    )
