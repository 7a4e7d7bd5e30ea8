"""Tests for the analysis engine and cashflow summary."""

from datetime import date

import pytest

from arthagent.config import FinanceConfig
from arthagent.finance import analyze, summarize_cashflow
from arthagent.models import (
    Assets,
    EmploymentType,
    FinancialProfile,
    Insurance,
    Liability,
    Transaction,
    TransactionType,
    UserRecord,
)


def _income(i, amount, day):
    return Transaction(
        transaction_id=f"inc{i}", user_id="u1", type=TransactionType.INCOME, amount=amount, date=day
    )


def _expense(i, amount, day, category="food"):
    return Transaction(
        transaction_id=f"exp{i}",
        user_id="u1",
        type=TransactionType.EXPENSE,
        amount=amount,
        category=category,
        date=day,
    )


@pytest.fixture
def gig_profile():
    return FinancialProfile(
        user_id="u1",
        employment_type=EmploymentType.GIG,
        monthly_burn_rate=40_000,
        dependents=1,
        assets=Assets(emergency_fund=100_000, mutual_funds=50_000),
    )


def test_analysis_uses_transaction_income_and_profile_expenses(gig_profile):
    transactions = [
        _income(1, 20_000, date(2026, 1, 10)),
        _income(2, 80_000, date(2026, 2, 10)),
        _income(3, 50_000, date(2026, 3, 10)),
    ]
    snapshot = analyze(gig_profile, UserRecord(user_id="u1", age=30), transactions)

    assert snapshot.income.source == "transactions"
    assert snapshot.income.monthly == pytest.approx(50_000)
    assert snapshot.income.annual == pytest.approx(600_000)
    assert snapshot.expenses.source == "profile"
    assert snapshot.expenses.monthly == 40_000
    assert snapshot.volatility.score == 10
    assert snapshot.volatility.classification == "volatile"

    ef = snapshot.emergency_fund
    assert ef.recommended_months == 8
    assert ef.recommended == 320_000
    assert ef.gap == 220_000
    assert ef.coverage_months == 2.5
    assert ef.status == "insufficient"
    assert snapshot.available.emergency_fund
    assert snapshot.available.volatility
    assert not snapshot.available.debt


def test_analysis_does_not_mutate_profile(gig_profile):
    before = gig_profile.model_dump()
    analyze(gig_profile, UserRecord(user_id="u1", age=30), [_income(1, 1, date(2026, 1, 1))])
    assert gig_profile.model_dump() == before
    assert gig_profile.income_volatility_score is None


def test_analysis_defaults_when_facts_are_missing():
    snapshot = analyze(FinancialProfile(user_id="u1"), None, [])
    config = FinanceConfig()
    assert snapshot.age == config.default_age
    assert snapshot.dependents == config.default_dependents
    assert snapshot.income.source == "default"
    assert snapshot.income.monthly == config.default_monthly_income
    assert snapshot.expenses.source == "default"
    assert snapshot.expenses.monthly == config.default_monthly_expenses
    assert not any(flag for _, flag in snapshot.available)


def test_analysis_prefers_declared_income_over_default():
    profile = FinancialProfile(user_id="u1", monthly_income=90_000, monthly_burn_rate=30_000)
    snapshot = analyze(profile, UserRecord(user_id="u1", age=40), [])
    assert snapshot.income.source == "declared"
    assert snapshot.income.monthly == 90_000
    assert snapshot.savings.rate == pytest.approx(66.67, abs=0.01)


def test_no_retirement_plan_at_or_past_retirement_age():
    profile = FinancialProfile(user_id="u1", monthly_burn_rate=20_000)
    snapshot = analyze(profile, UserRecord(user_id="u1", age=62), [])
    assert snapshot.retirement is None
    assert snapshot.insurance.health.recommended == 1_500_000 + 2 * 300_000


def test_analysis_insurance_and_debt():
    profile = FinancialProfile(
        user_id="u1",
        employment_type=EmploymentType.SALARIED,
        monthly_burn_rate=30_000,
        monthly_income=100_000,
        dependents=0,
        liabilities=[
            Liability(type="home_loan", outstanding_amount=2_000_000, interest_rate=8, monthly_emi=20_000)
        ],
        insurance=Insurance(life_insurance_cover=5_000_000, health_insurance_cover=500_000),
    )
    snapshot = analyze(profile, UserRecord(user_id="u1", age=40), [])

    assert snapshot.debt.dti_ratio == 20
    assert snapshot.debt.status == "healthy"
    # 1.2M income x 20 years x 0.7 + 2M outstanding
    assert snapshot.insurance.life.recommended == 18_800_000
    assert snapshot.insurance.life.gap == 13_800_000
    assert snapshot.insurance.health.gap == 0
    assert snapshot.emergency_fund.recommended_months == 3


def test_summarize_cashflow_by_month():
    transactions = [
        _income(1, 60_000, date(2026, 4, 1)),
        _expense(1, 5_000, date(2026, 4, 3), "food"),
        _expense(2, 20_000, date(2026, 4, 5), "rent"),
        _income(2, 60_000, date(2026, 5, 1)),
        _expense(3, 20_000, date(2026, 5, 5), "rent"),
        _expense(4, 1_000, date(2025, 1, 5), "travel"),
        Transaction(
            transaction_id="sav1",
            user_id="u1",
            type=TransactionType.SAVINGS,
            amount=10_000,
            date=date(2026, 5, 10),
        ),
    ]
    summary = summarize_cashflow(transactions, since=date(2026, 1, 1))

    assert [m.month for m in summary.months] == ["2026-04", "2026-05"]
    assert summary.months[0].net == 35_000
    assert summary.total_income == 120_000
    assert summary.total_expenses == 45_000
    assert summary.total_savings == 10_000
    assert summary.savings_rate == 62.5
    assert list(summary.top_expense_categories) == ["rent", "food"]


def test_summarize_cashflow_empty():
    summary = summarize_cashflow([])
    assert summary.months == []
    assert summary.savings_rate == 0
