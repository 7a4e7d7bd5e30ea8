"""Markdown advisory report built from an :class:`AnalysisSnapshot`.

Every figure in the report is taken from the snapshot. The model is only
asked for the executive-summary prose, and :meth:`ReportComposer.render`
falls back to a templated summary when that prose is missing or quotes a
figure that is not on the fact sheet.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence

from ..contracts import AgentReply
from ..finance.analysis import AnalysisSnapshot
from ..finance.completeness import CompletenessReport
from ..utils.formatting import percent, rupees
from .llm import LanguageModel, strip_fences
from .prompts import SUMMARY_PROMPT, SUMMARY_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

# Volatility score above which income is treated as a concern.
VOLATILITY_CONCERN = 5
# DTI above which the repayment plan is spelled out.
HIGH_DTI = 40
TAX_SWITCH_THRESHOLD = 5_000
LIFE_GAP_THRESHOLD = 100_000

_NUMBER = re.compile(r"\d[\d,]*(?:\.\d+)?")

_TITLES = {
    "tax": "Tax",
    "investment": "Investment",
    "retirement": "Retirement",
    "schemes": "Government Schemes",
    "transaction": "Transactions",
}


class ReportComposer:
    def __init__(self, llm: Optional[LanguageModel] = None) -> None:
        self._llm = llm

    # ------------------------------------------------------------------
    @staticmethod
    def facts(snapshot: AnalysisSnapshot) -> str:
        """Plain-text fact sheet the summary prompt is restricted to."""
        lines = [
            f"Monthly income: {rupees(snapshot.income.monthly)} ({snapshot.income.source})",
            f"Monthly expenses: {rupees(snapshot.expenses.monthly)}",
            f"Savings rate: {percent(snapshot.savings.rate)} ({snapshot.savings.status})",
            (
                f"Emergency fund: {rupees(snapshot.emergency_fund.current)} of "
                f"{rupees(snapshot.emergency_fund.recommended)} recommended "
                f"({snapshot.emergency_fund.status})"
            ),
            f"Debt-to-income: {percent(snapshot.debt.dti_ratio)} ({snapshot.debt.status})",
            (
                f"Recommended tax regime: {snapshot.tax.recommendation} "
                f"(saves {rupees(snapshot.tax.savings)} a year)"
            ),
            f"Life cover gap: {rupees(snapshot.insurance.life.gap)}",
            f"Health cover gap: {rupees(snapshot.insurance.health.gap)}",
            (
                f"Income volatility: {snapshot.volatility.score}/10 "
                f"({snapshot.volatility.classification})"
            ),
        ]
        if snapshot.retirement is not None:
            lines.append(
                f"Retirement SIP needed: {rupees(snapshot.retirement.monthly_sip)} a month"
            )
        return "\n".join(lines)

    async def narrate(self, snapshot: AnalysisSnapshot, message: str) -> Optional[str]:
        """Ask the model for the executive summary; ``None`` without a model."""
        if self._llm is None:
            return None
        text = await self._llm.complete(
            SUMMARY_PROMPT.format(text=message, facts=self.facts(snapshot)),
            system_prompt=SUMMARY_SYSTEM_PROMPT,
        )
        text = strip_fences(text or "")
        return text or None

    @classmethod
    def ungrounded_numbers(cls, text: str, snapshot: AnalysisSnapshot) -> List[str]:
        """Numbers in ``text`` that do not appear in the fact sheet."""
        allowed = {_number_value(token) for token in _NUMBER.findall(cls.facts(snapshot))}
        return [token for token in _NUMBER.findall(text) if _number_value(token) not in allowed]

    async def compose(
        self,
        snapshot: AnalysisSnapshot,
        agent_results: Mapping[str, AgentReply],
        completeness: CompletenessReport,
        unavailable: Sequence[str] = (),
        clarifications: Sequence[str] = (),
        message: str = "",
    ) -> str:
        try:
            summary = await self.narrate(snapshot, message)
        except Exception as exc:
            logger.warning(f"Summary narration failed, using template: {exc!r}")
            summary = None
        return self.render(
            snapshot, agent_results, completeness, unavailable, clarifications, summary=summary
        )

    # ------------------------------------------------------------------
    def render(
        self,
        snapshot: AnalysisSnapshot,
        agent_results: Mapping[str, AgentReply],
        completeness: CompletenessReport,
        unavailable: Sequence[str] = (),
        clarifications: Sequence[str] = (),
        summary: Optional[str] = None,
    ) -> str:
        if summary:
            invented = self.ungrounded_numbers(summary, snapshot)
            if invented:
                logger.warning(f"Discarding summary with figures not in the facts: {invented}")
                summary = None
        sections = [
            "# Personal Finance Report",
            "## Executive Summary\n\n" + (summary or self._fallback_summary(snapshot)),
            self._income(snapshot),
            self._emergency_fund(snapshot),
            self._savings(snapshot),
            self._tax(snapshot),
            self._debt(snapshot),
            self._insurance(snapshot),
        ]
        if snapshot.retirement is not None and snapshot.retirement.years_to_retire > 0:
            sections.append(self._retirement(snapshot))
        sections.append(self._priorities(snapshot))
        sections.append(self._completeness(completeness, snapshot))
        if agent_results:
            sections.append(self._advice(agent_results))
        if clarifications:
            sections.append(
                "## Follow-up Questions\n\n" + "\n".join(f"- {q}" for q in clarifications)
            )
        if unavailable:
            sections.append(
                "## Unavailable Agents\n\n"
                + "\n".join(
                    f"- agent {name} unavailable, advice from it is not included"
                    for name in unavailable
                )
            )
        return "\n\n".join(sections) + "\n"

    @staticmethod
    def _fallback_summary(s: AnalysisSnapshot) -> str:
        return (
            f"You save {percent(s.savings.rate)} of your income ({s.savings.status}). "
            f"Your emergency fund is {s.emergency_fund.status} and your debt load is "
            f"{s.debt.status}."
        )

    @staticmethod
    def _income(s: AnalysisSnapshot) -> str:
        lines = [
            "## Income Analysis",
            f"Monthly Income: {rupees(s.income.monthly)}",
            f"Volatility Score: {s.volatility.score}/10 ({s.volatility.classification})",
            f"Coefficient of Variation: {percent(s.volatility.coefficient)}",
        ]
        if s.volatility.score > VOLATILITY_CONCERN:
            lines.append(
                f"CONCERN: Your income shows {s.volatility.classification} volatility. "
                "Build a larger emergency fund (6+ months) to handle lean months."
            )
        else:
            lines.append("POSITIVE: Your income is stable with low volatility.")
        return "\n\n".join(lines)

    @staticmethod
    def _emergency_fund(s: AnalysisSnapshot) -> str:
        ef = s.emergency_fund
        lines = [
            "## Emergency Fund Health",
            f"Current Fund: {rupees(ef.current)}",
            f"Recommended: {rupees(ef.recommended)} ({ef.recommended_months} months)",
            f"Shortfall: {rupees(ef.gap)}",
            f"Coverage: {ef.coverage_months:.1f} months",
            ef.reasoning,
        ]
        if ef.status == "insufficient":
            lines.append(
                "ACTION REQUIRED:\n\n"
                f"- Monthly Savings Needed: {rupees(ef.gap / 12)} for 12 months\n"
                "- Where to Keep: high-yield savings account or liquid funds"
            )
        else:
            lines.append("Excellent! Your emergency fund is adequate for your expense profile.")
        return "\n\n".join(lines)

    @staticmethod
    def _savings(s: AnalysisSnapshot) -> str:
        lines = [
            "## Monthly Expenses",
            f"Total Monthly Expenses: {rupees(s.expenses.monthly)}",
            f"Savings Amount: {rupees(s.savings.monthly_savings)}",
            f"Savings Rate: {percent(s.savings.rate)} ({s.savings.status})",
        ]
        if s.savings.status in ("poor", "fair"):
            lines.append(f"IMPROVEMENT NEEDED: {s.savings.recommendation}")
        else:
            lines.append(s.savings.recommendation)
        return "\n\n".join(lines)

    @staticmethod
    def _tax(s: AnalysisSnapshot) -> str:
        return "\n\n".join(
            [
                "## Tax Optimization",
                f"Estimated Annual Income: {rupees(s.income.annual)}",
                f"Recommended Regime: {s.tax.recommendation.upper()} Tax Regime",
                f"Potential Tax Savings: {rupees(s.tax.savings)}",
                f"New Regime Tax: {rupees(s.tax.new_regime.total_tax)}",
                f"Old Regime Tax: {rupees(s.tax.old_regime.total_tax)}",
            ]
        )

    @staticmethod
    def _debt(s: AnalysisSnapshot) -> str:
        d = s.debt
        lines = [
            "## Debt Health",
            f"Total Outstanding Debt: {rupees(d.total_debt)}",
            f"Monthly EMI: {rupees(d.total_emi)}",
            f"Debt-to-Income Ratio: {percent(d.dti_ratio)}",
            f"Status: {d.status.upper()}",
        ]
        if d.dti_ratio > HIGH_DTI:
            lines.append(f"HIGH DEBT ALERT! {d.recommendation}")
            if d.highest_interest_debt is not None:
                top = d.highest_interest_debt
                lines.append(
                    "Repayment order (highest interest first):\n\n"
                    + "\n".join(
                        f"{i}. {item.type} at {item.interest_rate:g}% "
                        f"({rupees(item.outstanding_amount)} outstanding)"
                        for i, item in enumerate(d.repayment_order, 1)
                    )
                )
                lines.append(f"Focus extra payments on the {top.type} first.")
        elif d.total_debt > 0:
            lines.append(f"Your debt levels are {d.status}. Continue disciplined repayment.")
        else:
            lines.append("Excellent! You are debt-free.")
        return "\n\n".join(lines)

    @staticmethod
    def _insurance(s: AnalysisSnapshot) -> str:
        life, health = s.insurance.life, s.insurance.health
        lines = [
            "## Insurance Coverage",
            "### Life Insurance",
            f"Current Coverage: {rupees(life.current)}",
            f"Recommended Coverage: {rupees(life.recommended)}",
            f"Gap: {rupees(life.gap)}",
            "### Health Insurance",
            f"Current Coverage: {rupees(health.current)}",
            f"Recommended Coverage: {rupees(health.recommended)}",
            f"Gap: {rupees(health.gap)}",
        ]
        advice = []
        if life.gap > 0:
            advice.append(f"- Life Insurance: get a term plan for {rupees(life.gap)}")
        if health.gap > 0:
            advice.append(
                f"- Health Insurance: increase coverage by {rupees(health.gap)} "
                "with a family floater or top-up plan"
            )
        lines.append(
            "Insurance Recommendations:\n\n" + "\n".join(advice)
            if advice
            else "Your insurance coverage is adequate!"
        )
        return "\n\n".join(lines)

    @staticmethod
    def _retirement(s: AnalysisSnapshot) -> str:
        r = s.retirement
        return "\n\n".join(
            [
                "## Retirement Planning",
                f"Years to Retirement: {r.years_to_retire}",
                f"Corpus Needed: {rupees(r.corpus_needed)}",
                f"Required Monthly SIP: {rupees(r.monthly_sip)}",
                f"Monthly Expense at Retirement: {rupees(r.future_monthly_expense)}",
            ]
        )

    @staticmethod
    def _priorities(s: AnalysisSnapshot) -> str:
        items: List[str] = []
        if s.emergency_fund.status == "insufficient":
            items.append(
                f"URGENT: Build emergency fund - save {rupees(s.emergency_fund.gap / 12)}/month"
            )
        else:
            items.append("Maintain emergency fund")
        if s.debt.dti_ratio > HIGH_DTI:
            target = s.debt.highest_interest_debt.type if s.debt.highest_interest_debt else "highest interest debt"
            items.append(f"HIGH PRIORITY: Reduce debt burden - focus on {target}")
        elif s.debt.total_debt > 0:
            items.append("Continue debt repayment as planned")
        else:
            items.append("Start investing surplus")
        if s.tax.savings > TAX_SWITCH_THRESHOLD:
            items.append(
                f"SAVE TAX: Use the {s.tax.recommendation} regime - save {rupees(s.tax.savings)}/year"
            )
        else:
            items.append("Current tax regime choice makes little difference")
        if s.insurance.life.gap > LIFE_GAP_THRESHOLD:
            items.append(f"PROTECT: Get term life insurance for {rupees(s.insurance.life.gap)}")
        else:
            items.append("Life insurance coverage adequate")
        if s.retirement is not None and s.retirement.monthly_sip > 0:
            items.append(
                f"INVEST: Start retirement SIP of {rupees(s.retirement.monthly_sip)}/month"
            )
        else:
            items.append("Review and optimize existing investments")
        return "## Priority Action Items\n\n" + "\n".join(
            f"{i}. {item}" for i, item in enumerate(items, 1)
        )

    @staticmethod
    def _completeness(report: CompletenessReport, s: AnalysisSnapshot) -> str:
        note = (
            "Your financial profile is comprehensive!"
            if report.score >= 80
            else "Share more financial details in future chats for more personalized advice."
        )
        section = f"## Profile Completeness: {report.score}%\n\n{note}"
        estimated = [name.replace("_", " ") for name, ok in s.available if not ok]
        if estimated:
            section += "\n\nEstimated from default assumptions: " + ", ".join(estimated) + "."
        return section

    @staticmethod
    def _advice(agent_results: Mapping[str, AgentReply]) -> str:
        parts: List[str] = ["## Detailed Expert Advice"]
        for name, reply in agent_results.items():
            parts.append(f"### {_TITLES.get(name, name.replace('_', ' ').title())} Agent")
            parts.append(reply.response.strip())
            if reply.sources:
                parts.append("Sources: " + ", ".join(reply.sources))
        return "\n\n".join(parts)


def _number_value(token: str) -> float:
    return float(token.replace(",", ""))


def split_outcomes(
    outcomes: Mapping[str, object],
) -> tuple[Dict[str, AgentReply], List[str], List[str]]:
    """Partition invocation outcomes into replies, unavailable names and clarifications."""
    replies: Dict[str, AgentReply] = {}
    unavailable: List[str] = []
    clarifications: List[str] = []
    for name, outcome in outcomes.items():
        if isinstance(outcome, AgentReply):
            replies[name] = outcome
            continue
        clarification = getattr(outcome, "clarification", None)
        if clarification:
            clarifications.append(clarification)
        else:
            unavailable.append(name)
    return replies, unavailable, clarifications
