"""Chat pipeline: extract, gate, analyse, fan out to sub-agents, report."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional

from pydantic import BaseModel

from ..agents.extraction import ExtractionResult, ValidExtraction, extract_profile
from ..agents.report import split_outcomes
from ..constants import RECENT_TRANSACTION_MONTHS
from ..contracts import (
    AgentRequest,
    ChatMessageReceived,
    RouteDecision,
    RunOutcome,
    RunStatus,
    WorkflowEvent,
)
from ..finance import AnalysisSnapshot, CompletenessReport, analyze, evaluate
from ..models import (
    ConversationMessage,
    FinancialProfile,
    ProfilePatch,
    UserRecord,
)
from ..workflow import WorkflowContext

if TYPE_CHECKING:
    from ..services import Services

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50


class ChatContext(BaseModel):
    profile: FinancialProfile
    user: UserRecord


def clarification_text(report: CompletenessReport) -> str:
    lines = ["To give you accurate advice I need a few more details:", ""]
    lines += [f"{i}. {q}" for i, q in enumerate(report.clarifying_questions, 1)]
    return "\n".join(lines)


def router_context(context: ChatContext) -> dict:
    """Compact profile facts handed to the intent classifier."""
    profile = context.profile
    return {
        "age": context.user.age,
        "employmentType": profile.employment_type.value if profile.employment_type else None,
        "monthlyExpenses": profile.monthly_burn_rate or None,
        "hasLiabilities": bool(profile.liabilities),
        "goals": [goal.name for goal in context.user.goals],
    }


async def chat_workflow(
    ctx: WorkflowContext, event: WorkflowEvent, services: "Services"
) -> RunOutcome:
    payload = event.payload(ChatMessageReceived)
    store = services.store
    user_id = payload.user_id
    message_id = payload.message_id
    chat_id = payload.chat_id or message_id

    await ctx.step(
        "store-user-message",
        store.append_message,
        chat_id,
        user_id,
        ConversationMessage(message_id=message_id, sender="user", text=payload.text),
        title=payload.text[:TITLE_LENGTH],
    )

    async def load_context() -> ChatContext:
        return ChatContext(
            profile=await store.ensure_profile(user_id),
            user=await store.ensure_user(user_id),
        )

    context: ChatContext = await ctx.step("load-context", load_context, result_type=ChatContext)

    extraction = await ctx.step(
        "extract-profile",
        extract_profile,
        services.llm,
        payload.text,
        required=False,
        default=ValidExtraction(),
        result_type=ExtractionResult,
    )

    async def apply_patch() -> ChatContext:
        if not isinstance(extraction, ValidExtraction):
            logger.info(f"Extraction rejected for run {ctx.run_key}: {extraction.reason}")
            return context
        profile_patch, user_patch = extraction.data.to_patches()
        profile = context.profile
        user = context.user
        if not profile_patch.is_empty:
            profile = await store.patch_profile(user_id, profile_patch)
        if not user_patch.is_empty:
            user = await store.patch_user(user_id, user_patch)
        return ChatContext(profile=profile, user=user)

    context = await ctx.step("apply-profile-patch", apply_patch, result_type=ChatContext)

    completeness: CompletenessReport = await ctx.step(
        "check-completeness",
        evaluate,
        context.profile,
        context.user,
        result_type=CompletenessReport,
    )
    if completeness.has_critical_gaps:
        text = clarification_text(completeness)
        await ctx.step(
            "store-clarification",
            store.append_message,
            chat_id,
            user_id,
            ConversationMessage(message_id=f"{message_id}-response", sender="assistant", text=text),
        )
        return RunOutcome(
            status=RunStatus.AWAITING_INPUT,
            reply=text,
            data={
                "chatId": chat_id,
                "missingFields": [field.value for field in completeness.missing_fields],
            },
        )

    async def analyze_finances() -> AnalysisSnapshot:
        since = date.today() - timedelta(days=30 * RECENT_TRANSACTION_MONTHS)
        transactions = await store.list_transactions(user_id, since=since)
        return analyze(context.profile, context.user, transactions, services.config.finance)

    snapshot: AnalysisSnapshot = await ctx.step(
        "analyze-finances", analyze_finances, result_type=AnalysisSnapshot
    )

    async def persist_volatility() -> Optional[float]:
        if snapshot.volatility.months < 3:
            return None
        score = float(snapshot.volatility.score)
        await store.patch_profile(user_id, ProfilePatch(income_volatility_score=score))
        return score

    await ctx.step("persist-volatility", persist_volatility, required=False)

    decision: RouteDecision = await ctx.step(
        "route-intent",
        services.router.route,
        payload.text,
        router_context(context),
        required=False,
        default=RouteDecision(),
        result_type=RouteDecision,
    )

    request = AgentRequest(
        message=payload.text,
        profile=context.profile.model_dump(mode="json"),
        user_id=user_id,
        message_id=message_id,
    )
    resolved = services.registry.resolve(decision.agents)
    results = await ctx.gather(
        *(ctx.invoke(f"invoke-{kind.value}", agent, request) for kind, agent in resolved)
    )
    outcomes: Dict[str, object] = {agent.name: result for (_, agent), result in zip(resolved, results)}
    replies, unavailable, clarifications = split_outcomes(outcomes)
    for name in unavailable:
        logger.warning(f"Sub-agent {name} unavailable for run {ctx.run_key}")

    summary = await ctx.step(
        "narrate-summary",
        services.composer.narrate,
        snapshot,
        payload.text,
        required=False,
        default=None,
    )
    report: str = await ctx.step(
        "compose-report",
        services.composer.render,
        snapshot,
        replies,
        completeness,
        unavailable,
        clarifications,
        summary=summary,
    )

    agents: List[str] = list(replies)
    await ctx.step(
        "store-response",
        store.append_message,
        chat_id,
        user_id,
        ConversationMessage(
            message_id=f"{message_id}-response",
            sender="assistant",
            text=report,
            agents_involved=agents,
        ),
    )
    return RunOutcome(
        status=RunStatus.COMPLETED,
        reply=report,
        agents=agents,
        data={
            "chatId": chat_id,
            "intent": decision.intent,
            "unavailable": unavailable,
            "completeness": completeness.score,
        },
    )
