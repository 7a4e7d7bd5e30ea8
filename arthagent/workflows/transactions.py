"""Transaction-ingest pipeline: free text straight to the ledger."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..contracts import (
    AgentKind,
    AgentReply,
    AgentRequest,
    RunOutcome,
    RunStatus,
    TransactionInputReceived,
    WorkflowEvent,
)
from ..workflow import WorkflowContext

if TYPE_CHECKING:
    from ..services import Services


async def transaction_workflow(
    ctx: WorkflowContext, event: WorkflowEvent, services: "Services"
) -> RunOutcome:
    payload = event.payload(TransactionInputReceived)
    agent = services.registry.get(AgentKind.TRANSACTION_TRACKING)
    request = AgentRequest(
        message=payload.text,
        user_id=payload.user_id,
        message_id=payload.message_id,
        source=payload.source,
    )
    # Recording is the point of this run, so a failed invocation fails it.
    outcome = await ctx.invoke("invoke-transaction", agent, request, required=True)
    if isinstance(outcome, AgentReply):
        return RunOutcome(reply=outcome.response, agents=[outcome.agent], data=outcome.data)
    return RunOutcome(
        status=RunStatus.AWAITING_INPUT,
        reply=outcome.clarification or outcome.error,
        data={"error": outcome.error},
    )
