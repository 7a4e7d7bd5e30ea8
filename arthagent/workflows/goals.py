"""Goal-input pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..contracts import (
    AgentReply,
    AgentRequest,
    GoalInputReceived,
    RunOutcome,
    RunStatus,
    WorkflowEvent,
)
from ..workflow import WorkflowContext

if TYPE_CHECKING:
    from ..services import Services


async def goal_workflow(
    ctx: WorkflowContext, event: WorkflowEvent, services: "Services"
) -> RunOutcome:
    payload = event.payload(GoalInputReceived)
    await ctx.step("ensure-user", services.store.ensure_user, payload.user_id)
    request = AgentRequest(
        message=payload.text, user_id=payload.user_id, message_id=payload.message_id
    )
    outcome = await ctx.invoke("invoke-goal-setting", services.goal_agent, request, required=True)
    if isinstance(outcome, AgentReply):
        return RunOutcome(reply=outcome.response, agents=[outcome.agent], data=outcome.data)
    return RunOutcome(
        status=RunStatus.AWAITING_INPUT,
        reply=outcome.clarification or outcome.error,
        data={"error": outcome.error},
    )
