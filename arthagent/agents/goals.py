"""Goal setting from free text."""

from __future__ import annotations

import logging
from typing import Annotated, Any, List, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from ..contracts import AgentFailure, AgentReply, AgentRequest
from ..models import Goal
from ..store import DocumentStore
from ..utils.formatting import rupees
from .extraction import parse_amount
from .llm import LanguageModel, complete_json
from .prompts import GOAL_PROMPT, GOAL_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


def _priority(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("high", "medium", "low"):
        return value.strip().lower()
    return "medium"


class GoalDraft(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    target_amount: Annotated[float, BeforeValidator(parse_amount)] = Field(
        gt=0, alias="targetAmount"
    )
    time_horizon_months: int = Field(default=12, ge=1, alias="timeHorizonMonths")
    priority: Annotated[Literal["high", "medium", "low"], BeforeValidator(_priority)] = "medium"


class GoalAgent:
    """Parses a savings goal and appends it to the user record.

    Not routed by the chat classifier; the goal pipeline invokes it directly.
    """

    name = "goal_setting"

    def __init__(self, llm: LanguageModel, store: DocumentStore) -> None:
        self._llm = llm
        self._store = store

    async def run(self, request: AgentRequest) -> AgentReply | AgentFailure:
        raw = await complete_json(
            self._llm, GOAL_PROMPT.format(text=request.message), system_prompt=GOAL_SYSTEM_PROMPT
        )
        if not isinstance(raw, dict):
            return AgentFailure(
                agent=self.name,
                error="Could not parse goal",
                clarification="Please specify the goal name and target amount.",
            )

        missing: List[str] = [str(f) for f in raw.get("missingFields") or [] if f]
        if missing:
            return AgentFailure(
                agent=self.name,
                error="Missing information",
                clarification=(
                    "I need a bit more info to set this goal. "
                    f"Please specify: {', '.join(missing)}."
                ),
            )

        try:
            draft = GoalDraft.model_validate(raw.get("goal") or {})
        except ValidationError:
            return AgentFailure(
                agent=self.name,
                error="Could not parse goal",
                clarification="Please specify the goal name and target amount.",
            )

        goal = Goal(
            goal_id=f"goal_{request.message_id}" if request.message_id else f"goal_{draft.name}",
            name=draft.name,
            target_amount=draft.target_amount,
            time_horizon_months=draft.time_horizon_months,
            priority=draft.priority,
        )
        added = await self._store.add_goal(request.user_id, goal)
        if not added:
            logger.info(f"Goal {goal.goal_id} already stored for {request.user_id}")
        monthly = goal.target_amount / goal.time_horizon_months
        return AgentReply(
            agent=self.name,
            response=(
                f'Great! I\'ve set a goal for "{goal.name}" with a target of '
                f"{rupees(goal.target_amount)} in {goal.time_horizon_months} months. "
                f"That is about {rupees(monthly)} a month."
            ),
            data={"goal": goal.model_dump(mode="json"), "added": added},
        )
