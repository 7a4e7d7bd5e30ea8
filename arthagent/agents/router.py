"""Intent router: picks the specialist agents for a message."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..contracts import AgentKind, RouteDecision
from .llm import LanguageModel, complete_json
from .prompts import ROUTER_PROMPT, ROUTER_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

_KINDS = {kind.value for kind in AgentKind}


def validate_route(raw: Any) -> RouteDecision:
    """Coerce classifier output into a :class:`RouteDecision`.

    Unknown agent names are dropped, duplicates collapsed and the confidence
    clamped to ``[0, 1]``. Anything that is not a JSON object routes nowhere.
    """
    if not isinstance(raw, dict):
        return RouteDecision()

    agents: list[AgentKind] = []
    unknown = []
    values = raw.get("agents") or []
    if isinstance(values, str):
        values = [values]
    for value in values if isinstance(values, list) else []:
        name = str(value).strip().lower()
        if name in _KINDS:
            kind = AgentKind(name)
            if kind not in agents:
                agents.append(kind)
        else:
            unknown.append(value)
    if unknown:
        logger.warning(f"Router returned unknown agents, dropped: {unknown}")

    try:
        confidence = float(raw.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    if confidence != confidence:  # NaN
        confidence = 0.0
    confidence = min(max(confidence, 0.0), 1.0)

    intent = raw.get("intent")
    return RouteDecision(
        intent=str(intent) if intent else "general",
        agents=agents,
        confidence=confidence,
    )


class IntentRouter:
    """Classifier-backed router over the closed :class:`AgentKind` set."""

    def __init__(self, llm: LanguageModel) -> None:
        self._llm = llm

    async def route(self, message: str, context: Optional[dict] = None) -> RouteDecision:
        prompt = ROUTER_PROMPT.format(
            text=message, context=json.dumps(context or {}, default=str)
        )
        raw = await complete_json(self._llm, prompt, system_prompt=ROUTER_SYSTEM_PROMPT)
        decision = validate_route(raw)
        logger.info(
            f"Routed message to {[a.value for a in decision.agents]} "
            f"(intent={decision.intent!r}, confidence={decision.confidence:.2f})"
        )
        return decision
