"""Knowledge-grounded specialist advisors (tax, investment, retirement, schemes)."""

from __future__ import annotations

import json
import logging
from typing import List

from ..contracts import AgentFailure, AgentKind, AgentReply, AgentRequest
from .base import SubAgent
from .knowledge import KnowledgeDocument, KnowledgeSource
from .llm import LanguageModel, strip_fences
from .prompts import (
    ADVISOR_PROMPT,
    INVESTMENT_ROLE,
    RETIREMENT_ROLE,
    SCHEMES_ROLE,
    TAX_ROLE,
)

logger = logging.getLogger(__name__)


def _format_context(documents: List[KnowledgeDocument]) -> str:
    if not documents:
        return "(no reference material found)"
    return "\n\n".join(f"[{doc.id}] {doc.title}\n{doc.text.strip()}" for doc in documents)


class KnowledgeAdvisor(SubAgent):
    """Retrieves reference snippets for the question and asks the model to answer."""

    def __init__(
        self,
        name: str,
        kind: AgentKind,
        collection: str,
        llm: LanguageModel,
        knowledge: KnowledgeSource,
        role: str,
        top_k: int = 3,
    ) -> None:
        self.name = name
        self.kind = kind
        self.collection = collection
        self.role = role
        self.top_k = top_k
        self._llm = llm
        self._knowledge = knowledge

    async def run(self, request: AgentRequest) -> AgentReply | AgentFailure:
        documents = await self._knowledge.search(self.collection, request.message, self.top_k)
        prompt = ADVISOR_PROMPT.format(
            context=_format_context(documents),
            profile=json.dumps(request.profile, default=str),
            question=request.message,
            role=self.role,
        )
        text = strip_fences(await self._llm.complete(prompt))
        if not text:
            logger.warning(f"{self.name} returned an empty answer")
            return AgentFailure(agent=self.name, error="empty response from model")
        return AgentReply(
            agent=self.name,
            response=text,
            sources=[doc.id for doc in documents],
        )


def build_advisors(llm: LanguageModel, knowledge: KnowledgeSource) -> List[KnowledgeAdvisor]:
    return [
        KnowledgeAdvisor("tax", AgentKind.TAX_ITR, "tax", llm, knowledge, TAX_ROLE),
        KnowledgeAdvisor(
            "investment", AgentKind.INVESTMENT_PLANNING, "investment", llm, knowledge, INVESTMENT_ROLE
        ),
        KnowledgeAdvisor(
            "retirement", AgentKind.RETIREMENT_PENSION, "retirement", llm, knowledge, RETIREMENT_ROLE
        ),
        KnowledgeAdvisor(
            "schemes", AgentKind.GOVERNMENT_SCHEMES, "schemes", llm, knowledge, SCHEMES_ROLE
        ),
    ]
