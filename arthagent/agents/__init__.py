"""LLM-facing components: extraction, routing, sub-agents and the report."""

from .advisors import KnowledgeAdvisor, build_advisors
from .base import AgentRegistry, SubAgent
from .extraction import ExtractionResult, RejectedExtraction, ValidExtraction, extract_profile
from .goals import GoalAgent
from .knowledge import KnowledgeDocument, KnowledgeSource, StaticKnowledgeBase
from .llm import LanguageModel, PydanticAIModel
from .report import ReportComposer, split_outcomes
from .router import IntentRouter, validate_route
from .transactions import TransactionAgent

__all__ = [
    "AgentRegistry",
    "ExtractionResult",
    "GoalAgent",
    "IntentRouter",
    "KnowledgeAdvisor",
    "KnowledgeDocument",
    "KnowledgeSource",
    "LanguageModel",
    "PydanticAIModel",
    "RejectedExtraction",
    "ReportComposer",
    "StaticKnowledgeBase",
    "SubAgent",
    "TransactionAgent",
    "ValidExtraction",
    "build_advisors",
    "extract_profile",
    "split_outcomes",
]
