"""Deterministic financial analysis."""

from .analysis import AnalysisSnapshot, CashflowSummary, analyze, summarize_cashflow
from .completeness import CompletenessReport, ProfileField, evaluate

__all__ = [
    "AnalysisSnapshot",
    "CashflowSummary",
    "CompletenessReport",
    "ProfileField",
    "analyze",
    "evaluate",
    "summarize_cashflow",
]
