# File: site_auditor/analysis/__init__.py
"""site_auditor.analysis: Аспекты страницы, проверка ссылок и итоговая оценка."""

from .facets import DocumentFacts, analyze_document
from .links import LinkCheckResult, LinkHealthChecker
from .scoring import Issue, ScoreResult, score_facts

__all__ = [
    "DocumentFacts",
    "Issue",
    "LinkCheckResult",
    "LinkHealthChecker",
    "ScoreResult",
    "analyze_document",
    "score_facts",
]
