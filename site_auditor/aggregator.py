# File: site_auditor/aggregator.py
"""site_auditor.aggregator: Сборка итогового отчёта анализа страницы."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from site_auditor.analysis.facets import (
    ContentFacts,
    DocumentFacts,
    FormsFacts,
    LinkProfileFacts,
    MobileFacts,
    PerformanceFacts,
    SecurityFacts,
    SocialFacts,
    TechnicalSEOFacts,
)
from site_auditor.analysis.links import LinkCheckResult
from site_auditor.analysis.scoring import Issue, ScoreResult, score_facts
from site_auditor.parser.technologies import Technology

__all__ = ["AnalysisReport", "build_report"]


@dataclass(slots=True)
class AnalysisReport:
    """Результат анализа одной страницы: все аспекты, ссылки, оценка и проблемы."""

    url: str
    technical: TechnicalSEOFacts
    content: ContentFacts
    links: LinkProfileFacts
    social: SocialFacts
    mobile: MobileFacts
    performance: PerformanceFacts
    security: SecurityFacts
    forms: FormsFacts
    score: int
    issues: Tuple[Issue, ...] = ()
    recommendations: Tuple[str, ...] = ()
    link_results: Tuple[LinkCheckResult, ...] = ()
    technologies: Tuple[Technology, ...] = ()
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    fetched_via: Optional[str] = None

    @property
    def broken_links(self) -> Tuple[LinkCheckResult, ...]:
        return tuple(r for r in self.link_results if not r.reachable)

    def to_dict(self) -> Dict[str, Any]:
        """Словарь, пригодный для JSON (дата в ISO 8601)."""
        data = asdict(self)
        data["analyzed_at"] = self.analyzed_at.isoformat()
        data["security"]["score"] = self.security.score
        return data

    def json(self, *, pretty: bool = False) -> str:
        """Возвращает JSON-представление отчёта."""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2 if pretty else None)


def build_report(
    facts: DocumentFacts,
    link_results: Sequence[LinkCheckResult] = (),
    *,
    score: Optional[ScoreResult] = None,
    fetched_via: Optional[str] = None,
    analyzed_at: Optional[datetime] = None,
) -> AnalysisReport:
    """Собирает AnalysisReport из фактов страницы и результатов проверки ссылок."""
    result = score or score_facts(facts, link_results)
    return AnalysisReport(
        url=facts.url,
        technical=facts.technical,
        content=facts.content,
        links=facts.links,
        social=facts.social,
        mobile=facts.mobile,
        performance=facts.performance,
        security=facts.security,
        forms=facts.forms,
        score=result.score,
        issues=result.issues,
        recommendations=result.recommendations,
        link_results=tuple(link_results),
        technologies=facts.technologies,
        analyzed_at=analyzed_at or datetime.now(timezone.utc),
        fetched_via=fetched_via,
    )
