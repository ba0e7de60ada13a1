# File: site_auditor/analysis/scoring.py
"""site_auditor.analysis.scoring: Оценка страницы и список проблем.

Оценка начинается со 100 и уменьшается на фиксированный вес каждого
нарушенного правила. Серьёзность проблемы выводится из фактически
применённого вычета, поэтому оценка и список проблем всегда согласованы.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from site_auditor.analysis.facets import DocumentFacts
from site_auditor.analysis.links import LinkCheckResult

__all__ = ["BEST_PRACTICES", "RULES", "Issue", "Rule", "ScoreResult", "score_facts"]

BEST_PRACTICES: Tuple[str, ...] = (
    "Keep page titles unique and descriptive across the site.",
    "Compress and correctly size images before publishing them.",
    "Submit an up-to-date XML sitemap to search engines.",
    "Monitor Core Web Vitals with real-user measurements.",
)


@dataclass(frozen=True, slots=True)
class Issue:
    id: str
    type: str  # critical | warning | info
    category: str
    title: str
    description: str
    impact: str  # high | medium | low
    solution: str
    priority: int
    deduction: float


@dataclass(frozen=True, slots=True)
class ScoreResult:
    score: int
    issues: Tuple[Issue, ...]
    recommendations: Tuple[str, ...]

    def count(self, issue_type: str) -> int:
        return sum(1 for issue in self.issues if issue.type == issue_type)


@dataclass(frozen=True, slots=True)
class Rule:
    """Правило: *measure* возвращает вычет (0, если правило не нарушено) и описание."""

    id: str
    category: str
    title: str
    solution: str
    measure: Callable[[DocumentFacts, Sequence[LinkCheckResult]], Tuple[float, str]]


def _capped(count: int, each: float, cap: float) -> float:
    return min(count * each, cap)


def _title_missing(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.technical.has_title:
        return 0, ""
    return 15, "The page has no <title> element."


def _title_length(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    t = f.technical
    if not t.has_title or t.title_optimal:
        return 0, ""
    return 8, f"The title is {t.title_length} characters long (30-60 recommended)."


def _meta_missing(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.technical.has_meta_description:
        return 0, ""
    return 15, "The page has no meta description."


def _meta_length(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    t = f.technical
    if not t.has_meta_description or t.meta_description_optimal:
        return 0, ""
    return 8, (
        f"The meta description is {t.meta_description_length} characters long "
        "(120-160 recommended)."
    )


def _h1_missing(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.content.h1_count:
        return 0, ""
    return 15, "The page has no H1 heading."


def _h1_multiple(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.content.h1_count <= 1:
        return 0, ""
    return 10, f"The page has {f.content.h1_count} H1 headings instead of one."


def _images_alt(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    missing = f.content.images_without_alt
    if not missing:
        return 0, ""
    return _capped(missing, 2, 20), f"{missing} image(s) have no alt text."


def _thin_content(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if not f.content.thin_content:
        return 0, ""
    return 10, f"The page contains only {f.content.word_count} words (300 minimum)."


def _no_https(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.technical.https:
        return 0, ""
    return 10, "The page is served over plain HTTP."


def _mixed_content(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if not f.security.mixed_content:
        return 0, ""
    count = len(f.security.insecure_resources)
    return 10, f"The HTTPS page loads {count} resource(s) over plain HTTP."


def _security_headers(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    # plain HTTP pages already pay for no-https
    missing = f.security.missing_critical_headers
    if not f.security.https or not missing:
        return 0, ""
    return _capped(len(missing), 1, 4), f"Missing security headers: {', '.join(missing)}."


def _no_canonical(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.technical.has_canonical:
        return 0, ""
    return 5, "No canonical URL is declared."


def _no_viewport(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.mobile.has_viewport:
        return 0, ""
    return 7, "No viewport meta tag; the page is not optimized for mobile."


def _no_open_graph(f: DocumentFacts, _: Sequence[LinkCheckResult]) -> Tuple[float, str]:
    if f.social.has_open_graph:
        return 0, ""
    return 3, "No Open Graph tags for social sharing."


def _broken(kind: str, each: float, cap: float):
    def measure(_: DocumentFacts, links: Sequence[LinkCheckResult]) -> Tuple[float, str]:
        broken = sum(1 for r in links if r.kind == kind and not r.reachable)
        if not broken:
            return 0, ""
        return _capped(broken, each, cap), f"{broken} {kind} link(s) are broken."

    return measure


RULES: Tuple[Rule, ...] = (
    Rule("title-missing", "technical", "Missing page title",
         "Add a unique, descriptive <title> of 30-60 characters.", _title_missing),
    Rule("title-length", "technical", "Sub-optimal title length",
         "Rewrite the title to 30-60 characters.", _title_length),
    Rule("meta-description-missing", "technical", "Missing meta description",
         "Add a meta description of 120-160 characters.", _meta_missing),
    Rule("meta-description-length", "technical", "Sub-optimal meta description length",
         "Rewrite the meta description to 120-160 characters.", _meta_length),
    Rule("h1-missing", "content", "Missing H1 heading",
         "Add exactly one H1 heading describing the page.", _h1_missing),
    Rule("h1-multiple", "content", "Multiple H1 headings",
         "Keep a single H1 and demote the others to H2.", _h1_multiple),
    Rule("images-alt", "content", "Images without alt text",
         "Add descriptive alt text to every image.", _images_alt),
    Rule("thin-content", "content", "Thin content",
         "Expand the page to at least 300 words of useful content.", _thin_content),
    Rule("no-https", "security", "HTTPS not enabled",
         "Serve the site over HTTPS with a valid TLS certificate.", _no_https),
    Rule("mixed-content", "security", "Mixed content",
         "Load every script, stylesheet and image over HTTPS.", _mixed_content),
    Rule("security-headers-missing", "security", "Missing security headers",
         "Configure HSTS, Content-Security-Policy, X-Frame-Options and "
         "X-Content-Type-Options.", _security_headers),
    Rule("canonical-missing", "technical", "Missing canonical URL",
         'Declare <link rel="canonical"> pointing to the preferred URL.', _no_canonical),
    Rule("viewport-missing", "mobile", "Missing viewport",
         'Add <meta name="viewport" content="width=device-width, initial-scale=1">.',
         _no_viewport),
    Rule("open-graph-missing", "social", "Missing Open Graph tags",
         "Add og:title, og:description and og:image meta tags.", _no_open_graph),
    Rule("broken-internal-links", "links", "Broken internal links",
         "Fix or remove internal links that do not answer with 2xx.",
         _broken("internal", 2, 10)),
    Rule("broken-external-links", "links", "Broken external links",
         "Update or remove external links that no longer resolve.",
         _broken("external", 1.5, 8)),
)


def _tier(deduction: float) -> Tuple[str, str, int]:
    if deduction >= 15:
        return "critical", "high", 1
    if deduction >= 5:
        return "warning", "medium", 2
    return "info", "low", 3


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_facts(
    facts: DocumentFacts,
    link_results: Optional[Sequence[LinkCheckResult]] = None,
    rules: Sequence[Rule] = RULES,
) -> ScoreResult:
    """Применяет таблицу правил к фактам страницы и результатам проверки ссылок."""
    links = link_results or ()
    issues: List[Issue] = []
    total = 0.0

    for rule in rules:
        deduction, description = rule.measure(facts, links)
        if deduction <= 0:
            continue
        total += deduction
        issue_type, impact, priority = _tier(deduction)
        issues.append(
            Issue(
                id=rule.id,
                type=issue_type,
                category=rule.category,
                title=rule.title,
                description=description,
                impact=impact,
                solution=rule.solution,
                priority=priority,
                deduction=deduction,
            )
        )

    issues.sort(key=lambda i: (i.priority, -i.deduction))
    solutions = dict.fromkeys(i.solution for i in issues)
    solutions.update(dict.fromkeys(BEST_PRACTICES))

    return ScoreResult(
        score=max(0, min(100, _round_half_up(100 - total))),
        issues=tuple(issues),
        recommendations=tuple(solutions),
    )
