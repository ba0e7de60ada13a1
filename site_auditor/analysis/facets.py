# File: site_auditor/analysis/facets.py
"""site_auditor.analysis.facets: Типизированные наборы фактов по странице.

Каждый аспект (техническое SEO, контент, ссылки, соцсети, мобильная версия,
производительность, безопасность, формы) описан отдельным dataclass.
Метрики скорости оцениваются детерминированно по времени загрузки;
FID и CLS без реального измерения не заполняются.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from site_auditor.logger import logger
from site_auditor.parser.document import AnalysisDocument
from site_auditor.parser.forms import CaptchaInfo, FormDetails
from site_auditor.parser.technologies import Technology

__all__ = [
    "ContentFacts",
    "DocumentFacts",
    "FormsFacts",
    "KeywordStat",
    "LinkProfileFacts",
    "MobileFacts",
    "PerformanceFacts",
    "SecurityFacts",
    "SecurityHeader",
    "SocialFacts",
    "TechnicalSEOFacts",
    "TimingFacts",
    "analyze_document",
    "page_speed_scores",
    "readability_score",
]

TITLE_RANGE = (30, 60)
META_DESCRIPTION_RANGE = (120, 160)
MIN_WORD_COUNT = 300

# (header, critical)
SECURITY_HEADERS: Tuple[Tuple[str, bool], ...] = (
    ("Strict-Transport-Security", True),
    ("X-Content-Type-Options", True),
    ("X-Frame-Options", True),
    ("X-XSS-Protection", False),
    ("Content-Security-Policy", True),
    ("Referrer-Policy", False),
)

# security sub-score weights
HTTPS_MISSING_PENALTY = 30
HEADER_MISSING_PENALTY = 5
MIXED_CONTENT_PENALTY = 15


def _in_range(length: int, bounds: Tuple[int, int]) -> bool:
    return bounds[0] <= length <= bounds[1]


def readability_score(word_count: int) -> int:
    """Грубая оценка читаемости по объёму текста."""
    if word_count < 100:
        return 30
    if word_count < 300:
        return 60
    if word_count < 1000:
        return 80
    return 90


@dataclass(frozen=True, slots=True)
class KeywordStat:
    keyword: str
    count: int
    density: float


@dataclass(frozen=True, slots=True)
class TechnicalSEOFacts:
    title: str
    title_length: int
    title_optimal: bool
    meta_description: str
    meta_description_length: int
    meta_description_optimal: bool
    meta_robots: str
    indexable: bool
    canonical_url: Optional[str]
    canonical_matches_url: bool
    charset: Optional[str]
    lang: Optional[str]
    favicon: Optional[str]
    https: bool
    structured_data_types: Tuple[str, ...] = ()

    @property
    def has_title(self) -> bool:
        return bool(self.title)

    @property
    def has_meta_description(self) -> bool:
        return bool(self.meta_description)

    @property
    def has_canonical(self) -> bool:
        return self.canonical_url is not None


@dataclass(frozen=True, slots=True)
class ContentFacts:
    word_count: int
    readability_score: int
    h1: Tuple[str, ...]
    h2: Tuple[str, ...]
    heading_levels: Tuple[int, ...]
    missing_heading_levels: Tuple[int, ...]
    images_total: int
    images_with_alt: int
    images_without_alt: int
    keywords: Tuple[KeywordStat, ...] = ()

    @property
    def h1_count(self) -> int:
        return len(self.h1)

    @property
    def thin_content(self) -> bool:
        return self.word_count < MIN_WORD_COUNT


@dataclass(frozen=True, slots=True)
class LinkProfileFacts:
    internal_links: Tuple[str, ...]
    external_links: Tuple[str, ...]
    nofollow_external: int

    @property
    def internal_count(self) -> int:
        return len(self.internal_links)

    @property
    def external_count(self) -> int:
        return len(self.external_links)


@dataclass(frozen=True, slots=True)
class SocialFacts:
    og_tags: Tuple[Tuple[str, str], ...]
    twitter_tags: Tuple[Tuple[str, str], ...]
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None
    twitter_card: Optional[str] = None

    @property
    def has_open_graph(self) -> bool:
        return bool(self.og_tags)

    @property
    def has_twitter_card(self) -> bool:
        return self.twitter_card is not None


@dataclass(frozen=True, slots=True)
class MobileFacts:
    viewport: Optional[str]
    responsive_viewport: bool
    score: int

    @property
    def has_viewport(self) -> bool:
        return self.viewport is not None


@dataclass(frozen=True, slots=True)
class TimingFacts:
    """Оценки метрик загрузки (секунды). fid/cls остаются None без реального замера."""

    score: int
    fcp: float
    lcp: float
    ttfb: float
    fid: Optional[float] = None
    cls: Optional[float] = None


@dataclass(frozen=True, slots=True)
class PerformanceFacts:
    load_time: float
    page_size_bytes: int
    resource_count: int
    script_count: int
    stylesheet_count: int
    image_count: int
    desktop: TimingFacts
    mobile: TimingFacts


@dataclass(frozen=True, slots=True)
class SecurityHeader:
    name: str
    present: bool
    value: str = ""
    critical: bool = False


@dataclass(frozen=True, slots=True)
class SecurityFacts:
    https: bool
    headers: Tuple[SecurityHeader, ...]
    insecure_resources: Tuple[str, ...]

    @property
    def mixed_content(self) -> bool:
        return self.https and bool(self.insecure_resources)

    @property
    def missing_headers(self) -> Tuple[str, ...]:
        return tuple(h.name for h in self.headers if not h.present)

    @property
    def missing_critical_headers(self) -> Tuple[str, ...]:
        return tuple(h.name for h in self.headers if h.critical and not h.present)

    @property
    def score(self) -> int:
        """Оценка безопасности 0..100: HTTPS, критичные заголовки, смешанный контент."""
        score = 100
        if not self.https:
            score -= HTTPS_MISSING_PENALTY
        score -= HEADER_MISSING_PENALTY * len(self.missing_critical_headers)
        if self.mixed_content:
            score -= MIXED_CONTENT_PENALTY
        return max(0, score)


@dataclass(frozen=True, slots=True)
class FormsFacts:
    forms: Tuple[FormDetails, ...]
    total_forms: int
    captcha: Optional[CaptchaInfo]
    email_destinations: Tuple[str, ...]

    @property
    def analyzed_forms(self) -> int:
        return len(self.forms)


@dataclass(frozen=True, slots=True)
class DocumentFacts:
    """Все аспекты одной страницы; вход для подсчёта оценки."""

    url: str
    technical: TechnicalSEOFacts
    content: ContentFacts
    links: LinkProfileFacts
    social: SocialFacts
    mobile: MobileFacts
    performance: PerformanceFacts
    security: SecurityFacts
    forms: FormsFacts
    technologies: Tuple[Technology, ...] = ()


def _keywords(text: str, limit: int = 10) -> Tuple[KeywordStat, ...]:
    words = [w for w in text.lower().split() if len(w) > 3]
    if not words:
        return ()
    return tuple(
        KeywordStat(word, count, round(count / len(words) * 100, 2))
        for word, count in Counter(words).most_common(limit)
    )


def _schema_types(blocks: Tuple[Any, ...]) -> Tuple[str, ...]:
    found: dict[str, None] = {}
    for block in blocks:
        if not isinstance(block, dict):
            continue
        kind = block.get("@type")
        for name in kind if isinstance(kind, list) else [kind]:
            if isinstance(name, str) and name:
                found[name] = None
    return tuple(found)


def _first(pairs: Tuple[Tuple[str, str], ...], key: str) -> Optional[str]:
    return next((value for name, value in pairs if name == key), None)


def page_speed_scores(load_time: float) -> Tuple[int, int]:
    """Оценки PageSpeed (desktop, mobile) по времени загрузки в секундах."""
    desktop = max(20, min(100, round(100 - load_time * 8)))
    mobile = max(15, min(95, round(95 - load_time * 10)))
    return desktop, mobile


def _seo_facts(
    doc: AnalysisDocument,
) -> Tuple[TechnicalSEOFacts, ContentFacts, LinkProfileFacts, SocialFacts]:
    with_alt = sum(1 for img in doc.images if img.has_alt)
    levels = doc.heading_levels
    missing = tuple(n for n in range(1, max(levels) + 1) if n not in levels) if levels else ()

    technical = TechnicalSEOFacts(
        title=doc.title,
        title_length=len(doc.title),
        title_optimal=_in_range(len(doc.title), TITLE_RANGE),
        meta_description=doc.meta_description,
        meta_description_length=len(doc.meta_description),
        meta_description_optimal=_in_range(len(doc.meta_description), META_DESCRIPTION_RANGE),
        meta_robots=doc.meta_robots,
        indexable="noindex" not in doc.meta_robots.lower(),
        canonical_url=doc.canonical_url or None,
        canonical_matches_url=bool(doc.canonical_url)
        and doc.canonical_url.rstrip("/") == doc.url.rstrip("/"),
        charset=doc.charset or None,
        lang=doc.lang or None,
        favicon=doc.favicon or None,
        https=doc.is_https,
        structured_data_types=_schema_types(doc.structured_data),
    )
    content = ContentFacts(
        word_count=doc.word_count,
        readability_score=readability_score(doc.word_count),
        h1=doc.h1,
        h2=doc.h2,
        heading_levels=levels,
        missing_heading_levels=missing,
        images_total=doc.image_total,
        images_with_alt=with_alt,
        images_without_alt=len(doc.images) - with_alt,
        keywords=_keywords(f"{doc.title} {doc.meta_description}"),
    )
    links = LinkProfileFacts(
        internal_links=doc.internal_links,
        external_links=doc.external_links,
        nofollow_external=doc.nofollow_links,
    )
    social = SocialFacts(
        og_tags=doc.og_tags,
        twitter_tags=doc.twitter_tags,
        og_title=_first(doc.og_tags, "og:title"),
        og_description=_first(doc.og_tags, "og:description"),
        og_image=_first(doc.og_tags, "og:image"),
        twitter_card=_first(doc.twitter_tags, "twitter:card"),
    )
    return technical, content, links, social


def _performance_facts(doc: AnalysisDocument, load_time: float) -> PerformanceFacts:
    desktop_score, mobile_score = page_speed_scores(load_time)
    return PerformanceFacts(
        load_time=round(load_time, 3),
        page_size_bytes=doc.raw_size,
        resource_count=doc.script_count + doc.stylesheet_count + doc.image_total,
        script_count=doc.script_count,
        stylesheet_count=doc.stylesheet_count,
        image_count=doc.image_total,
        desktop=TimingFacts(
            score=desktop_score,
            fcp=round(load_time * 0.6, 3),
            lcp=round(load_time * 1.2, 3),
            ttfb=round(load_time * 0.3, 3),
        ),
        mobile=TimingFacts(
            score=mobile_score,
            fcp=round(load_time * 0.8, 3),
            lcp=round(load_time * 1.5, 3),
            ttfb=round(load_time * 0.4, 3),
        ),
    )


def _security_facts(doc: AnalysisDocument) -> SecurityFacts:
    # only http-equiv meta tags are visible in the markup, response headers are not
    headers = []
    for name, critical in SECURITY_HEADERS:
        value = doc.http_equiv_value(name)
        headers.append(SecurityHeader(name, bool(value), value, critical))
    return SecurityFacts(
        https=doc.is_https,
        headers=tuple(headers),
        insecure_resources=doc.insecure_resources,
    )


def _forms_facts(doc: AnalysisDocument) -> FormsFacts:
    emails: dict[str, None] = {}
    for form in doc.forms:
        emails.update(dict.fromkeys(form.email_destinations))
    return FormsFacts(
        forms=doc.forms,
        total_forms=doc.form_total,
        captcha=doc.captcha,
        email_destinations=tuple(emails),
    )


async def analyze_document(doc: AnalysisDocument, load_time: float) -> DocumentFacts:
    """Считает все аспекты страницы.

    SEO, производительность и безопасность читают только неизменяемый
    документ, поэтому выполняются параллельно в потоках; формы после них.
    """
    seo, performance, security = await asyncio.gather(
        asyncio.to_thread(_seo_facts, doc),
        asyncio.to_thread(_performance_facts, doc, load_time),
        asyncio.to_thread(_security_facts, doc),
    )
    technical, content, links, social = seo
    forms = _forms_facts(doc)

    viewport = doc.viewport or None
    mobile = MobileFacts(
        viewport=viewport,
        responsive_viewport=bool(viewport) and "width=device-width" in viewport.replace(" ", ""),
        score=performance.mobile.score,
    )
    logger.debug(
        "Facets for %s: %d words, %d internal / %d external links, %d forms, technologies: %s",
        doc.url, content.word_count, links.internal_count, links.external_count,
        forms.analyzed_forms, ", ".join(t.name for t in doc.technologies) or "none",
    )
    return DocumentFacts(
        url=doc.url,
        technical=technical,
        content=content,
        links=links,
        social=social,
        mobile=mobile,
        performance=performance,
        security=security,
        forms=forms,
        technologies=doc.technologies,
    )
