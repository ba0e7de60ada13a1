"""HTML parsing for SiteAuditor.

:func:`parse_document` turns retrieved markup into an immutable
:class:`AnalysisDocument`. The parse tree is walked once and every
element is dispatched by tag name, so each facet input (title, meta tags,
headings, images, links, social tags, structured data, forms, resources)
comes out of the same traversal. Technology fingerprints and page-level
CAPTCHA markers are matched against the raw markup.

Image and form extraction are capped so that pathological pages keep a
predictable cost; the uncapped totals are still reported.
"""
from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from site_auditor.config import LimitSettings
from site_auditor.parser.forms import CaptchaInfo, FormDetails, analyze_form, captcha_on_page
from site_auditor.parser.technologies import Technology, detect_technologies
from site_auditor.utils import absolutize, extract_filename, same_origin

__all__: Sequence[str] = ("AnalysisDocument", "ImageInfo", "parse_document")

_TEXTLESS = ("script", "style", "noscript", "template")
_HEADINGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}


@dataclass(frozen=True, slots=True)
class ImageInfo:
    src: str
    alt: str
    has_alt: bool
    filename: str


@dataclass(frozen=True, slots=True)
class AnalysisDocument:
    """Normalized, read-only view of one retrieved page."""

    url: str
    raw_size: int
    title: str = ""
    meta_description: str = ""
    meta_robots: str = ""
    canonical_url: str = ""
    viewport: str = ""
    charset: str = ""
    lang: str = ""
    favicon: str = ""
    h1: tuple[str, ...] = ()
    h2: tuple[str, ...] = ()
    heading_levels: tuple[int, ...] = ()
    images: tuple[ImageInfo, ...] = ()
    image_total: int = 0
    internal_links: tuple[str, ...] = ()
    external_links: tuple[str, ...] = ()
    nofollow_links: int = 0
    og_tags: tuple[tuple[str, str], ...] = ()
    twitter_tags: tuple[tuple[str, str], ...] = ()
    structured_data: tuple[Any, ...] = ()
    word_count: int = 0
    script_count: int = 0
    stylesheet_count: int = 0
    insecure_resources: tuple[str, ...] = ()
    http_equiv: tuple[tuple[str, str], ...] = ()
    forms: tuple[FormDetails, ...] = ()
    form_total: int = 0
    captcha: Optional[CaptchaInfo] = None
    technologies: tuple[Technology, ...] = ()

    @property
    def is_https(self) -> bool:
        return urlparse(self.url).scheme == "https"

    def http_equiv_value(self, name: str) -> str:
        wanted = name.lower()
        return next((v for k, v in self.http_equiv if k == wanted), "")

    @property
    def images_without_alt(self) -> tuple[ImageInfo, ...]:
        return tuple(img for img in self.images if not img.has_alt)


def _attr(tag: Tag, name: str) -> str:
    value = tag.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return (value or "").strip()


def _text(tag: Tag) -> str:
    return " ".join(tag.get_text(" ", strip=True).split())


def _parse_json_ld(raw: str) -> list[Any]:
    try:
        data = json.loads(raw)
    except ValueError:
        return []
    if isinstance(data, list):
        return [d for d in data if d]
    return [data] if data else []


def parse_document(html: str, url: str, limits: Optional[LimitSettings] = None) -> AnalysisDocument:
    """Parse *html* fetched from *url* into an :class:`AnalysisDocument`."""
    limits = limits or LimitSettings()
    max_images, max_forms = limits.max_images, limits.max_forms
    soup = BeautifulSoup(html, "lxml")
    https_page = urlparse(url).scheme == "https"

    fields: dict[str, Any] = {}
    h1: list[str] = []
    h2: list[str] = []
    levels: set[int] = set()
    images: list[ImageInfo] = []
    image_total = 0
    internal: dict[str, None] = {}
    external: dict[str, None] = {}
    nofollow = 0
    og_tags: list[tuple[str, str]] = []
    twitter_tags: list[tuple[str, str]] = []
    structured: list[Any] = []
    scripts = 0
    stylesheets = 0
    insecure: dict[str, None] = {}
    http_equiv: list[tuple[str, str]] = []
    form_tags: list[Tag] = []
    form_total = 0
    textless: list[Tag] = []

    def _insecure(ref: str) -> None:
        if https_page and ref.lower().startswith("http://"):
            insecure[ref] = None

    for tag in soup.find_all(True):
        name = tag.name

        if name == "html":
            fields.setdefault("lang", _attr(tag, "lang"))
        elif name == "title":
            if "title" not in fields and tag.find_parent("svg") is None:
                fields["title"] = _text(tag)
        elif name == "meta":
            meta_name = _attr(tag, "name").lower()
            prop = _attr(tag, "property").lower()
            content = _attr(tag, "content")
            if tag.has_attr("charset"):
                fields.setdefault("charset", _attr(tag, "charset"))
            if meta_name == "description":
                fields.setdefault("meta_description", content)
            elif meta_name == "robots":
                fields.setdefault("meta_robots", content)
            elif meta_name == "viewport":
                fields.setdefault("viewport", content)
            elif meta_name.startswith("twitter:"):
                twitter_tags.append((meta_name, content))
            if prop.startswith("og:"):
                og_tags.append((prop, content))
            equiv = _attr(tag, "http-equiv").lower()
            if equiv:
                http_equiv.append((equiv, content))
                if equiv == "content-type" and "charset=" in content.lower():
                    fields.setdefault("charset", content.lower().split("charset=", 1)[1].strip())
        elif name == "link":
            rel = _attr(tag, "rel").lower().split()
            href = _attr(tag, "href")
            if "canonical" in rel:
                fields.setdefault("canonical_url", href)
            if "icon" in rel:
                fields.setdefault("favicon", href)
            if "stylesheet" in rel:
                stylesheets += 1
                _insecure(href)
        elif name in _HEADINGS:
            levels.add(_HEADINGS[name])
            if name == "h1":
                h1.append(_text(tag))
            elif name == "h2":
                h2.append(_text(tag))
        elif name == "img":
            image_total += 1
            src = _attr(tag, "src")
            _insecure(src)
            if len(images) < max_images:
                alt = _attr(tag, "alt")
                images.append(ImageInfo(src, alt, bool(alt), extract_filename(src)))
        elif name == "a":
            absolute = absolutize(_attr(tag, "href"), url)
            if absolute is None:
                continue
            if same_origin(absolute, url):
                internal[absolute] = None
            else:
                external[absolute] = None
                if "nofollow" in _attr(tag, "rel").lower().split():
                    nofollow += 1
        elif name == "script":
            textless.append(tag)
            if _attr(tag, "type").lower() == "application/ld+json":
                structured.extend(_parse_json_ld(tag.string or ""))
            else:
                scripts += 1
                _insecure(_attr(tag, "src"))
        elif name == "form":
            form_total += 1
            if len(form_tags) < max_forms:
                form_tags.append(tag)
        elif name in _TEXTLESS:
            textless.append(tag)

    forms = tuple(analyze_form(form, i) for i, form in enumerate(form_tags))
    captcha = captcha_on_page(html, forms)

    for tag in textless:
        tag.decompose()
    body = soup.body or soup
    word_count = len(body.get_text(" ", strip=True).split())

    return AnalysisDocument(
        url=url,
        raw_size=len(html.encode("utf-8")),
        h1=tuple(h1),
        h2=tuple(h2),
        heading_levels=tuple(sorted(levels)),
        images=tuple(images),
        image_total=image_total,
        internal_links=tuple(internal),
        external_links=tuple(external),
        nofollow_links=nofollow,
        og_tags=tuple(og_tags),
        twitter_tags=tuple(twitter_tags),
        structured_data=tuple(structured),
        word_count=word_count,
        script_count=scripts,
        stylesheet_count=stylesheets,
        insecure_resources=tuple(insecure),
        http_equiv=tuple(http_equiv),
        forms=forms,
        form_total=form_total,
        captcha=captcha,
        technologies=detect_technologies(html),
        **fields,
    )
