"""Form inventory, form-security heuristics and CAPTCHA detection."""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from bs4.element import Tag

__all__: Sequence[str] = (
    "CaptchaInfo",
    "FormDetails",
    "FormField",
    "FormSecurity",
    "analyze_form",
    "captcha_on_page",
    "detect_captcha",
)

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_MAILTO_RE = re.compile(r"mailto:([^?&]+)", re.I)
_SITEKEY_RE = re.compile(r"""data-sitekey=["']([^"']+)["']""", re.I)
_CSRF_NAMES = ("csrf", "token", "_token", "authenticity")
_HIDDEN_STYLE_RE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.I)


@dataclass(frozen=True, slots=True)
class FormField:
    name: str
    type: str
    required: bool
    label: str
    placeholder: str = ""


@dataclass(frozen=True, slots=True)
class FormSecurity:
    has_csrf_token: bool
    has_honeypot: bool
    has_validation: bool


@dataclass(frozen=True, slots=True)
class CaptchaInfo:
    """CAPTCHA detection result; *confidence* is in [0, 1], never a plain flag."""

    present: bool = False
    type: str = "none"
    version: str = ""
    provider: str = ""
    site_key: str = ""
    confidence: float = 0.0


@dataclass(frozen=True, slots=True)
class FormDetails:
    id: str
    action: str
    method: str
    fields: tuple[FormField, ...] = ()
    email_destinations: tuple[str, ...] = ()
    security: FormSecurity = field(default_factory=lambda: FormSecurity(False, False, False))
    captcha: CaptchaInfo = field(default_factory=CaptchaInfo)

    @property
    def field_count(self) -> int:
        return len(self.fields)

    @property
    def has_email_field(self) -> bool:
        return any(f.type == "email" for f in self.fields)

    @property
    def has_required_fields(self) -> bool:
        return any(f.required for f in self.fields)


def detect_captcha(markup: str) -> CaptchaInfo:
    """Match known CAPTCHA provider markers; the site key keeps its original case."""
    markup_lower = markup.lower()
    site_key_match = _SITEKEY_RE.search(markup)
    site_key = site_key_match.group(1) if site_key_match else ""

    if "recaptcha" in markup_lower:
        if "grecaptcha.execute" in markup_lower:
            return CaptchaInfo(True, "reCAPTCHA v3", "v3", "Google", site_key, 0.95)
        if "g-recaptcha" in markup_lower:
            return CaptchaInfo(True, "reCAPTCHA v2", "v2", "Google", site_key, 0.9)
        # script reference only, widget not found
        return CaptchaInfo(True, "reCAPTCHA", "", "Google", site_key, 0.6)
    if "hcaptcha" in markup_lower:
        return CaptchaInfo(True, "hCaptcha", "", "Intuition Machines", site_key, 0.9)
    if "cf-turnstile" in markup_lower or "challenges.cloudflare.com/turnstile" in markup_lower:
        return CaptchaInfo(True, "Turnstile", "", "Cloudflare", site_key, 0.85)
    return CaptchaInfo()


def _text(tag: Tag) -> str:
    return " ".join(tag.get_text(" ", strip=True).split())


def _attr(tag: Tag, name: str) -> str:
    value = tag.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return value or ""


def _field_label(field_tag: Tag, form: Tag) -> str:
    field_id = _attr(field_tag, "id")
    if field_id:
        label = form.find("label", attrs={"for": field_id})
        if isinstance(label, Tag):
            return _text(label)

    parent = field_tag.find_parent("label")
    if isinstance(parent, Tag):
        own = _text(field_tag)
        text = _text(parent)
        return text.replace(own, "", 1).strip() if own else text

    return _attr(field_tag, "placeholder") or _attr(field_tag, "name")


def _email_destinations(form: Tag) -> tuple[str, ...]:
    emails: dict[str, None] = {}
    mailto = _MAILTO_RE.search(_attr(form, "action"))
    if mailto:
        emails[mailto.group(1)] = None
    for hidden in form.find_all("input", attrs={"type": "hidden"}):
        for email in _EMAIL_RE.findall(_attr(hidden, "value")):
            emails[email] = None
    return tuple(emails)


def _security(form: Tag) -> FormSecurity:
    inputs = [i for i in form.find_all("input") if isinstance(i, Tag)]
    names = [_attr(i, "name").lower() for i in inputs]
    has_csrf = any(marker in name for name in names for marker in _CSRF_NAMES)
    has_honeypot = any(
        (_attr(i, "type").lower() == "hidden" and "bot" in _attr(i, "name").lower())
        or _HIDDEN_STYLE_RE.search(_attr(i, "style"))
        for i in inputs
    )
    has_validation = form.find(attrs={"required": True}) is not None or (
        form.find(attrs={"pattern": True}) is not None
    )
    return FormSecurity(has_csrf, bool(has_honeypot), has_validation)


def analyze_form(form: Tag, index: int) -> FormDetails:
    """Build :class:`FormDetails` for one ``<form>`` element."""
    fields = []
    for tag in form.find_all(["input", "textarea", "select"]):
        if not isinstance(tag, Tag):
            continue
        fields.append(
            FormField(
                name=_attr(tag, "name") or _attr(tag, "id") or "unnamed",
                type=(_attr(tag, "type") or tag.name).lower(),
                required=tag.has_attr("required"),
                label=_field_label(tag, form),
                placeholder=_attr(tag, "placeholder"),
            )
        )

    return FormDetails(
        id=_attr(form, "id") or f"form-{index + 1}",
        action=_attr(form, "action"),
        method=(_attr(form, "method") or "GET").upper(),
        fields=tuple(fields),
        email_destinations=_email_destinations(form),
        security=_security(form),
        captcha=detect_captcha(str(form)),
    )


def captcha_on_page(markup: str, forms: Sequence[FormDetails]) -> Optional[CaptchaInfo]:
    """Page-level CAPTCHA: the strongest per-form hit, else a scan of the whole page."""
    hits = [f.captcha for f in forms if f.captcha.present]
    if hits:
        return max(hits, key=lambda c: c.confidence)
    info = detect_captcha(markup)
    return info if info.present else None
