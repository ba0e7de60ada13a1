"""Technology fingerprints: CMS, page builder and third-party scripts.

Detection works on the raw markup. Every fingerprint group contributes a
weighted share of the indicators it finds, so a page needs several
independent hints before a CMS or page builder is reported.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

__all__: Sequence[str] = (
    "DETECTION_THRESHOLD",
    "Technology",
    "detect_elementor",
    "detect_technologies",
    "detect_wordpress",
)

DETECTION_THRESHOLD = 0.5

_WP_HTML = (
    "wp-content", "wp-includes", "wp-admin", "wp-json", "wordpress",
    "/wp/", "wp_", "wp-", "wlwmanifest", "xmlrpc.php",
)
_WP_META = tuple(
    re.compile(p, re.I) for p in (r"generator.*wordpress", r"wp-block-", r"wp-embed", r"wp-emoji")
)
_WP_SCRIPTS = (
    "wp-includes/js", "wp-content/themes", "wp-content/plugins", "wp-content/uploads",
    "wp-admin/admin-ajax.php", "wp-json/wp/v2", "wp-embed.min.js", "jquery/jquery.js",
)
_WP_VERSION = (
    re.compile(r"generator.*wordpress\s+([\d.]+)", re.I),
    re.compile(r"wp-includes/js/wp-embed\.min\.js\?ver=([\d.]+)", re.I),
    re.compile(r"wp-content/themes/.*/style\.css\?ver=([\d.]+)", re.I),
)
_WP_THEME = re.compile(r"wp-content/themes/([^/?\"']+)", re.I)
_WP_PLUGIN = re.compile(r"wp-content/plugins/([^/?\"']+)", re.I)

# name -> markers
_KNOWN_PLUGINS = {
    "Yoast SEO": ("yoast", "wpseo"),
    "Contact Form 7": ("contact-form-7", "wpcf7"),
    "WooCommerce": ("woocommerce", "wc-"),
    "Jetpack": ("jetpack",),
    "Akismet": ("akismet",),
    "WP Rocket": ("wp-rocket",),
    "Elementor": ("elementor",),
    "WP Super Cache": ("wp-super-cache",),
    "All in One SEO": ("aioseo",),
    "WP Bakery": ("wpbakery", "js_composer"),
}

_EL_CLASSES = (
    "elementor", "elementor-element", "elementor-widget", "elementor-section",
    "elementor-column", "elementor-container", "elementor-row", "elementor-inner",
    "elementor-background", "elementor-heading", "elementor-button", "elementor-image",
    "elementor-text-editor",
)
_EL_SCRIPTS = (
    "elementor-frontend", "elementor-pro-frontend", "elementor/assets",
    "elementor-pro/assets", "elementor.min.js", "elementor-pro.min.js",
)
_EL_STYLES = (
    "elementor-frontend.min.css", "elementor-pro.min.css",
    "elementor-icons.min.css", "elementor-animations.min.css",
)
_EL_DATA = ("data-elementor-type", "data-elementor-id", "data-elementor-settings", "data-widget_type")
_EL_PRO = ("elementor-pro", "elementor/pro")
_EL_VERSION = (
    re.compile(r"elementor-frontend.*?ver=([\d.]+)", re.I),
    re.compile(r"elementor/assets.*?ver=([\d.]+)", re.I),
)
_EL_WIDGET_TYPE = re.compile(r"data-widget_type=[\"']([a-z0-9_-]+)\.default[\"']", re.I)
_EL_WIDGET_CLASS = re.compile(r"elementor-widget-([a-z0-9_-]+)", re.I)
_EL_FEATURES = {
    "Animations": ("elementor-animation", "elementor-invisible"),
    "Popup Builder": ("elementor-popup", "elementor-location-popup"),
    "Theme Builder": ("elementor-location-header", "elementor-location-footer"),
    "WooCommerce Builder": ("elementor-woocommerce", "elementor-product"),
    "Form Builder": ("elementor-form", "elementor-field-group"),
    "Custom CSS": ("elementor-custom-css", "elementor-post-css"),
    "Motion Effects": ("elementor-motion-effects", "elementor-sticky"),
}


@dataclass(frozen=True, slots=True)
class Technology:
    """One detected technology; *confidence* is in [0, 1]."""

    name: str
    category: str  # CMS | Page Builder | Framework | Analytics | Security
    confidence: float
    version: str = ""
    indicators: tuple[str, ...] = ()
    details: tuple[str, ...] = ()

    @property
    def detected(self) -> bool:
        return self.confidence >= DETECTION_THRESHOLD


def _share(found: int, total: int, weight: float) -> float:
    return found / total * weight


def _first_group(patterns: Sequence[re.Pattern[str]], markup: str) -> str:
    for pattern in patterns:
        match = pattern.search(markup)
        if match:
            return match.group(1)
    return ""


def _slug_name(slug: str) -> str:
    return re.sub(r"[_-]+", " ", slug).strip()


def _wordpress_plugins(markup: str, lower: str) -> list[str]:
    plugins = [name for name, markers in _KNOWN_PLUGINS.items() if any(m in lower for m in markers)]
    known = {p.lower() for p in plugins}
    for slug in dict.fromkeys(_WP_PLUGIN.findall(markup)):
        name = _slug_name(slug)
        if name and name.lower() not in known:
            known.add(name.lower())
            plugins.append(name)
    return plugins


def detect_wordpress(markup: str) -> Technology:
    lower = markup.lower()
    indicators: list[str] = []

    html_hits = [m for m in _WP_HTML if m in lower]
    meta_hits = [p.pattern for p in _WP_META if p.search(markup)]
    script_hits = [m for m in _WP_SCRIPTS if m in lower]
    indicators += [f"HTML: {m}" for m in html_hits]
    indicators += [f"Meta: {m}" for m in meta_hits]
    indicators += [f"Script: {m}" for m in script_hits]
    confidence = (
        _share(len(html_hits), len(_WP_HTML), 0.4)
        + _share(len(meta_hits), len(_WP_META), 0.2)
        + _share(len(script_hits), len(_WP_SCRIPTS), 0.3)
    )

    version = _first_group(_WP_VERSION, markup)
    if version:
        indicators.append(f"Version: {version}")
        confidence += 0.1

    details: list[str] = []
    if "wp-json/wp/v2" in lower or "rest_route" in lower:
        details.append("REST API")
        confidence += 0.05
    if "wp-content/mu-plugins" in lower or "multisite" in lower:
        details.append("Multisite")
    if "wp-admin" in lower:
        details.append("Admin path: /wp-admin/")

    theme = _WP_THEME.search(markup)
    if theme:
        details.append(f"Theme: {_slug_name(theme.group(1))}")
        confidence += 0.05

    plugins = _wordpress_plugins(markup, lower)
    details += [f"Plugin: {p}" for p in plugins]
    confidence += min(len(plugins) * 0.02, 0.1)

    return Technology(
        "WordPress", "CMS", min(confidence, 1.0), version, tuple(indicators), tuple(details)
    )


def detect_elementor(markup: str) -> Technology:
    lower = markup.lower()
    groups = (
        ("CSS", _EL_CLASSES, 0.4),
        ("Script", _EL_SCRIPTS, 0.25),
        ("Style", _EL_STYLES, 0.2),
        ("Data", _EL_DATA, 0.15),
    )
    indicators: list[str] = []
    confidence = 0.0
    for label, markers, weight in groups:
        hits = [m for m in markers if m in lower]
        indicators += [f"{label}: {m}" for m in hits]
        confidence += _share(len(hits), len(markers), weight)

    version = _first_group(_EL_VERSION, markup)
    if version:
        indicators.append(f"Version: {version}")
        confidence += 0.1

    details: list[str] = []
    if any(m in lower for m in _EL_PRO):
        details.append("Pro Version")
        confidence += 0.1
    widgets = dict.fromkeys(w.lower() for w in _EL_WIDGET_TYPE.findall(markup))
    widgets.update(dict.fromkeys(w.lower() for w in _EL_WIDGET_CLASS.findall(markup)))
    details += [f"Widget: {_slug_name(w)}" for w in widgets]
    details += [name for name, markers in _EL_FEATURES.items() if any(m in lower for m in markers)]

    return Technology(
        "Elementor", "Page Builder", min(confidence, 1.0), version, tuple(indicators), tuple(details)
    )


def _scripts_and_services(lower: str) -> list[Technology]:
    found = []
    if "jquery" in lower:
        found.append(Technology("jQuery", "Framework", 0.9, indicators=("jQuery library",)))
    if "google-analytics" in lower or "gtag" in lower:
        found.append(
            Technology("Google Analytics", "Analytics", 0.95, indicators=("tracking code",))
        )
    if "cloudflare" in lower or "cf-ray" in lower:
        found.append(Technology("Cloudflare", "Security", 0.9, indicators=("CDN/Security",)))
    return found


def detect_technologies(markup: str) -> tuple[Technology, ...]:
    """All technologies whose fingerprints pass :data:`DETECTION_THRESHOLD`."""
    if not markup:
        return ()
    candidates = [detect_wordpress(markup), detect_elementor(markup)]
    candidates += _scripts_and_services(markup.lower())
    return tuple(t for t in candidates if t.detected)
