# File: tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Dict

import pytest
from aiohttp import web

from site_auditor.config import AuditorConfig

SECURITY_META = {
    "Strict-Transport-Security": "max-age=31536000",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "default-src 'self'",
}


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


def make_config(relays, **overrides: Any) -> AuditorConfig:
    """
    AuditorConfig for tests: given relays, no backoff, short timeouts.
    """
    data: Dict[str, Any] = {
        "relays": list(relays),
        "alternate_relays": [],
        "fetch": {
            "max_retries": 2,
            "base_timeout": 2.0,
            "timeout_step": 0.5,
            "backoff_base": 0.0,
            "jitter_max": 0.0,
        },
        "probe": {"direct_timeout": 1.0, "relay_timeout": 1.0, "alternate_timeout": 1.0},
    }
    data.update(overrides)
    return AuditorConfig(**data)


def page_html(
    *,
    title: str | None = "A well sized page title for the audit tests",
    description: str | None = (
        "This description is long enough to sit inside the recommended window of one hundred "
        "twenty to one hundred sixty characters."
    ),
    h1_count: int = 1,
    images: str = '<img src="/img/a.png" alt="A"><img src="/img/b.png" alt="B">'
    '<img src="/img/c.png" alt="C">',
    words: int = 320,
    canonical: bool = True,
    og: bool = True,
    viewport: bool = True,
    security_headers: bool = True,
    body_extra: str = "",
) -> str:
    """Build a page that breaks no scoring rule unless told otherwise."""
    head = ['<meta charset="utf-8">']
    if title is not None:
        head.append(f"<title>{title}</title>")
    if description is not None:
        head.append(f'<meta name="description" content="{description}">')
    if canonical:
        head.append('<link rel="canonical" href="https://example.com/">')
    if og:
        head.append('<meta property="og:title" content="Example">')
    if viewport:
        head.append('<meta name="viewport" content="width=device-width, initial-scale=1">')
    if security_headers:
        head.extend(
            f'<meta http-equiv="{name}" content="{value}">'
            for name, value in SECURITY_META.items()
        )
    h1 = "".join(f"<h1>Heading {i}</h1>" for i in range(h1_count))
    text = " ".join(["word"] * words)
    return (
        f'<!DOCTYPE html><html lang="en"><head>{"".join(head)}</head>'
        f"<body>{h1}<p>{text}</p>{images}{body_extra}</body></html>"
    )


@pytest.fixture()
def sample_html() -> str:
    return page_html()
