# File: tests/test_fetcher.py
from __future__ import annotations

import json
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import ClientSession, web

from conftest import make_config, page_html, serve_app
from site_auditor.config import AuditorConfig, FetchSettings
from site_auditor.exceptions import AnalysisFailed, FetchExhausted, InvalidContent
from site_auditor.relay.fetcher import ResilientFetcher, unwrap_envelope, validate_content
from site_auditor.relay.health import HealthTracker, RelayEndpoint

TARGET = "https://example.com/page?x=1"


@pytest.fixture()
def seen() -> list[str]:
    return []


@pytest_asyncio.fixture
async def relay_server(unused_tcp_port: int, seen: list[str]) -> AsyncIterator[str]:
    app = web.Application()

    async def raw(request):
        seen.append(request.query["url"])
        return web.Response(text=page_html(), content_type="text/html")

    async def wrapped(request):
        return web.json_response({"contents": page_html(title="Wrapped page title for tests ok")})

    async def blocked(_):
        return web.Response(
            text="<html><body>Access Denied" + " " * 300 + "</body></html>",
            content_type="text/html",
        )

    async def short(_):
        return web.Response(text="<html></html>", content_type="text/html")

    async def fail(_):
        return web.Response(status=502, text="bad gateway")

    app.router.add_get("/raw", raw)
    app.router.add_get("/get", wrapped)
    app.router.add_get("/blocked", blocked)
    app.router.add_get("/short", short)
    app.router.add_get("/fail", fail)

    async for url in serve_app(app, unused_tcp_port):
        yield url


def relay(base: str, path: str, envelope: str | None = None) -> dict:
    return {"template": f"{base}/{path}?url=", "envelope": envelope}


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_unwrap_envelope():
    wrapped = RelayEndpoint("http://r/?u=", "contents")
    assert unwrap_envelope(wrapped, json.dumps({"contents": "<html>x</html>"})) == "<html>x</html>"
    assert unwrap_envelope(wrapped, "<html>raw</html>") == "<html>raw</html>"
    assert unwrap_envelope(RelayEndpoint("http://r/?u="), '{"contents": "x"}') == '{"contents": "x"}'


def test_validate_content_rules():
    settings = FetchSettings()
    validate_content("<html>" + "x" * 300 + "</html>", settings)
    with pytest.raises(InvalidContent):
        validate_content("<html></html>", settings)
    with pytest.raises(InvalidContent):
        validate_content("x" * 400, settings)
    with pytest.raises(InvalidContent):
        validate_content("<html>Blocked" + "x" * 300 + "</html>", settings)


def test_backoff_and_timeout_schedule():
    cfg = make_config(["http://r.example/?u="], fetch={"backoff_base": 1.0, "jitter_max": 0.5})
    fetcher = ResilientFetcher(
        None, cfg, HealthTracker.from_config(cfg.relays), jitter=lambda a, b: b
    )
    assert fetcher.backoff_delay(1) == pytest.approx(1.5)
    assert fetcher.backoff_delay(2) == pytest.approx(2.0)
    assert fetcher.attempt_timeout(1) == cfg.fetch.base_timeout

    defaults = ResilientFetcher(None, AuditorConfig(), HealthTracker([RelayEndpoint("http://r/")]))
    assert [defaults.attempt_timeout(n) for n in (1, 2, 3)] == [8.0, 10.0, 12.0]


@pytest.mark.asyncio()
async def test_fetch_skips_failing_relay(relay_server):
    cfg = make_config([relay(relay_server, "fail"), relay(relay_server, "raw")])
    tracker = HealthTracker.from_config(cfg.relays)
    fail, raw = tracker.relays
    async with ClientSession() as session:
        fetcher = ResilientFetcher(session, cfg, tracker)
        result = await fetcher.fetch(TARGET)

        assert result.relay == raw
        assert "<title>" in result.content
        assert result.elapsed_seconds >= 0
        assert tracker.stats(fail).failures == 1
        assert tracker.stats(raw).successes == 1
        # the healthier relay is tried first next time
        assert tracker.rank()[0] == raw
        await fetcher.fetch(TARGET)
        assert tracker.stats(fail).failures == 1


@pytest.mark.asyncio()
async def test_fetch_passes_encoded_target(relay_server, seen):
    cfg = make_config([relay(relay_server, "raw")])
    async with ClientSession() as session:
        fetcher = ResilientFetcher(session, cfg, HealthTracker.from_config(cfg.relays))
        await fetcher.fetch(TARGET)
    assert seen == [TARGET]


@pytest.mark.asyncio()
async def test_fetch_unwraps_json_envelope(relay_server):
    cfg = make_config([relay(relay_server, "get", "contents")])
    async with ClientSession() as session:
        fetcher = ResilientFetcher(session, cfg, HealthTracker.from_config(cfg.relays))
        result = await fetcher.fetch(TARGET)
    assert result.content.startswith("<!DOCTYPE html>")
    assert "Wrapped page title" in result.content


@pytest.mark.asyncio()
async def test_fetch_exhausted(relay_server):
    cfg = make_config(
        [relay(relay_server, "fail"), relay(relay_server, "blocked"), relay(relay_server, "short")]
    )
    tracker = HealthTracker.from_config(cfg.relays)
    sleep = SleepRecorder()
    async with ClientSession() as session:
        fetcher = ResilientFetcher(session, cfg, tracker, sleep=sleep, jitter=lambda a, b: 0.0)
        with pytest.raises(FetchExhausted) as info:
            await fetcher.fetch(TARGET)

    err = info.value
    assert isinstance(err, AnalysisFailed)
    assert err.retryable
    assert err.attempts == 2
    # one pause between the two rounds
    assert sleep.delays == [0.0]
    for endpoint in tracker.relays:
        assert tracker.stats(endpoint).failures == 2
