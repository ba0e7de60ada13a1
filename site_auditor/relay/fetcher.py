# site_auditor/relay/fetcher.py
"""
Fetcher module: retrieves a page through ranked relays with per-attempt
timeout, content validation and exponential backoff with jitter.
"""
from __future__ import annotations

import asyncio
import json
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from site_auditor.config import AuditorConfig, FetchSettings
from site_auditor.exceptions import FetchExhausted, InvalidContent, RelayFailure
from site_auditor.logger import logger
from site_auditor.relay.health import FetchAttempt, HealthTracker, RelayEndpoint

__all__ = (
    "FetchResult",
    "RelayResponse",
    "ResilientFetcher",
    "fetch_via_relay",
    "unwrap_envelope",
    "validate_content",
)


@dataclass(frozen=True, slots=True)
class RelayResponse:
    content: str
    status_code: int
    elapsed_ms: float


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Validated page markup and the wall time the whole fetch took."""

    url: str
    content: str
    elapsed_seconds: float
    relay: RelayEndpoint


def unwrap_envelope(relay: RelayEndpoint, text: str) -> str:
    """Extract the page body from a JSON-wrapping relay; raw bodies pass through."""
    if not relay.envelope:
        return text
    try:
        payload = json.loads(text)
    except ValueError:
        return text
    if isinstance(payload, dict):
        inner = payload.get(relay.envelope)
        if isinstance(inner, str) and inner:
            return inner
    return text


def validate_content(text: str, settings: FetchSettings) -> None:
    """Raise :class:`InvalidContent` unless *text* looks like a real HTML page."""
    if len(text) < settings.min_content_bytes:
        raise InvalidContent(f"content too short ({len(text)} bytes)")
    if "<html" not in text.lower():
        raise InvalidContent("no <html> root tag")
    for marker in settings.block_markers:
        if marker in text:
            raise InvalidContent(f"block page marker {marker!r}")


async def fetch_via_relay(
    session: ClientSession,
    relay: RelayEndpoint,
    url: str,
    timeout: float,
    settings: FetchSettings,
    headers: Optional[Mapping[str, str]] = None,
) -> RelayResponse:
    """One GET through *relay*. Raises :class:`RelayFailure` on any problem."""
    started = time.monotonic()
    try:
        async with session.get(
            relay.build_url(url),
            headers=dict(headers or {}),
            timeout=ClientTimeout(total=timeout),
            raise_for_status=False,
        ) as resp:
            if not 200 <= resp.status < 300:
                raise RelayFailure(f"HTTP {resp.status}: {resp.reason or ''}".strip(), resp.status)
            text = await resp.text(errors="replace")
            status = resp.status
    except asyncio.TimeoutError as exc:
        raise RelayFailure(f"timeout after {timeout:.1f}s") from exc
    except ClientError as exc:
        raise RelayFailure(f"{type(exc).__name__}: {exc}") from exc

    content = unwrap_envelope(relay, text)
    validate_content(content, settings)
    return RelayResponse(content, status, (time.monotonic() - started) * 1000.0)


class ResilientFetcher:
    """Tries ranked relays in order; every attempt updates the health tracker."""

    def __init__(
        self,
        session: ClientSession,
        config: AuditorConfig,
        tracker: HealthTracker,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.session = session
        self.config = config
        self.tracker = tracker
        self._settings = config.fetch
        self._sleep = sleep
        self._jitter = jitter

    def attempt_timeout(self, attempt: int) -> float:
        return self._settings.base_timeout + self._settings.timeout_step * (attempt - 1)

    def backoff_delay(self, attempt: int) -> float:
        base = self._settings.backoff_base * 1.5 ** (attempt - 1)
        return base + self._jitter(0.0, self._settings.jitter_max)

    async def try_relay(
        self, relay: RelayEndpoint, url: str, timeout: float, *, record: bool = True
    ) -> RelayResponse:
        """Single relay attempt; the outcome is folded into the tracker when *record*."""
        started = time.monotonic()
        try:
            response = await fetch_via_relay(
                self.session, relay, url, timeout, self._settings, self.config.headers
            )
        except RelayFailure as exc:
            if record:
                self.tracker.record(
                    FetchAttempt(
                        relay=relay,
                        elapsed_ms=(time.monotonic() - started) * 1000.0,
                        ok=False,
                        reason=exc.reason,
                        status_code=exc.status_code,
                    )
                )
            raise
        if record:
            self.tracker.record(
                FetchAttempt(relay, response.elapsed_ms, True, status_code=response.status_code)
            )
        return response

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch *url* through the relays.

        Raises FetchExhausted once every relay failed on every attempt.
        """
        started = time.monotonic()
        max_retries = self._settings.max_retries
        last_reason = ""

        for attempt in range(1, max_retries + 1):
            timeout = self.attempt_timeout(attempt)
            for relay in self.tracker.rank():
                try:
                    response = await self.try_relay(relay, url, timeout)
                except RelayFailure as exc:
                    last_reason = exc.reason
                    continue
                elapsed = time.monotonic() - started
                logger.info("Fetched %s via %s in %.2f s", url, relay.template, elapsed)
                return FetchResult(url, response.content, elapsed, relay)

            if attempt < max_retries:
                delay = self.backoff_delay(attempt)
                logger.debug(
                    "All relays failed for %s (attempt %d/%d), retrying in %.2f s",
                    url, attempt, max_retries, delay,
                )
                await self._sleep(delay)

        logger.warning("Fetch exhausted for %s: %s", url, last_reason)
        raise FetchExhausted(url, max_retries, last_reason)
