# site_auditor/relay/prober.py
"""
Accessibility prober: answers "can this URL be analysed at all?".

Strategies run strictly in order (direct request, ranked relays, alternate
relays, DNS existence). When all of them fail the last error is turned into
a categorised, user-facing :class:`Diagnosis`.
"""
from __future__ import annotations

import asyncio
import enum
import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from aiohttp import ClientError, ClientSession, ClientTimeout

from site_auditor.config import AuditorConfig
from site_auditor.exceptions import ProbeUnreachable, RelayFailure
from site_auditor.logger import logger
from site_auditor.relay.fetcher import ResilientFetcher, fetch_via_relay
from site_auditor.relay.health import HealthTracker, RelayEndpoint

__all__ = (
    "AccessibilityProber",
    "Diagnosis",
    "DiagnosisCategory",
    "ProbeResult",
    "classify_error",
    "diagnose",
    "is_suspicious_host",
)

Resolver = Callable[[str], Awaitable[bool]]

# a response with one of these statuses ends the probe
DEFINITIVE_STATUSES = frozenset({401, 403, 404, 410})

_SUSPICIOUS_SUFFIXES = (".local", ".localhost", ".test", ".invalid", ".example", ".internal")


class DiagnosisCategory(str, enum.Enum):
    INVALID_URL = "invalid_url"
    SUSPICIOUS_DOMAIN = "suspicious_domain"
    NETWORK = "network"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    CERTIFICATE = "certificate"
    DNS = "dns"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class Diagnosis:
    category: DiagnosisCategory
    message: str
    hint: str
    detail: str = ""

    def __str__(self) -> str:
        text = f"{self.message}\n\nWhat to try: {self.hint}"
        if self.detail:
            text += f"\n\nTechnical detail: {self.detail}"
        return text


@dataclass(frozen=True, slots=True)
class ProbeResult:
    reachable: bool
    status_code: int = 0
    diagnosis: Optional[Diagnosis] = None
    strategy: str = ""

    def raise_for_status(self) -> None:
        if not self.reachable:
            raise ProbeUnreachable(self.diagnosis or diagnose("", ""))


# ---------------------------------------------------------------------------
# Diagnosis templates
# ---------------------------------------------------------------------------

_TEMPLATES = {
    DiagnosisCategory.INVALID_URL: (
        "The address {url} is not a valid http(s) URL.",
        "Check the format, for example https://example.com.",
    ),
    DiagnosisCategory.SUSPICIOUS_DOMAIN: (
        "The host {domain} is local, reserved or a raw IP address and cannot be analysed.",
        "Use the public domain name of the site.",
    ),
    DiagnosisCategory.NETWORK: (
        "The site {domain} cannot be reached from the analysis servers.",
        "Check that the site opens in a browser, that the hosting does not block "
        "automated clients, then try again in a few minutes.",
    ),
    DiagnosisCategory.FORBIDDEN: (
        "The site {domain} actively refuses analysis robots (access denied).",
        "Allow the analyser in the firewall or bot protection (Cloudflare, WAF) "
        "or ask the hosting provider to whitelist it.",
    ),
    DiagnosisCategory.NOT_FOUND: (
        "The page {url} does not exist on the server.",
        "Check the URL spelling, the domain, and try with or without 'www'.",
    ),
    DiagnosisCategory.SERVER_ERROR: (
        "The site {domain} is returning server errors.",
        "Retry in 5-10 minutes and contact the hosting provider if it persists.",
    ),
    DiagnosisCategory.TIMEOUT: (
        "The site {domain} takes too long to respond.",
        "The server may be overloaded or in maintenance; retry in a few minutes.",
    ),
    DiagnosisCategory.CERTIFICATE: (
        "The SSL certificate of {domain} is invalid or expired.",
        "Renew or fix the certificate configuration with the hosting provider.",
    ),
    DiagnosisCategory.DNS: (
        "The domain {domain} does not resolve in DNS.",
        "Check the DNS configuration and that the domain has not expired.",
    ),
    DiagnosisCategory.GENERIC: (
        "The site {domain} could not be accessed for automated analysis.",
        "Check that the site works in a browser and retry later.",
    ),
}

# checked in order; the first matching category wins
_PATTERNS: Sequence[Tuple[DiagnosisCategory, re.Pattern[str]]] = (
    (DiagnosisCategory.TIMEOUT, re.compile(r"timeout|timed out|aborterror", re.I)),
    (DiagnosisCategory.CERTIFICATE, re.compile(r"certificate|ssl ?error|\btls\b|handshake", re.I)),
    (
        DiagnosisCategory.DNS,
        re.compile(
            r"\bdns\b|nxdomain|name or service not known|nodename nor servname|"
            r"name resolution|getaddrinfo|does not exist",
            re.I,
        ),
    ),
    (DiagnosisCategory.FORBIDDEN, re.compile(r"\b40[13]\b|forbidden|unauthori[sz]ed", re.I)),
    (DiagnosisCategory.NOT_FOUND, re.compile(r"\b4(04|10)\b|not found|gone", re.I)),
    (DiagnosisCategory.SERVER_ERROR, re.compile(r"\b50[0-4]\b|server error|bad gateway", re.I)),
    (
        DiagnosisCategory.NETWORK,
        re.compile(
            r"cannot connect|connection (refused|reset)|network|server ?disconnected|"
            r"failed to fetch|unreachable|clientconnectorerror|clientoserror",
            re.I,
        ),
    ),
)


def classify_error(last_error: str) -> DiagnosisCategory:
    for category, pattern in _PATTERNS:
        if pattern.search(last_error):
            return category
    return DiagnosisCategory.GENERIC


def diagnose(
    url: str,
    last_error: str,
    category: Optional[DiagnosisCategory] = None,
    prefix: str = "",
) -> Diagnosis:
    """Build the templated, user-facing diagnosis for a failed probe."""
    if category is None:
        category = classify_error(last_error)
    domain = urlparse(url).hostname or url
    message, hint = _TEMPLATES[category]
    message = message.format(url=url, domain=domain)
    if prefix:
        message = f"{prefix} {message}"
    return Diagnosis(category=category, message=message, hint=hint, detail=last_error)


def is_suspicious_host(hostname: str) -> bool:
    """Local, reserved or raw-IP hosts are never probed."""
    host = hostname.lower().rstrip(".")
    if host == "localhost" or host.endswith(_SUSPICIOUS_SUFFIXES) or "." not in host:
        return True
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


async def _resolve_with_loop(hostname: str) -> bool:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError):
        return False
    return bool(infos)


class _StrategyOutcome:
    __slots__ = ("result", "error", "definitive")

    def __init__(
        self,
        result: Optional[ProbeResult] = None,
        error: str = "",
        definitive: bool = False,
    ) -> None:
        self.result = result
        self.error = error
        self.definitive = definitive


class AccessibilityProber:
    """Stricter, user-facing reachability check built on the relay layer."""

    def __init__(
        self,
        session: ClientSession,
        config: AuditorConfig,
        tracker: HealthTracker,
        *,
        fetcher: Optional[ResilientFetcher] = None,
        resolver: Resolver = _resolve_with_loop,
    ) -> None:
        self.session = session
        self.config = config
        self.tracker = tracker
        self.fetcher = fetcher or ResilientFetcher(session, config, tracker)
        self._resolver = resolver
        self._alternates: List[RelayEndpoint] = [
            RelayEndpoint.from_config(r) for r in config.alternate_relays
        ]

    async def probe(self, url: str) -> ProbeResult:
        invalid = self._prevalidate(url)
        if invalid is not None:
            logger.warning("Probe rejected %s: %s", url, invalid.category.value)
            return ProbeResult(False, 0, invalid, "validation")

        strategies = (
            ("direct", self._direct),
            ("relays", self._ranked_relays),
            ("alternate-relays", self._alternate_relays),
        )
        last_error = ""
        for name, strategy in strategies:
            outcome = await strategy(url)
            if outcome.result is not None and outcome.result.reachable:
                logger.info("Probe ok for %s via %s", url, name)
                return outcome.result
            last_error = outcome.error or last_error
            logger.debug("Probe strategy %s failed for %s: %s", name, url, outcome.error)
            if outcome.definitive and outcome.result is not None:
                diagnosis = diagnose(url, last_error)
                logger.warning("Probe definitive failure for %s: %s", url, last_error)
                return ProbeResult(False, outcome.result.status_code, diagnosis, name)

        diagnosis = await self._dns_diagnosis(url, last_error)
        logger.warning("Probe failed for %s: %s", url, diagnosis.category.value)
        return ProbeResult(False, 0, diagnosis, "dns")

    # -- validation -----------------------------------------------------------

    def _prevalidate(self, url: str) -> Optional[Diagnosis]:
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError:
            return diagnose(url, "unparsable URL", DiagnosisCategory.INVALID_URL)
        if parsed.scheme not in ("http", "https") or not hostname:
            return diagnose(
                url, f"unsupported URL {url!r}", DiagnosisCategory.INVALID_URL
            )
        if is_suspicious_host(hostname):
            return diagnose(
                url, f"suspicious host {hostname}", DiagnosisCategory.SUSPICIOUS_DOMAIN
            )
        return None

    # -- strategies -----------------------------------------------------------

    async def _direct(self, url: str) -> _StrategyOutcome:
        timeout = ClientTimeout(total=self.config.probe.direct_timeout)
        try:
            async with self.session.head(
                url,
                headers=self.config.headers,
                timeout=timeout,
                allow_redirects=True,
                raise_for_status=False,
            ) as resp:
                status = resp.status
                reason = resp.reason or ""
        except asyncio.TimeoutError:
            return _StrategyOutcome(error="direct request timeout")
        except ClientError as exc:
            return _StrategyOutcome(error=f"{type(exc).__name__}: {exc}")

        if 200 <= status < 400:
            return _StrategyOutcome(ProbeResult(True, status, None, "direct"))
        return _StrategyOutcome(
            ProbeResult(False, status, None, "direct"),
            error=f"HTTP {status}: {reason}".strip(),
            definitive=status in DEFINITIVE_STATUSES,
        )

    async def _via_relays(
        self, url: str, relays: Sequence[RelayEndpoint], timeout: float, *, record: bool, name: str
    ) -> _StrategyOutcome:
        last_error = ""
        for relay in relays:
            try:
                if record:
                    response = await self.fetcher.try_relay(relay, url, timeout)
                else:
                    response = await fetch_via_relay(
                        self.session, relay, url, timeout, self.config.fetch, self.config.headers
                    )
            except RelayFailure as exc:
                last_error = exc.reason
                if exc.status_code in DEFINITIVE_STATUSES:
                    return _StrategyOutcome(
                        ProbeResult(False, exc.status_code or 0, None, name),
                        error=exc.reason,
                        definitive=True,
                    )
                continue
            return _StrategyOutcome(ProbeResult(True, response.status_code, None, name))
        return _StrategyOutcome(error=last_error)

    async def _ranked_relays(self, url: str) -> _StrategyOutcome:
        top = self.tracker.rank()[: self.config.probe.top_relays]
        return await self._via_relays(
            url, top, self.config.probe.relay_timeout, record=True, name="relays"
        )

    async def _alternate_relays(self, url: str) -> _StrategyOutcome:
        return await self._via_relays(
            url,
            self._alternates,
            self.config.probe.alternate_timeout,
            record=False,
            name="alternate-relays",
        )

    async def _dns_diagnosis(self, url: str, last_error: str) -> Diagnosis:
        hostname = urlparse(url).hostname or ""
        try:
            resolved = await asyncio.wait_for(
                self._resolver(hostname), timeout=self.config.probe.dns_timeout
            )
        except asyncio.TimeoutError:
            logger.debug("DNS check timed out for %s", hostname)
            return diagnose(url, last_error or "DNS lookup timeout")

        if not resolved:
            return diagnose(
                url,
                f"DNS lookup failed: domain {hostname} does not exist",
                DiagnosisCategory.DNS,
            )
        category = classify_error(last_error)
        # the host resolves here, so a resolver error seen earlier was transient
        if category in (DiagnosisCategory.GENERIC, DiagnosisCategory.DNS):
            category = DiagnosisCategory.NETWORK
        return diagnose(
            url,
            last_error,
            category,
            prefix=f"{hostname} is resolvable but unreachable.",
        )
