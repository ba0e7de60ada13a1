# site_auditor/analysis/links.py
"""
Link health checker.

Links are checked in fixed-size batches: every link of a batch is in
flight at once and the next batch starts only when the whole batch has
settled, which bounds the number of simultaneous outbound connections.
A link whose check fails unexpectedly is reported unreachable, the rest
of the batch still counts.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Mapping, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from site_auditor.logger import logger
from site_auditor.utils import chunked, remove_duplicates, same_origin

__all__ = ("LinkCheckResult", "LinkHealthChecker", "Transport", "aiohttp_transport")

# (url, timeout) -> HTTP status; raises on transport failure
Transport = Callable[[str, float], Awaitable[int]]


@dataclass(frozen=True, slots=True)
class LinkCheckResult:
    url: str
    reachable: bool
    status_code: Optional[int] = None
    error: str = ""
    kind: str = "internal"


def aiohttp_transport(
    session: ClientSession, headers: Optional[Mapping[str, str]] = None
) -> Transport:
    """HEAD with redirects followed; servers that refuse HEAD (405) get a GET."""
    request_headers = dict(headers or {})

    async def _check(url: str, timeout: float) -> int:
        options = dict(
            allow_redirects=True, timeout=ClientTimeout(total=timeout), headers=request_headers
        )
        async with session.head(url, **options) as resp:
            status = resp.status
        if status == 405:
            async with session.get(url, **options) as resp:
                status = resp.status
        return status

    return _check


class LinkHealthChecker:
    """Checks that links answer with a 2xx status."""

    def __init__(
        self,
        session: Optional[ClientSession] = None,
        timeout: float = 3.0,
        transport: Optional[Transport] = None,
        max_links: int = 15,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        if transport is None:
            if session is None:
                raise ValueError("either session or transport is required")
            transport = aiohttp_transport(session, headers)
        self.timeout = timeout
        self.max_links = max_links
        self._transport = transport

    async def check_link(self, url: str, kind: str = "internal") -> LinkCheckResult:
        try:
            status = await self._transport(url, self.timeout)
        except asyncio.TimeoutError:
            return LinkCheckResult(url, False, error=f"timeout after {self.timeout:.1f}s", kind=kind)
        except (ClientError, ValueError) as exc:
            return LinkCheckResult(url, False, error=f"{type(exc).__name__}: {exc}", kind=kind)
        if 200 <= status < 300:
            return LinkCheckResult(url, True, status, kind=kind)
        return LinkCheckResult(url, False, status, error=f"HTTP {status}", kind=kind)

    async def check_links(
        self,
        urls: Iterable[str],
        concurrency_limit: int = 3,
        *,
        base_url: Optional[str] = None,
    ) -> List[LinkCheckResult]:
        """Check at most ``max_links`` unique URLs, ``concurrency_limit`` at a time.

        With *base_url* each result is tagged ``internal`` or ``external``.
        """
        targets = remove_duplicates(list(urls))[: self.max_links]
        results: List[LinkCheckResult] = []

        for batch in chunked(targets, concurrency_limit):
            kinds = [self._kind(url, base_url) for url in batch]
            settled = await asyncio.gather(
                *(self.check_link(url, kind) for url, kind in zip(batch, kinds)),
                return_exceptions=True,
            )
            for url, kind, outcome in zip(batch, kinds, settled):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, Exception):
                    logger.warning("Link check of %s failed unexpectedly: %r", url, outcome)
                    outcome = LinkCheckResult(
                        url, False, error=f"{type(outcome).__name__}: {outcome}", kind=kind
                    )
                results.append(outcome)

        broken = sum(1 for r in results if not r.reachable)
        if broken:
            logger.info("Link check: %d of %d links broken", broken, len(results))
        return results

    @staticmethod
    def _kind(url: str, base_url: Optional[str]) -> str:
        if base_url is None or same_origin(url, base_url):
            return "internal"
        return "external"
