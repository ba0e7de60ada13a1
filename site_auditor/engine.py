# File: site_auditor/engine.py
"""site_auditor.engine: Orchestration layer: получение страницы, анализ, проверка ссылок и оценка."""

from __future__ import annotations

import asyncio
from typing import Optional

from aiohttp import ClientSession

from site_auditor.aggregator import AnalysisReport, build_report
from site_auditor.analysis.facets import analyze_document
from site_auditor.analysis.links import LinkHealthChecker
from site_auditor.analysis.scoring import score_facts
from site_auditor.cache import ResultCache
from site_auditor.config import AuditorConfig, load_config
from site_auditor.exceptions import AnalysisFailed
from site_auditor.logger import logger
from site_auditor.parser.document import parse_document
from site_auditor.progress import ProgressSink, safe_report
from site_auditor.relay.fetcher import ResilientFetcher
from site_auditor.relay.health import HealthTracker
from site_auditor.relay.prober import AccessibilityProber, ProbeResult, Resolver
from site_auditor.utils import is_http_url

__all__ = ["Engine", "run_analysis", "run_probe"]


class Engine:
    """Фасад для CLI и тестов: анализ страницы и проверка доступности.

    HealthTracker и ResultCache принадлежат движку и передаются явно,
    поэтому несколько движков могут разделять одну статистику релеев.
    """

    @staticmethod
    def load_config(path: Optional[str]) -> AuditorConfig:
        """Загружает конфиг из YAML/JSON или использует значения по умолчанию."""
        return load_config(path)

    def __init__(
        self,
        config: AuditorConfig,
        *,
        tracker: Optional[HealthTracker] = None,
        cache: Optional[ResultCache[AnalysisReport]] = None,
        session: Optional[ClientSession] = None,
        resolver: Optional[Resolver] = None,
    ) -> None:
        self.config = config
        self.tracker = tracker or HealthTracker.from_config(config.relays)
        if cache is None:
            cache = ResultCache.from_settings(config.cache)
        self.cache: ResultCache[AnalysisReport] = cache
        self._resolver = resolver
        self._session = session
        self._owns_session = False
        self._fetcher: Optional[ResilientFetcher] = None
        self._prober: Optional[AccessibilityProber] = None
        self._links: Optional[LinkHealthChecker] = None
        if session is not None:
            self._bind(session)

    def _bind(self, session: ClientSession) -> None:
        self._session = session
        self._fetcher = ResilientFetcher(session, self.config, self.tracker)
        prober_kwargs = {"fetcher": self._fetcher}
        if self._resolver is not None:
            prober_kwargs["resolver"] = self._resolver
        self._prober = AccessibilityProber(session, self.config, self.tracker, **prober_kwargs)
        self._links = LinkHealthChecker(
            session,
            timeout=self.config.limits.link_timeout,
            max_links=self.config.limits.max_links_to_check,
            headers=self.config.headers,
        )

    async def __aenter__(self) -> Engine:
        if self._session is None:
            self._bind(ClientSession(headers=self.config.headers))
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def _require_session(self) -> None:
        if any(part is None for part in (self._session, self._fetcher, self._prober, self._links)):
            raise RuntimeError("Engine needs a session: pass one or use 'async with Engine(...)'")

    async def probe_accessibility(self, url: str) -> ProbeResult:
        """Проверяет, можно ли вообще проанализировать URL."""
        self._require_session()
        return await self._prober.probe(url)

    async def analyze(self, url: str, progress: Optional[ProgressSink] = None) -> AnalysisReport:
        """Анализирует страницу; повторные и одновременные запросы одного URL берутся из кеша.

        Raises AnalysisFailed (FetchExhausted, если ни один релей не ответил).
        """
        self._require_session()
        if not is_http_url(url):
            raise AnalysisFailed(f"invalid URL: {url!r}")

        computed = False

        async def _compute() -> AnalysisReport:
            nonlocal computed
            computed = True
            return await self._analyze(url, progress)

        report = await self.cache.get_or_compute(url, _compute)
        if not computed:
            logger.info("Serving cached analysis for %s", url)
            safe_report(progress, 100, "Analysis complete (cached)")
        return report

    async def _analyze(self, url: str, progress: Optional[ProgressSink]) -> AnalysisReport:
        self._require_session()
        logger.info("Starting analysis of %s", url)

        safe_report(progress, 10, "Fetching page")
        fetched = await self._fetcher.fetch(url)

        try:
            safe_report(progress, 25, "Parsing document")
            doc = await asyncio.to_thread(parse_document, fetched.content, url, self.config.limits)

            safe_report(progress, 40, "Analyzing SEO, performance and security")
            facts = await analyze_document(doc, fetched.elapsed_seconds)

            safe_report(progress, 70, "Checking links")
            link_results = await self._links.check_links(
                doc.internal_links + doc.external_links,
                self.config.limits.link_concurrency,
                base_url=url,
            )

            safe_report(progress, 85, "Scoring")
            report = build_report(
                facts,
                link_results,
                score=score_facts(facts, link_results),
                fetched_via=fetched.relay.template,
            )
        except Exception as exc:
            logger.error("Analysis of %s failed: %s", url, exc)
            raise AnalysisFailed(f"analysis of {url} failed: {exc}") from exc

        safe_report(progress, 100, "Analysis complete")
        logger.info("Analysis of %s done: score %d, %d issues", url, report.score, len(report.issues))
        return report


async def run_analysis(
    config: AuditorConfig, url: str, progress: Optional[ProgressSink] = None
) -> AnalysisReport:
    """Одноразовый анализ с собственной сессией (используется CLI)."""
    async with Engine(config) as engine:
        return await engine.analyze(url, progress)


async def run_probe(config: AuditorConfig, url: str) -> ProbeResult:
    async with Engine(config) as engine:
        return await engine.probe_accessibility(url)
