# site_auditor/relay/health.py
"""
Relay pool with per-relay running statistics and health-based ranking.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote

from site_auditor.config import RelayConfig
from site_auditor.logger import logger

__all__ = ("RelayEndpoint", "RelayStats", "FetchAttempt", "HealthTracker")

_DAY_MS = 24 * 60 * 60 * 1000
_DEFAULT_LATENCY_MS = 8000.0


@dataclass(frozen=True, slots=True)
class RelayEndpoint:
    """Address template of a relay and the JSON envelope key of its responses."""

    template: str
    envelope: Optional[str] = None

    @classmethod
    def from_config(cls, relay: RelayConfig) -> RelayEndpoint:
        return cls(template=relay.template, envelope=relay.envelope)

    def build_url(self, target: str) -> str:
        return self.template + quote(target, safe="")


@dataclass(slots=True)
class RelayStats:
    successes: int = 0
    failures: int = 0
    avg_latency_ms: float = _DEFAULT_LATENCY_MS
    last_used_at: float = 0.0  # epoch milliseconds, 0 = never used


@dataclass(frozen=True, slots=True)
class FetchAttempt:
    """Outcome of one request through one relay."""

    relay: RelayEndpoint
    elapsed_ms: float
    ok: bool
    reason: str = ""
    status_code: Optional[int] = None


class HealthTracker:
    """Owns relay statistics and ranks relays by a composite health score.

    score = 0.5 * success_rate + 0.3 * speed_score + 0.2 * recency_bonus

    All mutation goes through :meth:`record_success` / :meth:`record_failure`;
    :meth:`stats` hands out copies only.
    """

    def __init__(
        self,
        relays: Iterable[RelayEndpoint],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._relays: List[RelayEndpoint] = list(dict.fromkeys(relays))
        if not self._relays:
            raise ValueError("HealthTracker needs at least one relay")
        self._clock = clock
        self._stats: Dict[RelayEndpoint, RelayStats] = {r: RelayStats() for r in self._relays}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, relays: Sequence[RelayConfig], **kwargs) -> HealthTracker:
        return cls((RelayEndpoint.from_config(r) for r in relays), **kwargs)

    @property
    def relays(self) -> List[RelayEndpoint]:
        return list(self._relays)

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _score(self, stats: RelayStats, now_ms: float) -> float:
        success_rate = stats.successes / max(1, stats.successes + stats.failures)
        speed_score = max(0.0, 1.0 - stats.avg_latency_ms / 10000.0)
        recency_bonus = max(0.0, 1.0 - (now_ms - stats.last_used_at) / _DAY_MS)
        return success_rate * 0.5 + speed_score * 0.3 + recency_bonus * 0.2

    def score(self, relay: RelayEndpoint) -> float:
        with self._lock:
            return self._score(self._stats.get(relay) or RelayStats(), self._now_ms())

    def rank(self) -> List[RelayEndpoint]:
        """Relays ordered best first; ties keep configuration order."""
        with self._lock:
            now = self._now_ms()
            scores = {r: self._score(self._stats[r], now) for r in self._relays}
        return sorted(self._relays, key=lambda r: scores[r], reverse=True)

    def stats(self, relay: RelayEndpoint) -> RelayStats:
        with self._lock:
            stats = self._stats.get(relay)
            return replace(stats) if stats is not None else RelayStats()

    def _get(self, relay: RelayEndpoint) -> RelayStats:
        # relays outside the pool (alternate sets) are tracked on first use
        stats = self._stats.get(relay)
        if stats is None:
            stats = self._stats[relay] = RelayStats()
        return stats

    def record_success(self, relay: RelayEndpoint, latency_ms: float) -> None:
        with self._lock:
            stats = self._get(relay)
            stats.successes += 1
            stats.avg_latency_ms = (
                stats.avg_latency_ms * (stats.successes - 1) + latency_ms
            ) / stats.successes
            stats.last_used_at = self._now_ms()
        logger.debug("Relay ok %s (%.0f ms)", relay.template, latency_ms)

    def record_failure(self, relay: RelayEndpoint) -> None:
        with self._lock:
            stats = self._get(relay)
            stats.failures += 1
            stats.last_used_at = self._now_ms()

    def record(self, attempt: FetchAttempt) -> None:
        """Fold a finished attempt into the relay statistics."""
        if attempt.ok:
            self.record_success(attempt.relay, attempt.elapsed_ms)
        else:
            self.record_failure(attempt.relay)
            logger.debug("Relay failed %s: %s", attempt.relay.template, attempt.reason)
