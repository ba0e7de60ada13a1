# File: site_auditor/cache.py
"""site_auditor.cache: TTL/LRU кеш результатов и объединение одновременных запросов."""

from __future__ import annotations

import asyncio
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from site_auditor.config import CacheSettings
from site_auditor.logger import logger
from site_auditor.utils import normalize_url

__all__ = ["CacheEntry", "CacheStats", "ResultCache"]

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    key: str
    payload: T
    created_at: float
    approximate_size_bytes: int
    access_count: int = 1


@dataclass(frozen=True, slots=True)
class CacheStats:
    entries: int
    in_flight: int
    hits: int
    misses: int
    evictions: int


def _approximate_size(payload: Any) -> int:
    try:
        return len(json.dumps(payload, default=str))
    except (TypeError, ValueError):
        return len(repr(payload))


class ResultCache(Generic[T]):
    """Кеш завершённых анализов по URL с TTL и вытеснением давно не читанных записей.

    :meth:`get_or_compute` также объединяет одновременные запросы одного URL
    в одно вычисление (single flight).
    """

    def __init__(
        self,
        ttl: float = 15 * 60,
        max_entries: int = 50,
        cleanup_threshold: int = 40,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if cleanup_threshold >= max_entries:
            raise ValueError("cleanup_threshold must be lower than max_entries")
        self.ttl = ttl
        self.max_entries = max_entries
        self.cleanup_threshold = cleanup_threshold
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._in_flight: Dict[str, asyncio.Task[T]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @classmethod
    def from_settings(cls, settings: CacheSettings, **kwargs: Any) -> ResultCache[T]:
        return cls(settings.ttl, settings.max_entries, settings.cleanup_threshold, **kwargs)

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(url: str) -> str:
        return normalize_url(url)

    def _expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.created_at > self.ttl

    def get(self, url: str) -> Optional[T]:
        key = self.make_key(url)
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._expired(entry):
            del self._entries[key]
            self._misses += 1
            logger.debug("Cache expired: %s", key)
            return None
        entry.access_count += 1
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.payload

    def set(self, url: str, payload: T) -> None:
        key = self.make_key(url)
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._cleanup()
        self._entries[key] = CacheEntry(
            key=key,
            payload=payload,
            created_at=self._clock(),
            approximate_size_bytes=_approximate_size(payload),
        )
        self._entries.move_to_end(key)

    def invalidate(self, url: str) -> bool:
        return self._entries.pop(self.make_key(url), None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def _cleanup(self) -> None:
        """Drop expired entries, then least-recently-accessed ones down to the threshold."""
        before = len(self._entries)
        for key in [k for k, e in self._entries.items() if self._expired(e)]:
            del self._entries[key]
        while len(self._entries) > self.cleanup_threshold:
            self._entries.popitem(last=False)
        removed = before - len(self._entries)
        self._evictions += removed
        logger.debug("Cache cleanup: %d entries removed", removed)

    def stats(self) -> CacheStats:
        return CacheStats(
            entries=len(self._entries),
            in_flight=len(self._in_flight),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def is_in_flight(self, url: str) -> bool:
        return self.make_key(url) in self._in_flight

    async def get_or_compute(self, url: str, compute: Callable[[], Awaitable[T]]) -> T:
        """Вернуть закешированный результат, дождаться уже идущего вычисления или запустить новое."""
        key = self.make_key(url)

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight computation: %s", key)
            return await asyncio.shield(pending)

        cached = self.get(url)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return cached

        async def _run() -> T:
            result = await compute()
            self.set(url, result)
            return result

        task: asyncio.Task[T] = asyncio.ensure_future(_run())
        self._in_flight[key] = task
        task.add_done_callback(lambda t: self._settle(key, t))
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task[T]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # mark the exception retrieved even if every waiter went away
            task.exception()
