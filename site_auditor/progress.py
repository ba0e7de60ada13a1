# File: site_auditor/progress.py
"""site_auditor.progress: Приёмники событий прогресса анализа.

Движок сообщает о ходе работы на крупных этапах (10, 25, 40, 70, 85, 100 %).
Ошибка приёмника записывается в лог и никогда не влияет на сам анализ.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from site_auditor.logger import logger

__all__ = [
    "CallbackProgress",
    "LoggingProgress",
    "NullProgress",
    "ProgressEvent",
    "ProgressSink",
    "QueueProgress",
    "safe_report",
]


@runtime_checkable
class ProgressSink(Protocol):
    def report(self, percent: int, status: str) -> None: ...


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    percent: int
    status: str

    @property
    def done(self) -> bool:
        return self.percent >= 100


class NullProgress:
    def report(self, percent: int, status: str) -> None:
        return None


class LoggingProgress:
    """Пишет этапы в лог проекта."""

    def report(self, percent: int, status: str) -> None:
        logger.info("[%3d%%] %s", percent, status)


class CallbackProgress:
    """Адаптер для обычной функции ``(percent, status) -> None``."""

    def __init__(self, callback: Callable[[int, str], None]) -> None:
        self._callback = callback

    def report(self, percent: int, status: str) -> None:
        self._callback(percent, status)


class QueueProgress:
    """Канал событий на :class:`asyncio.Queue` для потребителя в другой задаче."""

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize)

    def report(self, percent: int, status: str) -> None:
        try:
            self.queue.put_nowait(ProgressEvent(percent, status))
        except asyncio.QueueFull:
            logger.debug("Progress queue full, dropping %d%% event", percent)

    async def events(self):
        """Асинхронно отдаёт события до финального (100 %) включительно."""
        while True:
            event = await self.queue.get()
            yield event
            if event.done:
                return


def safe_report(sink: Optional[ProgressSink], percent: int, status: str) -> None:
    if sink is None:
        return
    try:
        sink.report(percent, status)
    except Exception as exc:
        logger.warning("Progress sink failed at %d%%: %s", percent, exc)
