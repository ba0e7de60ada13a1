# File: site_auditor/utils.py
"""site_auditor.utils: Утилитарные функции для обработки URL и коллекций."""

from __future__ import annotations

from typing import Collection, Iterator, List, Sequence, TypeVar
from urllib.parse import urljoin, urlparse, urlunparse

from site_auditor.logger import logger

__all__: Sequence[str] = (
    "normalize_url",
    "is_http_url",
    "extract_domain",
    "same_origin",
    "absolutize",
    "extract_filename",
    "remove_duplicates",
    "chunked",
)

T = TypeVar("T")


def normalize_url(url: str) -> str:
    """Нормализует URL для ключей кеша: нижний регистр схемы и хоста, без фрагмента."""
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")
    normalized = urlunparse((scheme, netloc, path, "", parsed.query, ""))
    logger.debug("Normalized URL: %s -> %s", url, normalized)
    return normalized


def is_http_url(url: str) -> bool:
    """Проверяет, что URL использует http(s) и содержит хост."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def extract_domain(url: str) -> str:
    """Возвращает имя хоста из URL без дополнительных проверок."""
    return urlparse(url).hostname or ""


def same_origin(url: str, base_url: str) -> bool:
    a, b = urlparse(url), urlparse(base_url)
    return (a.scheme, a.netloc.lower()) == (b.scheme, b.netloc.lower())


def absolutize(href: str, base_url: str) -> str | None:
    """Абсолютный URL для href или None, если ссылка не ведёт на http(s)-ресурс."""
    raw = href.strip()
    if not raw or raw.startswith(("mailto:", "javascript:", "tel:", "data:", "#")):
        return None
    try:
        absolute = urljoin(base_url, raw)
    except ValueError:
        return None
    parsed = urlparse(absolute)
    if parsed.scheme not in ("http", "https"):
        return None
    return urlunparse(parsed._replace(fragment=""))


def extract_filename(src: str) -> str:
    """Имя файла изображения из src, или служебная метка, если его нет."""
    if not src:
        return "image-without-src"
    last = src.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    return last if "." in last else "image-without-name"


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Удаляет дубликаты из списка URL, сохраняя порядок."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate URLs", removed)
    return unique


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Делит последовательность на части фиксированного размера."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]
