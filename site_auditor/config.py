"""
Модуль для загрузки и валидации конфигурации SiteAuditor.
Используется Pydantic для описания схемы и проверки данных.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

# JSON envelope keys of relays that wrap the target body
_KNOWN_ENVELOPES: Dict[str, str] = {
    "allorigins": "contents",
    "codetabs": "data",
}


class RelayConfig(BaseModel):
    """One substitute network path: ``template + quote(target_url)``."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    template: str = Field(..., min_length=1, description="URL prefix of the relay.")
    envelope: Optional[str] = Field(
        None, description="JSON key holding the page body, None for raw bodies."
    )

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"template": data}
        if isinstance(data, dict) and "envelope" not in data:
            template = str(data.get("template", "")).lower()
            for marker, key in _KNOWN_ENVELOPES.items():
                if marker in template:
                    data = {**data, "envelope": key}
                    break
        return data

    @field_validator("template")
    @classmethod
    def _check_scheme(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"relay template must be an http(s) URL prefix: {v!r}")
        return v


DEFAULT_RELAYS: List[str] = [
    "https://corsproxy.io/?",
    "https://api.allorigins.win/get?url=",
    "https://api.codetabs.com/v1/proxy?quest=",
    "https://thingproxy.freeboard.io/fetch/",
    "https://proxy.cors.sh/",
    "https://cors.eu.org/",
]

DEFAULT_ALTERNATE_RELAYS: List[str] = [
    "https://api.codetabs.com/v1/proxy?quest=",
    "https://cors.bridged.cc/",
    "https://yacdn.org/proxy/",
    "https://jsonp.afeld.me/?url=",
]


class FetchSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_retries: int = Field(3, ge=1, description="Полных проходов по всем релеям.")
    base_timeout: float = Field(8.0, gt=0, description="Таймаут первой попытки (секунд).")
    timeout_step: float = Field(2.0, ge=0, description="Прирост таймаута на попытку.")
    backoff_base: float = Field(1.0, ge=0, description="База экспоненциальной паузы.")
    jitter_max: float = Field(0.5, ge=0, description="Максимальный случайный джиттер.")
    min_content_bytes: int = Field(200, ge=0, description="Минимальная длина страницы.")
    block_markers: List[str] = Field(
        default_factory=lambda: ["Access Denied", "Blocked"],
        description="Маркеры страниц блокировки.",
    )


class ProbeSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    direct_timeout: float = Field(5.0, gt=0)
    relay_timeout: float = Field(8.0, gt=0)
    alternate_timeout: float = Field(12.0, gt=0)
    dns_timeout: float = Field(5.0, gt=0)
    top_relays: int = Field(3, ge=1, description="Сколько лучших релеев пробовать.")


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ttl: float = Field(15 * 60, gt=0, description="Время жизни результата (секунд).")
    max_entries: int = Field(50, ge=1)
    cleanup_threshold: int = Field(40, ge=0)

    @model_validator(mode="after")
    def _check_threshold(self) -> CacheSettings:
        if self.cleanup_threshold >= self.max_entries:
            raise ValueError("cleanup_threshold must be lower than max_entries")
        return self


class LimitSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_links_to_check: int = Field(15, ge=0, le=50)
    link_concurrency: int = Field(3, ge=1)
    link_timeout: float = Field(3.0, gt=0)
    max_forms: int = Field(10, ge=0)
    max_images: int = Field(100, ge=0)


class AuditorConfig(BaseModel):
    """Конфигурация движка анализа."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        min_length=1,
        description="Заголовок User-Agent.",
    )
    accept_language: str = Field("en-US,en;q=0.9", description="Заголовок Accept-Language.")
    relays: List[RelayConfig] = Field(
        default_factory=lambda: [RelayConfig.model_validate(r) for r in DEFAULT_RELAYS],
        min_length=1,
        description="Упорядоченный список релеев.",
    )
    alternate_relays: List[RelayConfig] = Field(
        default_factory=lambda: [RelayConfig.model_validate(r) for r in DEFAULT_ALTERNATE_RELAYS],
        description="Запасной набор релеев для проверки доступности.",
    )
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    limits: LimitSettings = Field(default_factory=LimitSettings)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": self.accept_language,
            "Cache-Control": "no-cache",
        }


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if data is None:
        # пустой файл: все значения по умолчанию
        return {}
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None]) -> AuditorConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект AuditorConfig.
    Без явного пути использует configs/default.yaml, а если его нет, значения по умолчанию.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            return AuditorConfig()
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    return AuditorConfig(**data)


__all__ = [
    "AuditorConfig",
    "CacheSettings",
    "FetchSettings",
    "LimitSettings",
    "ProbeSettings",
    "RelayConfig",
    "load_config",
]
