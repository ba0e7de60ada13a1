# File: site_auditor/relay/__init__.py
"""site_auditor.relay: Получение страниц через релеи, учёт их здоровья и проверка доступности."""

from .fetcher import FetchResult, ResilientFetcher
from .health import HealthTracker, RelayEndpoint, RelayStats
from .prober import AccessibilityProber, Diagnosis, DiagnosisCategory, ProbeResult

__all__ = [
    "AccessibilityProber",
    "Diagnosis",
    "DiagnosisCategory",
    "FetchResult",
    "HealthTracker",
    "ProbeResult",
    "RelayEndpoint",
    "RelayStats",
    "ResilientFetcher",
]
