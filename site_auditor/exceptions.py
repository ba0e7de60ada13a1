"""Error taxonomy shared by the fetch, probe and analysis layers."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from site_auditor.relay.prober import Diagnosis

__all__ = (
    "AuditError",
    "RelayFailure",
    "InvalidContent",
    "AnalysisFailed",
    "FetchExhausted",
    "ProbeUnreachable",
)


class AuditError(Exception):
    """Base class of every error raised by site_auditor."""


class RelayFailure(AuditError):
    """A single relay attempt failed. Recorded and retried, never surfaced."""

    def __init__(self, reason: str, status_code: Optional[int] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class InvalidContent(RelayFailure):
    """The relay answered but the body does not look like a usable page."""


class AnalysisFailed(AuditError):
    """The analysis could not produce a report."""

    retryable: bool = False

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class FetchExhausted(AnalysisFailed):
    """Every relay failed on every attempt."""

    retryable = True

    def __init__(self, url: str, attempts: int, last_reason: str = "") -> None:
        reason = f"{url} unreachable after {attempts} attempts"
        if last_reason:
            reason = f"{reason} (last error: {last_reason})"
        super().__init__(reason)
        self.url = url
        self.attempts = attempts
        self.last_reason = last_reason


class ProbeUnreachable(AuditError):
    """All accessibility strategies failed; carries the user-facing diagnosis."""

    def __init__(self, diagnosis: "Diagnosis") -> None:
        super().__init__(diagnosis.message)
        self.diagnosis = diagnosis

    @property
    def category(self) -> str:
        return self.diagnosis.category.value
