# File: site_auditor/parser/__init__.py
"""site_auditor.parser: Разбор HTML-страницы в неизменяемый AnalysisDocument."""

from .document import AnalysisDocument, ImageInfo, parse_document
from .forms import CaptchaInfo, FormDetails, FormField, FormSecurity
from .technologies import Technology, detect_technologies

__all__ = [
    "AnalysisDocument",
    "CaptchaInfo",
    "FormDetails",
    "FormField",
    "FormSecurity",
    "ImageInfo",
    "Technology",
    "detect_technologies",
    "parse_document",
]
