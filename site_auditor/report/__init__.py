# File: site_auditor/report/__init__.py
"""site_auditor.report: Сохранение отчётов анализа, используемое CLI и тестами."""

from .json_report import render_json

__all__ = ["render_json"]
