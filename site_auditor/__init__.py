# site_auditor/__init__.py
"""
SiteAuditor package initializer.
Defines package version; the CLI lives in site_auditor.cli (entry point site_auditor.cli:cli).
"""
__version__ = "0.1.0"
