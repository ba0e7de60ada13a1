# setup.py
from setuptools import setup, find_packages

setup(
    name="site_auditor",
    version="0.1.0",
    description="Асинхронный аудит веб-страниц SiteAuditor через релеи",
    packages=find_packages(exclude=["tests", "tests.*"]),  # найдёт site_auditor и подпакеты
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "lxml>=4.9",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "click>=8.1",
    ],
    extras_require={
        "test": ["pytest>=7.4", "pytest-asyncio>=0.23"],
    },
    entry_points={
        "console_scripts": ["site-auditor=site_auditor.cli:cli"],
    },
    python_requires=">=3.11",
)
