# File: tests/test_cli.py
"""Тесты для CLI (`site_auditor/cli.py`) с использованием click.testing.CliRunner.
Проверяют команды `analyze`, `probe`, `config`, `--version`, а также обработку ошибок.
"""
import asyncio
import json
import types

import pytest
import site_auditor.cli as cli_module
from click.testing import CliRunner
from conftest import page_html
from site_auditor.aggregator import build_report
from site_auditor.analysis.facets import analyze_document
from site_auditor.cli import cli
from site_auditor.exceptions import FetchExhausted
from site_auditor.parser.document import parse_document


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Без configs/default.yaml в рабочей папке используются значения по умолчанию."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def patch_run_analysis(monkeypatch):
    """Патчим run_analysis, чтобы отчёт строился из локальной страницы без сети."""

    async def fake_analysis(cfg, url, progress=None):
        doc = parse_document(page_html(title=None), url)
        report = build_report(await analyze_document(doc, 0.5))
        if progress is not None:
            progress.report(100, "Analysis complete")
        return report

    monkeypatch.setattr(cli_module, "run_analysis", fake_analysis)


def test_cli_module_is_patchable():
    assert isinstance(cli_module, types.ModuleType)
    assert cli_module.cli is cli


def test_analyze_runs_patched_analysis(monkeypatch):
    calls = []

    async def recording(cfg, url, progress=None):
        calls.append(url)
        doc = parse_document(page_html(), url)
        return build_report(await analyze_document(doc, 0.5))

    monkeypatch.setattr(cli_module, "run_analysis", recording)

    runner = CliRunner()
    result = runner.invoke(cli, ["analyze", "https://example.com/"])
    assert result.exit_code == 0
    assert calls == ["https://example.com/"]
    assert json.loads(result.output)["score"] == 100


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "SiteAuditor" in result.output


def test_show_config(tmp_path):
    cfg_file = tmp_path / "custom.json"
    cfg_file.write_text(
        json.dumps({"relays": ["http://relay.example/?u="], "limits": {"max_links_to_check": 7}}),
        encoding="utf-8",
    )

    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(cfg_file), "config"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["relays"][0]["template"] == "http://relay.example/?u="
    assert data["limits"]["max_links_to_check"] == 7


def test_bad_config_reported(tmp_path):
    cfg_file = tmp_path / "bad.yaml"
    cfg_file.write_text("relays: []\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(cli, ["--config", str(cfg_file), "config"])
    assert result.exit_code == 1
    assert "Ошибка загрузки конфигурации" in result.output


def test_analyze_stdout():
    runner = CliRunner()
    result = runner.invoke(cli, ["analyze", "https://example.com/", "--pretty"])
    assert result.exit_code == 0
    output = json.loads(result.output)
    assert output["url"] == "https://example.com/"
    assert output["score"] == 85
    assert output["issues"][0]["id"] == "title-missing"


def test_analyze_json_file(tmp_path):
    out = tmp_path / "reports" / "out.json"
    runner = CliRunner()
    result = runner.invoke(cli, ["analyze", "https://example.com/", "--json", str(out)])
    assert result.exit_code == 0
    assert "JSON report:" in result.output
    assert "Score: 85/100" in result.output
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["technical"]["title"] == ""


def test_analyze_progress_flag():
    runner = CliRunner()
    result = runner.invoke(cli, ["analyze", "https://example.com/", "--progress"])
    assert result.exit_code == 0
    assert "[100%] Analysis complete" in result.output


def test_analyze_timeout(monkeypatch):
    async def slow(cfg, url, progress=None):
        await asyncio.sleep(2)

    monkeypatch.setattr(cli_module, "run_analysis", slow)

    runner = CliRunner()
    result = runner.invoke(cli, ["analyze", "https://example.com/", "--timeout", "0.2"])
    assert result.exit_code != 0
    assert "не завершён" in result.output


def test_analyze_exhausted(monkeypatch):
    async def exhausted(cfg, url, progress=None):
        raise FetchExhausted(url, 3, "HTTP 502: Bad Gateway")

    monkeypatch.setattr(cli_module, "run_analysis", exhausted)

    runner = CliRunner()
    result = runner.invoke(cli, ["analyze", "https://example.com/"])
    assert result.exit_code == 1
    assert "можно повторить" in result.output


def test_probe_suspicious_host():
    runner = CliRunner()
    result = runner.invoke(cli, ["probe", "http://localhost/"])
    assert result.exit_code == 1
    assert "[suspicious_domain]" in result.output
