# === FILE: site_auditor/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска SiteAuditor через командную строку.

Команды:
  analyze URL   Проанализировать страницу и вывести/сохранить отчёт
  probe URL     Проверить, доступна ли страница для анализа
  config        Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stderr, если не указан)
  --log-format FORMAT Формат логирования (e.g. "%(asctime)s %(levelname)s %(message)s")

Команда analyze опции:
  --json PATH         Сохранить JSON-отчёт в файл
  --pretty            Преформатировать JSON-вывод (отступ 2)
  --timeout SEC       Таймаут всего анализа (секунд)

Дополнительно:
  --version, -v       Показать версию SiteAuditor

Пример:
  site-auditor analyze https://example.com --json report.json --pretty
"""
import sys
import asyncio
from pathlib import Path

import click

from site_auditor import __version__
from site_auditor.config import load_config
from site_auditor.exceptions import AnalysisFailed
from site_auditor.logger import init_logging
from site_auditor.engine import run_analysis, run_probe
from site_auditor.progress import CallbackProgress
from site_auditor.report.json_report import render_json

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SiteAuditor, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='WARNING', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stderr, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """Группа команд SiteAuditor CLI."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path)
    except Exception as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('analyze', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Сохранить JSON-отчёт в файл'
)
@click.option(
    '--pretty', is_flag=True,
    help='Преформатировать JSON-вывод (отступ 2)'
)
@click.option(
    '--timeout', 'timeout',
    type=float,
    default=None,
    help='Таймаут всего анализа (секунд)'
)
@click.option(
    '--progress/--no-progress', 'show_progress',
    default=False,
    help='Показывать этапы анализа в stderr'
)
@click.pass_context
def analyze(ctx, url, json_output, pretty, timeout, show_progress):
    """Проанализировать страницу URL и вывести отчёт."""
    cfg = ctx.obj['config']
    sink = None
    if show_progress:
        sink = CallbackProgress(lambda pct, status: click.echo(f'[{pct:3d}%] {status}', err=True))
    try:
        if timeout:
            report = asyncio.run(
                asyncio.wait_for(run_analysis(cfg, url, sink), timeout=timeout)
            )
        else:
            report = asyncio.run(run_analysis(cfg, url, sink))
    except asyncio.TimeoutError:
        print_error(f'Анализ не завершён за {timeout} секунд')
    except AnalysisFailed as e:
        hint = ' (можно повторить позже)' if e.retryable else ''
        print_error(f'Анализ не удался: {e.reason}{hint}')
    except Exception as e:
        print_error(f'Ошибка при анализе: {e}')

    # Если не сохраняем в файл: печатаем в stdout
    if not json_output:
        click.echo(report.json(pretty=pretty))
        return

    try:
        saved_json = render_json(report, json_output, pretty=pretty)
        click.echo(f'JSON report: {saved_json}')
        click.echo(f'Score: {report.score}/100, issues: {len(report.issues)}')
    except Exception as e:
        print_error(f'Ошибка при сохранении JSON: {e}')


@cli.command('probe', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.pass_context
def probe(ctx, url):
    """Проверить доступность URL для анализа."""
    cfg = ctx.obj['config']
    try:
        result = asyncio.run(run_probe(cfg, url))
    except Exception as e:
        print_error(f'Ошибка при проверке: {e}')

    if result.reachable:
        click.secho(f'{url} is reachable (HTTP {result.status_code}, via {result.strategy})', fg='green')
        return
    diagnosis = result.diagnosis
    category = diagnosis.category.value if diagnosis else 'generic'
    print_error(f'[{category}] {diagnosis}')


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
