"""stacknag CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from stacknag import __version__


@click.group()
@click.version_option(version=__version__, prog_name="stacknag")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
def main(*, verbose: bool, quiet: bool) -> None:
    """stacknag - rule-pack compliance checks for infrastructure templates."""
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.argument("template", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--pack",
    "pack_specs",
    multiple=True,
    help="Rule pack as module:attr (repeatable; default: packs from stacknag.yml).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: ./stacknag.yml).",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--verbose-messages",
    is_flag=True,
    default=False,
    help="Append rule explanations to messages.",
)
@click.option(
    "--log-ignores",
    is_flag=True,
    default=False,
    help="Report suppressed findings as info messages.",
)
@click.option("--no-report", is_flag=True, default=False, help="Do not write compliance reports.")
@click.option(
    "--report-format",
    "report_formats",
    type=click.Choice(["csv", "json"]),
    multiple=True,
    help="Report format (repeatable; default: csv).",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for compliance reports.",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Exit 1 if any error-level finding is reported.",
)
def check(
    *,
    template: Path,
    pack_specs: tuple[str, ...],
    config_path: Path | None,
    fmt: str | None,
    verbose_messages: bool,
    log_ignores: bool,
    no_report: bool,
    report_formats: tuple[str, ...],
    output_dir: Path | None,
    strict: bool,
) -> None:
    """Check TEMPLATE against one or more rule packs.

    Exit codes: 0 = clean or findings without --strict,
    1 = error-level findings with --strict, 2 = configuration error.
    """
    from stacknag.config import load_config
    from stacknag.engine.runner import RunError, format_json, format_porcelain, format_rich
    from stacknag.engine.runner import run_check as _run_check
    from stacknag.errors import NagConfigurationError
    from stacknag.loggers.report import NagReportFormat

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        config = load_config(config_path)
    except NagConfigurationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    config = config.with_overrides(
        verbose=verbose_messages or None,
        log_ignores=log_ignores or None,
        reports=False if no_report else None,
        report_formats=tuple(NagReportFormat(f) for f in report_formats) or None,
        output_dir=str(output_dir) if output_dir is not None else None,
    )
    pack_list = list(pack_specs) or list(config.packs)
    if not pack_list:
        click.echo("Error: no rule packs given (use --pack or 'packs' in stacknag.yml)", err=True)
        sys.exit(2)

    try:
        result = _run_check(template, config=config, packs=pack_list)
    except RunError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    formatters = {
        "rich": format_rich,
        "json": format_json,
        "porcelain": format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)

    if strict and result.error_count:
        sys.exit(1)


@main.command()
@click.argument("pack_specs", nargs=-1, required=True)
def packs(pack_specs: tuple[str, ...]) -> None:
    """List the rules of one or more packs given as MODULE:ATTR."""
    from rich.console import Console
    from rich.table import Table

    from stacknag.engine.runner import RunError, load_pack

    console = Console()
    for spec in pack_specs:
        try:
            pack = load_pack(spec, reports=False)
        except RunError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(2)

        table = Table(title=pack.pack_name, padding=(0, 1))
        table.add_column("rule", style="cyan", no_wrap=True)
        table.add_column("level")
        table.add_column("types", no_wrap=True)
        table.add_column("info")
        for rule in pack.rules:
            types = ", ".join(sorted(rule.resource_types)) if rule.resource_types else "*"
            table.add_row(pack.rule_id(rule), rule.level.value, types, rule.info)
        console.print(table)
        console.print()
