"""
Command line interface for pseudoscript.

    pseudoscript check FILE...             diagnostics, exit 1 on any error
    pseudoscript tokens FILE               token stream
    pseudoscript ast FILE                  syntax tree as JSON
    pseudoscript style FILE                detected scope style
    pseudoscript complete FILE LINE COL    completion at a 0-based position
"""

import json
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import LOG_LEVELS, AnalysisConfig, ConfigurationError
from .engine import AnalysisEngine, AnalysisResult
from .parser.ast_nodes import json_value

logger = logging.getLogger(__name__)

console = Console()
error_console = Console(stderr=True)


def setup_logging(level: str) -> None:
    """Route package logging to a rich handler on stderr."""
    handler = RichHandler(console=error_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    package_logger = logging.getLogger("pseudoscript")
    package_logger.handlers[:] = [handler]
    package_logger.setLevel(level.upper())
    package_logger.propagate = False


def _read_source(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise click.FileError(path, hint=e.strerror) from e


def _analyze_file(ctx: click.Context, path: str) -> AnalysisResult:
    engine: AnalysisEngine = ctx.obj["engine"]
    return engine.analyze(_read_source(path), version=0)


@click.group()
@click.version_option(__version__, prog_name="pseudoscript")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              help="JSON configuration file")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), default=None,
              help="Logging level (overrides the configuration file)")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]):
    """Tolerant parser and analyzer for loose multi-paradigm pseudocode."""
    try:
        config = AnalysisConfig.load(config_path) if config_path else AnalysisConfig()
        setup_logging(log_level or config.log_level)
        engine = AnalysisEngine(config)
    except ConfigurationError as e:
        raise click.ClickException(f"Configuration error: {e}") from e
    ctx.obj = {"config": config, "engine": engine}


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print diagnostics as JSON")
@click.pass_context
def check(ctx: click.Context, files, as_json: bool):
    """Report diagnostics for FILES. Exits with 1 if any is an error."""
    failed = False
    report = {}
    for path in files:
        result = _analyze_file(ctx, path)
        failed = failed or result.has_errors
        if as_json:
            report[path] = [d.to_dict() for d in result.diagnostics]
            continue

        if not result.diagnostics:
            console.print(f"[green]{path}[/green]: no problems ({result.scope.file_style.value})")
            continue
        table = Table(title=path, title_justify="left")
        table.add_column("Line:Col", justify="right")
        table.add_column("Severity")
        table.add_column("Code")
        table.add_column("Message")
        for diagnostic in result.diagnostics:
            colour = "red" if diagnostic.is_error else "yellow"
            table.add_row(
                str(diagnostic.span.start),
                f"[{colour}]{diagnostic.severity.value}[/{colour}]",
                diagnostic.code,
                diagnostic.message,
            )
        console.print(table)

    if as_json:
        click.echo(json.dumps(report, indent=2))
    if failed:
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--trivia/--no-trivia", default=False, help="Include whitespace, newlines and comments")
@click.pass_context
def tokens(ctx: click.Context, file: str, trivia: bool):
    """Print the token stream of FILE."""
    result = _analyze_file(ctx, file)
    table = Table()
    table.add_column("Span")
    table.add_column("Kind")
    table.add_column("Lexeme")
    table.add_column("Concept / value")
    for token in result.tokens:
        if token.is_trivia and not trivia:
            continue
        if token.concept is not None:
            detail = token.concept
        elif token.value is not None:
            detail = token.value.value if isinstance(token.value, Enum) else repr(json_value(token.value))
        else:
            detail = ""
        table.add_row(str(token.span), token.kind.value, repr(token.lexeme), str(detail))
    console.print(table)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--outline", is_flag=True, help="Indented outline instead of JSON")
@click.pass_context
def ast(ctx: click.Context, file: str, outline: bool):
    """Print the syntax tree of FILE."""
    result = _analyze_file(ctx, file)
    if outline:
        click.echo(result.tree.pretty())
    else:
        click.echo(json.dumps(result.tree.to_dict(), indent=2, ensure_ascii=False, allow_nan=False))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def style(ctx: click.Context, file: str):
    """Print the detected scope style of FILE."""
    result = _analyze_file(ctx, file)
    click.echo(result.scope.file_style.value)
    for block in result.scope.block_styles:
        start = result.line_index.location(block.start)
        click.echo(f"  line {start.line + 1}: {block.style.value}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("line", type=click.IntRange(min=0))
@click.argument("column", type=click.IntRange(min=0))
@click.pass_context
def complete(ctx: click.Context, file: str, line: int, column: int):
    """Print completions at 0-based LINE and COLUMN of FILE."""
    engine: AnalysisEngine = ctx.obj["engine"]
    result = _analyze_file(ctx, file)
    for item in engine.complete(result, line, column):
        click.echo(f"{item.kind.value}\t{item.label}\t{item.detail}")


def main():
    cli(prog_name="pseudoscript")


if __name__ == "__main__":
    main()
