"""
Typer command-line interface for building course documents.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from .build import SHORTCODES_DIRNAME, BuildReport, build_project
from .config import CONFIG_FILENAME, ProjectConfig, load_config
from .document import parse_document, render_document
from .errors import ConfigError, CourseDocError
from .formats import OutputFormat
from .split import SplitterConfig, segment_to_dict
from .templates import TemplateRegistry
from .utils import read_text, write_text

app = typer.Typer(
    help="Build course material (HTML, Markdown, notebooks) from annotated sources.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

install_rich_traceback(show_locals=False)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _parse_formats(names: Optional[List[str]]) -> Optional[List[OutputFormat]]:
    if not names:
        return None
    try:
        return [OutputFormat.from_name(name) for name in names]
    except CourseDocError as exc:
        raise typer.BadParameter(exc.message, param_hint="--format") from exc


def _print_report(report: BuildReport) -> None:
    table = Table(title="Build summary", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Document", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Outputs")
    rows = [
        (
            result.path.as_posix(),
            "[green]ok[/]",
            ", ".join(out.relative_to(report.build_dir).as_posix() for out in result.outputs),
        )
        for result in report.results
    ]
    rows += [
        (failure.path.as_posix(), "[bold red]failed[/]", f"[red]{type(failure.error).__name__}[/]")
        for failure in report.failures
    ]
    for row in sorted(rows):
        table.add_row(*row)
    console.print(table)

    for failure in report.failures:
        err_console.print(f"[bold red]{failure.path.as_posix()}:[/] {escape(str(failure.error))}", highlight=False)

    console.print(
        f"[bold green]Built[/bold green] {len(report.results)}/{report.documents} document(s)"
        f" into {report.build_dir.resolve()}"
    )


@app.command()
def build(
    project: Annotated[
        Path,
        typer.Argument(
            help=f"Project directory containing {CONFIG_FILENAME}.",
            exists=True,
            file_okay=False,
        ),
    ] = Path("."),
    formats: Annotated[
        Optional[List[str]],
        typer.Option(
            "-f",
            "--format",
            help="Output format to build; repeat for several (defaults to the project's list).",
        ),
    ] = None,
    reveal: Annotated[
        Optional[bool],
        typer.Option(
            "--reveal/--no-reveal",
            help="Show solutions in learner formats (defaults to the project setting).",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Log every step of the build."),
    ] = False,
) -> None:
    """Build every document of a project."""

    _configure_logging(verbose)
    selected = _parse_formats(formats)
    try:
        report = build_project(project, formats=selected, reveal=reveal)
    except ConfigError as exc:
        err_console.print(f"[bold red]Configuration error:[/] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=2) from exc

    _print_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def render(
    source: Annotated[
        Path,
        typer.Argument(help="Document to render (.py, .md or .ipynb).", exists=True, dir_okay=False, readable=True),
    ],
    output_format: Annotated[
        str,
        typer.Option("-f", "--format", help="Output format: html, markdown, notebook or answer-key."),
    ] = OutputFormat.MARKDOWN.value,
    reveal: Annotated[
        bool,
        typer.Option("--reveal", help="Show solutions in learner formats."),
    ] = False,
    templates: Annotated[
        Optional[Path],
        typer.Option(
            "--templates",
            help="Shortcode directory laid out as <format>/<name>.<ext>.",
            file_okay=False,
        ),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            help=f"Project {CONFIG_FILENAME} supplying the comment convention and template values.",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Write to this file instead of standard output.", dir_okay=False),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Log every step of the render."),
    ] = False,
) -> None:
    """Render a single document."""

    _configure_logging(verbose)
    selected = _parse_formats([output_format])[0]
    try:
        if config_path is not None:
            config = load_config(config_path)
        else:
            config = ProjectConfig(title=source.stem)
    except ConfigError as exc:
        err_console.print(f"[bold red]Configuration error:[/] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=2) from exc

    if templates is None and config_path is not None:
        templates = config_path.parent / config.templates_dir / SHORTCODES_DIRNAME
    registry = TemplateRegistry.from_directory(templates) if templates is not None else TemplateRegistry()

    try:
        document = parse_document(read_text(source), path=Path(source.name), config=config.splitter())
        text = render_document(
            document,
            selected,
            registry,
            config.template_context(),
            reveal_solutions=reveal or config.reveal_solutions,
            language=config.language,
        )
    except CourseDocError as exc:
        err_console.print(f"[bold red]{type(exc).__name__}:[/] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=1) from exc

    if output is None:
        typer.echo(text, nl=False)
    else:
        write_text(output, text)
        console.print(f"[bold green]Output file[/bold green] : {output.resolve()}")


@app.command()
def split(
    source: Annotated[
        Path,
        typer.Argument(help="Annotated source file to split.", exists=True, dir_okay=False, readable=True),
    ],
    leaders: Annotated[
        str,
        typer.Option("--leaders", help="Characters that start a comment line."),
    ] = "#",
    marker: Annotated[
        str,
        typer.Option("--marker", help="Character turning a comment into markup."),
    ] = "|",
) -> None:
    """Print the segment tree of a source file as JSON."""

    _configure_logging(False)
    try:
        config = SplitterConfig(leaders=leaders, marker=marker)
    except ConfigError as exc:
        raise typer.BadParameter(exc.message) from exc
    try:
        document = parse_document(read_text(source), path=Path(source.name), config=config)
    except CourseDocError as exc:
        err_console.print(f"[bold red]{type(exc).__name__}:[/] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=1) from exc

    payload = {
        "title": document.title,
        "front_matter": document.front_matter.model_dump(by_alias=True),
        "content": [segment_to_dict(node) for node in document.content],
    }
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    app()
