"""Typer-based CLI for CodeFlow change analysis."""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .analysis import CodeFlowAnalyzer, CodeFlowResult, SourceProvider
from .diff_source import DirectorySource, GitCommandError, GitRepository, PatchParseError, parse_patch
from .graph_export import graph_to_dot, graph_to_json
from .models import CallGraph, GraphBuildOptions, LineRange
from .parser import extract_functions
from .ranges import diffs_to_changed_ranges, is_parseable_file

app = typer.Typer(
    help="🔀 CodeFlow CLI: call graphs for the blast radius of a change.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    help="⚙️  Configuration: default graph limits.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)


class OutputFormat(str, Enum):
    table = "table"
    json = "json"
    dot = "dot"


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"CodeFlow CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """CodeFlow CLI: see which functions a change touches and who calls them."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


# ===================================================================
# Helpers
# ===================================================================

def _resolve_options(
    max_nodes: Optional[int],
    max_edges: Optional[int],
    show_external: Optional[bool],
    max_snippet_lines: Optional[int],
) -> GraphBuildOptions:
    overrides = {
        "max_nodes": max_nodes,
        "max_edges": max_edges,
        "show_external": show_external,
        "max_snippet_lines": max_snippet_lines,
    }
    try:
        base = config.load_graph_options()
        return dataclasses.replace(base, **{k: v for k, v in overrides.items() if v is not None})
    except ValueError as exc:
        raise typer.BadParameter(str(exc))


def _load_diff(
    repo_path: Path,
    commit: Optional[str],
    patch_file: Optional[Path],
) -> Tuple[str, SourceProvider]:
    """Return the patch text and the provider to read sources from."""
    if patch_file is not None:
        patch_text = patch_file.read_text(encoding="utf-8", errors="replace")
        source: SourceProvider = GitRepository(repo_path) if commit else DirectorySource(repo_path)
        return patch_text, source

    repo = GitRepository(repo_path)
    try:
        patch_text = repo.commit_diff(commit) if commit else repo.working_patch()
    except GitCommandError as exc:
        err_console.print(f"[red]Git error:[/red] {exc}")
        raise typer.Exit(code=1)
    return patch_text, repo


def _parse_line_range(text: str) -> LineRange:
    start_text, sep, end_text = text.partition("-")
    try:
        start = int(start_text)
        end = int(end_text) if sep else start
        if start < 1:
            raise ValueError(text)
        return LineRange(start, end)
    except ValueError:
        raise typer.BadParameter(f"Invalid line range '{text}'. Use START-END, e.g. 12-30.")


def _render_table(graph: CallGraph) -> None:
    table = Table(title="Call graph", show_lines=False)
    table.add_column("Function", style="bold")
    table.add_column("Kind")
    table.add_column("Location")
    table.add_column("Changed", justify="center")
    table.add_column("Calls", justify="right")
    table.add_column("Called by", justify="right")

    for node in graph.nodes:
        symbol = node.symbol
        location = (
            symbol.file_path if symbol.kind == "external"
            else f"{symbol.file_path}:{symbol.range.start}-{symbol.range.end}"
        )
        table.add_row(
            symbol.name,
            symbol.kind,
            location,
            "[yellow]●[/yellow]" if symbol.is_changed else "",
            str(len(node.calls)),
            str(len(node.called_by)),
        )
    console.print(table)

    names = {n.id: n.symbol.name for n in graph.nodes}
    for edge in graph.edges:
        arrow = "⇢" if edge.is_external else "→"
        console.print(f"  {names[edge.source]} {arrow} {names[edge.target]}  [dim](line {edge.call_site.line})[/dim]")


def _emit(text: str, output: Optional[Path]) -> None:
    if output is not None:
        output.write_text(text, encoding="utf-8")
        err_console.print(f"Wrote {output}")
    else:
        typer.echo(text)


def _report_result(result: CodeFlowResult, output_format: OutputFormat, output: Optional[Path]) -> None:
    notices = console if output_format is OutputFormat.table else err_console

    if result.error:
        err_console.print(f"[red]Could not parse diff:[/red] {result.error}")
        raise typer.Exit(code=1)

    for path in result.skipped_files:
        notices.print(f"[yellow]Skipped unreadable file:[/yellow] {path}")

    if not result.has_changes:
        notices.print("No changes to analyze.")
    elif result.parseable_files_count == 0:
        notices.print(
            f"No TypeScript/JavaScript files changed "
            f"({result.changed_files_count} changed file(s))."
        )

    graph = result.graph
    if output_format is OutputFormat.json:
        _emit(graph_to_json(graph), output)
    elif output_format is OutputFormat.dot:
        _emit(graph_to_dot(graph), output)
    elif graph.nodes:
        _render_table(graph)
    elif result.parseable_files_count:
        notices.print("No functions found in the changed lines.")

    if graph.was_capped:
        notices.print(
            f"[yellow]Graph capped:[/yellow] showing {len(graph.nodes)} of "
            f"{graph.total_functions} functions and {len(graph.edges)} edges."
        )


# ===================================================================
# Commands
# ===================================================================

@app.command("graph")
def graph_command(
    repo_path: Path = typer.Argument(
        Path("."), exists=True, file_okay=False,
        help="Git repository, or the source root when --patch is given.",
    ),
    commit: Optional[str] = typer.Option(
        None, "--commit", "-c", help="Analyze this commit instead of the working tree.",
    ),
    patch_file: Optional[Path] = typer.Option(
        None, "--patch", "-p", exists=True, dir_okay=False,
        help="Read the unified diff from a file instead of git.",
    ),
    max_nodes: Optional[int] = typer.Option(None, "--max-nodes", min=0, help="Maximum nodes to show."),
    max_edges: Optional[int] = typer.Option(None, "--max-edges", min=0, help="Maximum edges to show."),
    show_external: Optional[bool] = typer.Option(
        None, "--external/--no-external", help="Include unresolved (external) call targets.",
    ),
    max_snippet_lines: Optional[int] = typer.Option(
        None, "--max-snippet-lines", min=0, help="Maximum lines kept in each snippet.",
    ),
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", "-f", help="Output format."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write json/dot output to a file."),
):
    """Build the one-hop call graph around changed functions."""
    options = _resolve_options(max_nodes, max_edges, show_external, max_snippet_lines)
    patch_text, source = _load_diff(repo_path, commit, patch_file)

    analyzer = CodeFlowAnalyzer(source, options)
    result = analyzer.analyze_patch(patch_text, revision=commit)
    _report_result(result, output_format, output)


@app.command("ranges")
def ranges_command(
    repo_path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Git repository."),
    commit: Optional[str] = typer.Option(None, "--commit", "-c", help="Commit to inspect."),
    patch_file: Optional[Path] = typer.Option(
        None, "--patch", "-p", exists=True, dir_okay=False, help="Read the diff from a file.",
    ),
):
    """List the changed line ranges per file."""
    patch_text, _ = _load_diff(repo_path, commit, patch_file)
    try:
        changed_files = diffs_to_changed_ranges(parse_patch(patch_text))
    except PatchParseError as exc:
        err_console.print(f"[red]Could not parse diff:[/red] {exc}")
        raise typer.Exit(code=1)

    if not changed_files:
        typer.echo("No changes to analyze.")
        raise typer.Exit(code=0)

    for changed_file in changed_files:
        marker = " " if is_parseable_file(changed_file.file_path) else "-"
        spans = ", ".join(str(r) for r in changed_file.changed_ranges)
        typer.echo(f"{marker} {changed_file.file_path}: {spans}")


@app.command("symbols")
def symbols_command(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="TS/JS source file."),
    changed: Optional[List[str]] = typer.Option(
        None, "--changed", help="Changed line range START-END (repeatable).",
    ),
    max_snippet_lines: Optional[int] = typer.Option(None, "--max-snippet-lines", min=0),
    show_snippets: bool = typer.Option(False, "--snippets", help="Print each symbol's snippet."),
):
    """List the functions extracted from one file."""
    if not is_parseable_file(file_path.name):
        raise typer.BadParameter(f"Unsupported file type: {file_path.suffix or file_path.name}")

    ranges = [_parse_line_range(text) for text in changed or []]
    options = _resolve_options(None, None, None, max_snippet_lines)
    source = file_path.read_text(encoding="utf-8", errors="replace")
    symbols = extract_functions(source, str(file_path), ranges, options.max_snippet_lines)

    if not symbols:
        typer.echo("No functions found.")
        raise typer.Exit(code=0)

    table = Table(title=str(file_path))
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Lines")
    table.add_column("Changed", justify="center")
    table.add_column("Signature", style="dim")
    for symbol in symbols:
        table.add_row(
            symbol.name,
            symbol.kind,
            str(symbol.range),
            "[yellow]●[/yellow]" if symbol.is_changed else "",
            symbol.signature,
        )
    console.print(table)

    if show_snippets:
        for symbol in symbols:
            console.rule(symbol.name)
            console.print(symbol.snippet, markup=False, highlight=False)


@config_app.command("show")
def config_show():
    """Show the effective graph options."""
    try:
        options = config.load_graph_options()
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    typer.echo(f"Config file: {config.CONFIG_FILE}")
    for key, value in dataclasses.asdict(options).items():
        typer.echo(f"  {key} = {str(value).lower() if isinstance(value, bool) else value}")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Option name, e.g. max_nodes."),
    value: str = typer.Argument(..., help="New value."),
):
    """Persist a default graph option."""
    try:
        parsed = config.parse_option_value(key, value)
        options = dataclasses.replace(config.load_graph_options(), **{key: parsed})
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    if not config.save_graph_options(options):
        err_console.print(f"[red]Could not write {config.CONFIG_FILE}[/red]")
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {value}")


if __name__ == "__main__":
    app()
