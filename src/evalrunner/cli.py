"""CLI interface for evalrunner."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from evalrunner import __version__
from evalrunner.concurrency import ConcurrencyLimiter
from evalrunner.config import settings
from evalrunner.errors import EvalRunnerError, IndexDeletionError, SearchClientError
from evalrunner.evaluator import ResultRecorder, RunReport, SimilarityRunner
from evalrunner.indices import ProvisionReport, TestIndices
from evalrunner.opensearch import OpenSearchClient
from evalrunner.providers import OllamaProvider

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="evalrunner",
    help="Run grouped test specs against an API provider and record the results",
)
indices_app = typer.Typer(help="Create, delete and dump OpenSearch test indices")
app.add_typer(indices_app, name="indices")

console = Console()


def _configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _run_similarity(spec_files: List[Path], results_dir: Path, threshold: Optional[float]) -> RunReport:
    provider = OllamaProvider()
    try:
        runner = SimilarityRunner(
            provider,
            ResultRecorder(results_dir, "similarity"),
            threshold=threshold,
        )
        return await runner.run(spec_files)
    finally:
        await provider.aclose()


def _print_run_report(report: RunReport) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Group", style="cyan")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="yellow")
    table.add_column("Errors", justify="right", style="red")
    table.add_column("Summary", overflow="fold")

    for group in report.groups:
        summary = group.summary or "-"
        if group.teardown_error:
            summary += f" [red](teardown failed: {group.teardown_error})[/red]"
        table.add_row(
            group.group_key,
            str(group.count("passed")),
            str(group.count("failed")),
            str(group.count("error")),
            summary,
        )

    console.print(table)
    console.print(
        f"\n[bold]{report.total}[/bold] test(s): "
        f"[green]{report.passed} passed[/green], "
        f"[yellow]{report.failed} failed[/yellow], "
        f"[red]{report.errored} errored[/red]"
    )

    errored = [
        (group.group_key, outcome)
        for group in report.groups
        for outcome in group.outcomes
        if outcome.status == "error"
    ]
    if errored:
        console.print("\n[bold red]Errored tests:[/bold red]")
        for group_key, outcome in errored:
            console.print(f"  • {group_key}/{outcome.spec_id}: {outcome.message}")


def _print_provision_report(report: ProvisionReport) -> None:
    console.print("\n[bold]Summary[/bold]")
    console.print(f"  ✓ Created: [green]{len(report.created)}[/green]")
    console.print(f"  ⊘ Skipped: [yellow]{len(report.skipped)}[/yellow]")
    console.print(f"  ✗ Failed: [red]{len(report.failed)}[/red]")
    for outcome in report.outcomes:
        if outcome.status == "failed":
            console.print(f"  • {outcome.index.group}/{outcome.index.name}: {outcome.message}")


@app.command()
def run(
    spec_files: List[Path] = typer.Argument(
        ...,
        help="JSONL files with one test spec per line",
        exists=True,
        dir_okay=False,
    ),
    results_dir: Optional[Path] = typer.Option(
        None,
        "--results-dir",
        help="Directory that receives results/<runner>/results_<n>.jsonl",
    ),
    threshold: Optional[float] = typer.Option(
        None,
        "--threshold",
        "-t",
        min=0.0,
        max=1.0,
        help="Similarity score required to pass",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
):
    """
    Run test specs with the similarity runner against the configured Ollama model.
    """
    _configure_logging(verbose)
    console.print("\n[bold blue]Test Spec Evaluation[/bold blue]\n")
    try:
        report = asyncio.run(_run_similarity(spec_files, results_dir or settings.results_dir, threshold))
    except EvalRunnerError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1) from exc

    _print_run_report(report)
    if report.exit_code:
        raise typer.Exit(report.exit_code)


async def _with_indices(action):
    client = OpenSearchClient()
    try:
        indices = TestIndices(client, ConcurrencyLimiter(settings.provisioning_concurrency), settings.indices_dir)
        return await action(indices)
    finally:
        await client.aclose()


@indices_app.command("create")
def create_indices(
    groups: Optional[List[str]] = typer.Argument(
        None,
        help="Index groups to create (default: every group in the indices directory)",
    ),
):
    """Create test indices and load their documents."""
    _configure_logging()
    report = asyncio.run(_with_indices(lambda indices: indices.create(*(groups or []))))
    _print_provision_report(report)
    if report.failed:
        raise typer.Exit(1)


@indices_app.command("delete-all")
def delete_all_indices():
    """Delete every test index known to the indices directory."""
    _configure_logging()
    try:
        asyncio.run(_with_indices(lambda indices: indices.delete_all()))
    except IndexDeletionError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc
    console.print("[green]Deleted all test indices[/green]")


@indices_app.command("dump")
def dump_indices(
    group: str = typer.Argument(..., help="Group directory to write the fixtures into"),
    names: List[str] = typer.Argument(..., help="Index names to export"),
):
    """Export index mappings and documents into fixture files."""
    _configure_logging()
    try:
        paths = asyncio.run(_with_indices(lambda indices: indices.dump_indices(group, names)))
    except (SearchClientError, httpx.HTTPError) as exc:
        console.print(f"[red]Dump failed: {exc}[/red]")
        raise typer.Exit(1) from exc
    for path in paths:
        console.print(f"  ✓ [green]{path}[/green]")


@indices_app.command("init")
def init_cluster():
    """Apply the cluster settings required by large index sets."""
    _configure_logging()
    try:
        asyncio.run(_with_indices(lambda indices: indices.init()))
    except (SearchClientError, httpx.HTTPError) as exc:
        console.print(f"[red]Cluster init failed: {exc}[/red]")
        raise typer.Exit(1) from exc
    console.print("[green]Cluster settings applied[/green]")


@app.command()
def version():
    """Show version information."""
    console.print(f"[cyan]evalrunner[/cyan] v{__version__}")


def main():
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
