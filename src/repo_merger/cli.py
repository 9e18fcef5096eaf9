"""
Command-line interface for the repository merge tool.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .import_orchestrator import ImportOrchestrator
from .models import (
    ImportOptions,
    ImportReport,
    MergeConflictError,
    MergeStrategy,
    RefKind,
    RepoMergeError,
)
from .name_mapper import branch_name
from . import __version__ as PACKAGE_VERSION


console = Console()
logger = logging.getLogger(__name__)

LOG_ENV_VAR = "REPO_MERGER_LOG"
LOG_STEM = "repo-merger"


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"repo-merger {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.repo-merger/repo-merger.log)."""
    env_path = os.environ.get(LOG_ENV_VAR)
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".repo-merger"
    base.mkdir(parents=True, exist_ok=True)
    return base / f"{LOG_STEM}.log"


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Setup logging with a per-run file plus a rotating aggregate.

    - Per-run log file: <stem>-YYYYMMDD_HHMMSS.log
    - Aggregate log: <stem>.log (rotated)
    - Console logging disabled by default; enable via --verbose or --log-level

    Returns the aggregate log path.
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.exists() and provided.is_dir():
        base_dir = provided
        base_stem = LOG_STEM
        aggregate_path = base_dir / f"{base_stem}.log"
    else:
        base_dir = provided.parent
        base_stem = provided.stem or LOG_STEM
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"

    root = logging.getLogger()
    # Clear existing handlers to avoid duplication in tests / repeated invocations
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        console_handler = RichHandler(console=console, rich_tracebacks=True)
        console_handler.setLevel(level_map.get((console_level or "info").lower(), logging.INFO))
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

    return aggregate_path


def _maybe_print_log_notice(verbose: bool, console_level: Optional[str], log_path: Optional[Path]) -> None:
    """Inform user about logging destination and how to enable console logs."""
    if verbose or console_level or not log_path:
        return
    console.print(f"[dim]Logs are written to {log_path}. Use -v or --log-level to see them here.[/dim]")


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--repo-path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Destination repository (defaults to current directory)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_level: Optional[str], repo_path: Optional[Path]) -> None:
    """Import another repository's branches and tags, with full history, into this one."""
    log_path = setup_logging(verbose, console_level=log_level)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    ctx.obj["log_path"] = log_path
    ctx.obj["repo_path"] = repo_path.resolve() if isinstance(repo_path, Path) else None
    logger.debug(f"CLI init: cwd={Path.cwd()} repo_path={ctx.obj['repo_path']}")


@cli.command("import")
@click.argument("source_repo")
@click.argument("source_id")
@click.option("--subdirectory", "-s", help="Move all imported files under this directory (rewrites history)")
@click.option("--branch", "-b", help="Import only this branch")
@click.option("--skip-tags", "-t", is_flag=True, help="Do not import tags")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing branches and tags")
@click.option("--dry-run", "-n", is_flag=True, help="Show what would be done without executing")
@click.option("--merge-to", "-m", help="Merge the imported default branch into this branch")
@click.option("--preserve-paths", "-p", is_flag=True, help="Keep original file paths (no subdirectory)")
@click.option(
    "--rewrite-history",
    "-r",
    is_flag=True,
    help="Use git-filter-repo instead of the built-in rewriter for --subdirectory",
)
@click.option("--graft", "-g", is_flag=True, help="Record a graft point for the merge commit")
@click.option("--squash-merge", is_flag=True, help="Squash the imported history into one commit when merging")
@click.option("--no-commit", is_flag=True, help="Prepare the merge but do not commit it")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in MergeStrategy]),
    default=MergeStrategy.RECURSIVE.value,
    show_default=True,
    help="Merge strategy used with --merge-to",
)
@click.pass_context
def import_(
    ctx: click.Context,
    source_repo: str,
    source_id: str,
    subdirectory: Optional[str],
    branch: Optional[str],
    skip_tags: bool,
    force: bool,
    dry_run: bool,
    merge_to: Optional[str],
    preserve_paths: bool,
    rewrite_history: bool,
    graft: bool,
    squash_merge: bool,
    no_commit: bool,
    strategy: str,
) -> None:
    """
    Import SOURCE_REPO (path or URL) with branches named SOURCE_ID-<branch>.

    Example: repo-merger import ../libfoo lib -s vendor/libfoo
    """
    orchestrator: Optional[ImportOrchestrator] = None
    options = ImportOptions(
        source_repo=source_repo,
        source_id=source_id,
        subdirectory=subdirectory,
        branch=branch,
        skip_tags=skip_tags,
        force=force,
        dry_run=dry_run,
        merge_to=merge_to,
        preserve_paths=preserve_paths,
        rewrite_history=rewrite_history,
        graft=graft,
        squash_merge=squash_merge,
        no_commit=no_commit,
        strategy=strategy,
    )
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        orchestrator = ImportOrchestrator(ctx.obj.get("repo_path"))

        console.print(f"\n📥 [bold]Importing[/bold] {source_repo} as [cyan]{source_id}[/cyan]")
        if dry_run:
            console.print("[yellow]DRY RUN - no changes will be made[/yellow]")

        report = orchestrator.run(options)

        if report.dry_run:
            _display_plan(report)
            console.print("\n🔍 [bold]Dry run complete[/bold] - no changes made")
            return

        _display_report(report)
        _display_next_steps(report, options)
        if report.has_failures:
            console.print("\n⚠️  Some refs could not be imported; see the table above.", style="bold yellow")
        else:
            console.print("\n🎉 [bold green]Import complete![/bold green]")

    except MergeConflictError as e:
        if orchestrator is not None and orchestrator.report is not None:
            _display_report(orchestrator.report)
        console.print("\n❌ [bold red]Merge stopped on conflicts[/bold red]")
        for path in e.conflict_files:
            console.print(f"  • {path}")
        console.print(str(e), style="yellow")
        logger.debug("Merge stopped on conflicts", exc_info=True)
        sys.exit(1)
    except RepoMergeError as e:
        if orchestrator is not None and orchestrator.report is not None and orchestrator.report.outcomes:
            _display_report(orchestrator.report)
        console.print(f"\n❌ [bold red]Error:[/bold red] {e}")
        logger.debug("Import aborted due to RepoMergeError", exc_info=True)
        sys.exit(1)
    except (click.Abort, KeyboardInterrupt):
        console.print("\n\n🚫 [bold yellow]Operation cancelled by user[/bold yellow]")
        logger.debug("Operation cancelled by user", exc_info=True)
        sys.exit(130)
    except Exception as e:
        console.print(f"\n💥 [bold red]Unexpected Error:[/bold red] {e}")
        if ctx.obj.get("verbose"):
            console.print_exception()
        logger.debug("Unexpected error during import", exc_info=True)
        sys.exit(1)


@cli.command()
def version() -> None:
    """Print the current repo-merger version."""
    console.print(f"repo-merger {PACKAGE_VERSION}")


def _display_plan(report: ImportReport) -> None:
    """Display the actions a dry run would perform."""
    table = Table(show_header=True, header_style="bold magenta", title="Planned actions")
    table.add_column("#", justify="center")
    table.add_column("Action", style="cyan")
    for i, action in enumerate(report.planned_actions, 1):
        table.add_row(str(i), action)
    console.print(table)


def _display_report(report: ImportReport) -> None:
    """Display created / skipped / failed refs and the merge result."""
    if report.outcomes:
        table = Table(show_header=True, header_style="bold magenta", title="Imported refs")
        table.add_column("Type", style="blue")
        table.add_column("Source", style="dim")
        table.add_column("Destination", style="cyan")
        table.add_column("Status")
        table.add_column("Details", style="dim")

        styles = {"created": "green", "skipped": "yellow", "failed": "red"}
        for outcome in report.outcomes:
            status = outcome.status.value
            details = outcome.reason or (outcome.target[:8] if outcome.target else "")
            table.add_row(
                outcome.kind.value,
                outcome.source_name,
                outcome.destination,
                f"[{styles[status]}]{status}[/{styles[status]}]",
                details,
            )
        console.print(table)

    branches = len(report.created(RefKind.BRANCH))
    tags = len(report.created(RefKind.TAG))
    console.print(
        f"Branches created: {branches}, tags created: {tags}, "
        f"skipped: {len(report.skipped())}, failed: {len(report.failed())}"
    )

    merge = report.merge_result
    if merge is not None:
        mode = "Squash merged" if merge.squashed else "Merged"
        state = f"commit {merge.merge_commit[:8]}" if merge.merge_commit else "not committed"
        console.print(
            f"🔀 {mode} {merge.source_branch} into {merge.target_branch} "
            f"(strategy={merge.strategy.value}, {state})"
        )
        if merge.graft_recorded:
            console.print("🪢 Graft recorded in .git/info/grafts")

    for note in report.notes:
        console.print(f"ℹ️  {note}", style="dim")


def _display_next_steps(report: ImportReport, options: ImportOptions) -> None:
    created = report.created(RefKind.BRANCH)
    if not created:
        return
    default = report.default_branch or created[0].source_name
    imported = branch_name(options.source_id, default)
    console.print("\n[bold]Next steps:[/bold]")
    console.print(f"  git log --oneline --graph {imported}")
    if report.merge_result is None:
        console.print(f"  git merge --allow-unrelated-histories {imported}")


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n🚫 [bold yellow]Operation cancelled by user[/bold yellow]")
        logger.debug("Top-level cancellation (KeyboardInterrupt)", exc_info=True)
        sys.exit(130)
    except Exception as e:
        console.print(f"\n💥 [bold red]Unexpected error:[/bold red] {e}")
        logger.debug("Unexpected error in main()", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
