"""
check-updates and diff commands for git-vendor.

Both resolve refs against their remotes without touching vendor.lock.
check-updates exits 0 only when every tracked ref matches its lock.
"""

import threading
from typing import Optional

import click

from ..cli_utils import (
    add_common_options,
    drain,
    echo_progress,
    emit_json,
    handle_errors,
    project_root,
)
from ..config import configure_logging, load_config
from ..domain.operation import UpdateStatus, UpdateSummary
from ..exit_codes import GENERAL_ERROR, CommandError, UpdatesAvailableError
from ..infra.yaml_store import StateStore
from ..services.update_service import UpdateOptions, UpdateService
from .sync import make_git_client


def _service(ctx: click.Context, verbose: bool):
    settings = load_config()
    configure_logging(settings, verbose)
    root = project_root(ctx)
    store = StateStore(root)
    cancel_event = threading.Event()
    git = make_git_client(settings, verbose, cancel_event)
    service = UpdateService(root, config=settings, git_client=git,
                            state_store=store, cancel_event=cancel_event)
    return service, store.load_config(), store.load_lock()


def render_updates_table(summary: UpdateSummary, title: str) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title=title, show_header=True)
    table.add_column("Vendor", style="cyan")
    table.add_column("Ref")
    table.add_column("Locked", style="dim")
    table.add_column("Latest")
    table.add_column("Tag")
    table.add_column("Status")

    colors = {
        UpdateStatus.UP_TO_DATE: "green",
        UpdateStatus.UPDATE_AVAILABLE: "yellow",
        UpdateStatus.NEW: "blue",
        UpdateStatus.ERROR: "red",
    }
    for detail in summary.details:
        color = colors[detail.status]
        status = detail.error if detail.error else detail.status.value.replace('_', ' ')
        table.add_row(
            detail.vendor,
            detail.ref,
            detail.current_hash[:8] or "-",
            detail.latest_hash[:8] or "-",
            detail.tag or "",
            f"[{color}]{status}[/{color}]",
        )
    console.print(table)


def _render_plain(summary: UpdateSummary) -> None:
    for detail in summary.details:
        label = f"{detail.vendor}@{detail.ref}"
        if detail.status == UpdateStatus.ERROR:
            click.echo(f"{label}: error: {detail.error}")
        elif detail.status == UpdateStatus.UP_TO_DATE:
            click.echo(f"{label}: up to date")
        elif detail.status == UpdateStatus.NEW:
            click.echo(f"{label}: not locked (tip {detail.latest_hash[:8]})")
        else:
            tag = f" ({detail.tag})" if detail.tag else ""
            click.echo(f"{label}: {detail.current_hash[:8]} -> {detail.latest_hash[:8]}{tag}")


@click.command('check-updates')
@click.argument('vendor', required=False)
@add_common_options('group', 'parallel', 'verbose', 'json', 'pretty')
@click.pass_context
@handle_errors
def check_updates_handler(
    ctx: click.Context,
    vendor: Optional[str],
    group: Optional[str],
    parallel: Optional[int],
    verbose: bool,
    output_json: bool,
    pretty: bool,
):
    """
    Report vendors whose remote ref moved since it was locked.

    Exits 0 only when every tracked ref matches vendor.lock, so it can
    gate CI:

        git-vendor check-updates || echo "vendored code is behind"
    """
    service, vendor_config, lock = _service(ctx, verbose)
    options = UpdateOptions(vendor=vendor, group=group, verbose=verbose, max_workers=parallel)
    summary = drain(service.check(vendor_config, lock, options), output_json)

    if output_json:
        for detail in summary.details:
            emit_json(detail.to_dict())
        emit_json(summary.to_dict())
    elif pretty:
        render_updates_table(summary, "Vendor Updates")
    else:
        _render_plain(summary)

    if not summary.all_current:
        raise UpdatesAvailableError(
            f"{summary.outdated} update(s) available, {summary.failed} error(s)",
            outdated=summary.outdated,
            errors=summary.failed,
        )
    if not output_json:
        echo_progress("All vendors are up to date")


@click.command('diff')
@click.argument('vendor', required=False)
@add_common_options('group', 'parallel', 'verbose', 'json', 'pretty')
@click.option('--max-commits', type=click.IntRange(1), default=None,
              help='Commits to list per ref (default from settings)')
@click.pass_context
@handle_errors
def diff_handler(
    ctx: click.Context,
    vendor: Optional[str],
    group: Optional[str],
    parallel: Optional[int],
    verbose: bool,
    output_json: bool,
    pretty: bool,
    max_commits: Optional[int],
):
    """
    Show the commits between each locked hash and its remote tip.

    Examples:

        git-vendor diff
        git-vendor diff mylib --max-commits 50
    """
    service, vendor_config, lock = _service(ctx, verbose)
    options = UpdateOptions(vendor=vendor, group=group, verbose=verbose,
                            max_workers=parallel, max_commits=max_commits)
    summary = drain(service.diff(vendor_config, lock, options), output_json)

    if output_json:
        for detail in summary.details:
            emit_json(detail.to_dict())
        emit_json(summary.to_dict())
    elif pretty:
        _render_diff_pretty(summary)
    else:
        _render_diff_plain(summary)

    if summary.failed:
        raise CommandError(f"{summary.failed} ref(s) could not be resolved", GENERAL_ERROR)


def _render_diff_plain(summary: UpdateSummary) -> None:
    for detail in summary.details:
        label = f"{detail.vendor}@{detail.ref}"
        if detail.status == UpdateStatus.ERROR:
            click.echo(f"{label}: error: {detail.error}\n")
            continue
        if detail.status == UpdateStatus.UP_TO_DATE:
            click.echo(f"{label}: up to date ({detail.current_hash[:8]})\n")
            continue

        tag = f" [{detail.tag}]" if detail.tag else ""
        old = detail.current_hash[:8] or "(unlocked)"
        click.echo(f"{label}: {old} -> {detail.latest_hash[:8]}{tag}")
        if detail.diverged:
            click.echo("  history diverged: locked commit is not an ancestor of the tip")
        for commit in detail.commits:
            click.echo(f"  {commit.short_hash} {commit.date[:10]} {commit.subject} ({commit.author})")
        click.echo()


def _render_diff_pretty(summary: UpdateSummary) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    for detail in summary.details:
        label = f"[cyan]{detail.vendor}[/cyan]@{detail.ref}"
        if detail.status == UpdateStatus.ERROR:
            console.print(f"{label}: [red]{detail.error}[/red]")
            continue
        if detail.status == UpdateStatus.UP_TO_DATE:
            console.print(f"{label}: [green]up to date[/green]")
            continue

        table = Table(title=f"{detail.vendor}@{detail.ref} "
                            f"{detail.current_hash[:8] or '-'} -> {detail.latest_hash[:8]}")
        table.add_column("Commit", style="yellow")
        table.add_column("Date")
        table.add_column("Author")
        table.add_column("Subject")
        for commit in detail.commits:
            table.add_row(commit.short_hash, commit.date, commit.author, commit.subject)
        console.print(table)
        if detail.diverged:
            console.print("[red]history diverged[/red]")
