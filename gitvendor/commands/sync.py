"""
Sync command for git-vendor.

Materializes every configured vendor path at its locked commit, skipping
destinations the cache proves are already correct.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

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
from ..domain.operation import OperationStatus, SyncSummary
from ..domain.vendor import LockDetails, VendorConfig, VendorLock
from ..exit_codes import GENERAL_ERROR, CommandError, PartialSuccessError
from ..infra.git_client import GitClient
from ..infra.yaml_store import StateStore
from ..services.commit_service import CommitOutcome, CommitService
from ..services.sync_service import SyncOptions, SyncService, file_hashes_by_ref

logger = logging.getLogger(__name__)

COMMIT_IGNORED_WARNING = "Warning: --commit ignored during --dry-run"


def make_git_client(settings: Dict[str, Any], verbose: bool,
                    cancel_event: threading.Event) -> GitClient:
    return GitClient(
        timeout=settings.get('git', {}).get('timeout_seconds', 300),
        verbose=verbose,
        cancel_event=cancel_event,
    )


def run_sync(
    root: Path,
    settings: Dict[str, Any],
    git: GitClient,
    cancel_event: threading.Event,
    vendor_config: VendorConfig,
    lock: VendorLock,
    options: SyncOptions,
    output_json: bool = False,
    pretty: bool = False,
) -> SyncService:
    """Run a sync and render its results; returns the service for follow-up steps."""
    service = SyncService(root, config=settings, git_client=git, cancel_event=cancel_event)
    mode = "[dry run] " if options.dry_run else ""
    summary = drain(service.sync(vendor_config, lock, options), output_json, prefix=mode)

    if output_json:
        for detail in summary.details:
            emit_json(detail.to_dict())
        emit_json(summary.to_dict())
    elif pretty:
        render_sync_table(summary)
    else:
        echo_progress(
            f"\n{mode}Sync complete: {summary.successful} synced, "
            f"{summary.skipped} up to date, {summary.failed} failed"
        )
    return service


def render_sync_table(summary: SyncSummary) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console(stderr=True)
    mode = "[bold yellow]DRY RUN[/bold yellow] " if summary.dry_run else ""
    table = Table(title=f"{mode}Sync Summary", show_header=True)
    table.add_column("Vendor", style="cyan")
    table.add_column("Ref")
    table.add_column("Commit", style="dim")
    table.add_column("Status")
    table.add_column("Details")

    colors = {
        OperationStatus.SUCCESS: "green",
        OperationStatus.DRY_RUN: "yellow",
        OperationStatus.SKIPPED: "dim",
        OperationStatus.FAILED: "red",
    }
    for ref_result in summary.ref_results():
        color = colors[ref_result.status]
        table.add_row(
            ref_result.vendor,
            ref_result.ref,
            ref_result.commit_hash[:8],
            f"[{color}]{ref_result.status.value}[/{color}]",
            ref_result.error or ref_result.message or "",
        )
    console.print(table)


def synced_locks(summary: SyncSummary, lock: VendorLock) -> List[LockDetails]:
    """Lock entries of every ref the run materialized or confirmed, in config order."""
    entries = []
    for ref_result in summary.ref_results():
        if ref_result.status == OperationStatus.FAILED:
            continue
        entry = lock.find(ref_result.vendor, ref_result.ref)
        if entry is not None:
            entries.append(entry)
    return entries


def commit_after_sync(
    root: Path,
    git: GitClient,
    operation: str,
    service: SyncService,
    vendor_config: VendorConfig,
    lock: VendorLock,
    output_json: bool = False,
) -> Optional[CommitOutcome]:
    """Create the single vendor commit, unless any vendor failed."""
    summary = service.last_result
    if summary is None or not summary.success:
        failed = summary.failed if summary else 0
        logger.warning(f"Skipping commit: {failed} vendor(s) failed")
        echo_progress(f"Skipping commit: {failed} vendor(s) failed")
        return None

    outcome = CommitService(root, git).commit_vendors(
        operation,
        synced_locks(summary, lock),
        vendor_config,
        file_hashes_by_ref(service, summary),
    )
    if output_json:
        emit_json(outcome.to_dict())
    elif outcome.commit_hash:
        note = "" if outcome.note_attached else " (note not attached)"
        echo_progress(f"Committed {outcome.commit_hash[:8]}{note}")
    else:
        echo_progress(f"No commit created: {outcome.skipped_reason}")
    return outcome


def raise_for_failures(summary: SyncSummary) -> None:
    if summary.failed == 0:
        return
    succeeded = summary.successful + summary.skipped
    message = f"{summary.failed} of {summary.total} vendor(s) failed"
    if succeeded:
        raise PartialSuccessError(message, succeeded=succeeded, failed=summary.failed)
    raise CommandError(message, GENERAL_ERROR)


@click.command('sync')
@click.argument('vendor', required=False)
@add_common_options('dry_run', 'group', 'parallel', 'commit', 'verbose', 'json', 'pretty')
@click.option('--force', is_flag=True, help='Re-copy everything, ignoring the cache')
@click.option('--no-cache', is_flag=True, help='Ignore the cache and do not update it')
@click.pass_context
@handle_errors
def sync_handler(
    ctx: click.Context,
    vendor: Optional[str],
    dry_run: bool,
    group: Optional[str],
    parallel: Optional[int],
    do_commit: bool,
    verbose: bool,
    output_json: bool,
    pretty: bool,
    force: bool,
    no_cache: bool,
):
    """
    Copy vendored paths at their locked commits.

    Examples:

        # Sync everything
        git-vendor sync

        # One vendor, ignoring the cache
        git-vendor sync mylib --force

        # Preview, then sync a group and commit the result
        git-vendor sync --group frontend --dry-run
        git-vendor sync --group frontend --commit
    """
    settings = load_config()
    configure_logging(settings, verbose)
    root = project_root(ctx)

    if do_commit and dry_run:
        click.echo(COMMIT_IGNORED_WARNING, err=True)
        do_commit = False

    store = StateStore(root)
    vendor_config = store.load_config()
    lock = store.load_lock()

    cancel_event = threading.Event()
    git = make_git_client(settings, verbose, cancel_event)
    options = SyncOptions(
        dry_run=dry_run,
        force=force,
        no_cache=no_cache,
        group=group,
        vendor=vendor,
        verbose=verbose,
        max_workers=parallel,
    )

    service = run_sync(root, settings, git, cancel_event, vendor_config, lock,
                       options, output_json, pretty)
    if do_commit:
        commit_after_sync(root, git, "sync", service, vendor_config, lock, output_json)
    raise_for_failures(service.last_result)
