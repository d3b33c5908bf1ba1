"""
Update command for git-vendor.

Re-resolves tracked refs against their remotes, rewrites vendor.lock, and
then syncs the vendors so the working tree matches the new lock.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

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
from ..domain.operation import UpdateSummary
from ..domain.vendor import VendorConfig, VendorLock
from ..exit_codes import GENERAL_ERROR, CommandError, PartialSuccessError
from ..infra.git_client import GitClient
from ..infra.yaml_store import StateStore
from ..services.sync_service import SyncOptions, SyncService, file_hashes_by_ref
from ..services.update_service import UpdateOptions, UpdateService
from .sync import (
    COMMIT_IGNORED_WARNING,
    commit_after_sync,
    make_git_client,
    raise_for_failures,
    run_sync,
)

logger = logging.getLogger(__name__)

NO_SYNC_COMMIT_WARNING = "Warning: --commit ignored with --no-sync; run sync, then commit"


@click.command('update')
@click.argument('vendor', required=False)
@add_common_options('dry_run', 'group', 'parallel', 'commit', 'verbose', 'json', 'pretty')
@click.option('--no-sync', is_flag=True, help='Only rewrite vendor.lock')
@click.option('--no-license-check', is_flag=True,
              help='Do not ask GitHub/GitLab for the license identifier')
@click.pass_context
@handle_errors
def update_handler(
    ctx: click.Context,
    vendor: Optional[str],
    dry_run: bool,
    group: Optional[str],
    parallel: Optional[int],
    do_commit: bool,
    verbose: bool,
    output_json: bool,
    pretty: bool,
    no_sync: bool,
    no_license_check: bool,
):
    """
    Lock vendors to the current tips of their refs and sync them.

    Examples:

        # Update everything and commit the result
        git-vendor update --commit

        # See what would move without touching vendor.lock
        git-vendor update --dry-run

        # Update one vendor's lock entry only
        git-vendor update mylib --no-sync
    """
    settings = load_config()
    configure_logging(settings, verbose)
    root = project_root(ctx)

    if do_commit and dry_run:
        click.echo(COMMIT_IGNORED_WARNING, err=True)
        do_commit = False
    elif do_commit and no_sync:
        click.echo(NO_SYNC_COMMIT_WARNING, err=True)
        do_commit = False

    store = StateStore(root)
    vendor_config = store.load_config()
    lock = store.load_lock()

    cancel_event = threading.Event()
    git = make_git_client(settings, verbose, cancel_event)
    service = UpdateService(root, config=settings, git_client=git,
                            state_store=store, cancel_event=cancel_event)
    options = UpdateOptions(
        vendor=vendor,
        group=group,
        dry_run=dry_run,
        verbose=verbose,
        max_workers=parallel,
        detect_license=not no_license_check,
    )

    mode = "[dry run] " if dry_run else ""
    summary = drain(service.update(vendor_config, lock, options), output_json, prefix=mode)

    if output_json:
        for detail in summary.details:
            emit_json(detail.to_dict())
        emit_json(summary.to_dict())
    else:
        echo_progress(
            f"\n{mode}{summary.outdated} ref(s) updated, {summary.up_to_date} up to date, "
            f"{summary.failed} failed"
        )

    if summary.failed and do_commit:
        echo_progress(f"Skipping commit: {summary.failed} ref(s) could not be resolved")
        do_commit = False

    if not dry_run:
        sync_options = SyncOptions(
            group=group,
            vendor=vendor,
            verbose=verbose,
            max_workers=parallel,
        )
        _apply_lock(root, settings, git, cancel_event, vendor_config, summary,
                    sync_options, no_sync, do_commit, output_json, pretty)

    if summary.failed:
        message = f"{summary.failed} ref(s) could not be resolved"
        if summary.failed < len(summary.details):
            raise PartialSuccessError(message, succeeded=len(summary.details) - summary.failed,
                                      failed=summary.failed)
        raise CommandError(message, GENERAL_ERROR)


def _apply_lock(
    root: Path,
    settings: Dict[str, Any],
    git: GitClient,
    cancel_event: threading.Event,
    vendor_config: VendorConfig,
    summary: UpdateSummary,
    sync_options: SyncOptions,
    no_sync: bool,
    do_commit: bool,
    output_json: bool,
    pretty: bool,
) -> None:
    """Sync (and optionally commit) against the freshly written lock."""
    if no_sync:
        return

    new_lock = summary.lock
    sync_service = run_sync(root, settings, git, cancel_event, vendor_config, new_lock,
                            sync_options, output_json, pretty)
    record_file_hashes(StateStore(root), sync_service, new_lock)
    if do_commit:
        commit_after_sync(root, git, "update", sync_service, vendor_config, new_lock, output_json)
    raise_for_failures(sync_service.last_result)


def record_file_hashes(store: StateStore, sync_service: SyncService, lock: VendorLock) -> bool:
    """
    Store the on-disk file hashes of every ref the sync confirmed at its
    locked commit in vendor.lock. Returns True if the lock was rewritten.
    """
    summary = sync_service.last_result
    if summary is None:
        return False

    changed = False
    commits = {(r.vendor, r.ref): r.commit_hash for r in summary.ref_results()}
    for key, hashes in file_hashes_by_ref(sync_service, summary).items():
        entry = lock.find(*key)
        if entry is None or entry.commit_hash != commits.get(key):
            continue
        if entry.file_hashes != hashes:
            entry.file_hashes = hashes
            changed = True

    if changed:
        store.save_lock(lock)
        logger.debug("Recorded file hashes in vendor.lock")
    return changed
