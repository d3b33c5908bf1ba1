"""
Verify command for git-vendor.

Checks vendored files against the hashes recorded in vendor.lock. Runs
offline; exits 1 when a locked file was modified or deleted.
"""

from typing import Optional

import click

from ..cli_utils import add_common_options, echo_progress, emit_json, handle_errors, project_root
from ..config import configure_logging, load_config
from ..domain.operation import FileStatus, VerifySummary
from ..exit_codes import GENERAL_ERROR, CommandError
from ..infra.yaml_store import StateStore
from ..services.verify_service import VerifyService

LABELS = {
    FileStatus.VERIFIED: "OK",
    FileStatus.MODIFIED: "MODIFIED",
    FileStatus.ADDED: "ADDED",
    FileStatus.DELETED: "DELETED",
}


def render_verify_table(summary: VerifySummary) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title=f"Vendor Verification: {summary.result}", show_header=True)
    table.add_column("Status")
    table.add_column("Path")
    table.add_column("Vendor", style="cyan")
    table.add_column("Ref")

    colors = {
        FileStatus.VERIFIED: "green",
        FileStatus.MODIFIED: "red",
        FileStatus.ADDED: "yellow",
        FileStatus.DELETED: "red",
    }
    for item in summary.files:
        color = colors[item.status]
        table.add_row(f"[{color}]{LABELS[item.status]}[/{color}]", item.path, item.vendor, item.ref)
    console.print(table)


def _render_plain(summary: VerifySummary, verbose: bool) -> None:
    for item in summary.files:
        if item.status == FileStatus.VERIFIED and not verbose:
            continue
        click.echo(f"[{LABELS[item.status]}] {item.path} ({item.vendor}@{item.ref})")


@click.command('verify')
@click.argument('vendor', required=False)
@add_common_options('group', 'verbose', 'json', 'pretty')
@click.pass_context
@handle_errors
def verify_handler(
    ctx: click.Context,
    vendor: Optional[str],
    group: Optional[str],
    verbose: bool,
    output_json: bool,
    pretty: bool,
):
    """
    Check vendored files against the hashes in vendor.lock.

    Modified or deleted files fail the check (exit 1); files the lock
    does not know about only warn. Hashes are recorded by update.

    Examples:

        git-vendor verify
        git-vendor verify mylib --json
    """
    configure_logging(load_config(), verbose)
    store = StateStore(project_root(ctx))
    vendor_config = store.load_config()
    lock = store.load_lock()

    summary = VerifyService(store.root).verify(vendor_config, lock, vendor=vendor, group=group)

    if output_json:
        for item in summary.files:
            emit_json(item.to_dict())
        emit_json(summary.to_dict())
    elif pretty:
        render_verify_table(summary)
    else:
        _render_plain(summary, verbose)

    if not output_json:
        for label in summary.unhashed:
            echo_progress(f"{label}: no file hashes in vendor.lock (run git-vendor update)")
        echo_progress(
            f"Verify: {summary.result} ({summary.verified} verified, {summary.modified} modified, "
            f"{summary.added} added, {summary.deleted} deleted)"
        )

    if summary.result == "FAIL":
        raise CommandError(
            f"{summary.modified} modified, {summary.deleted} deleted file(s)",
            GENERAL_ERROR,
        )
