"""
Annotate command for git-vendor.

Attaches the vendor note to a commit that was made by hand, so commits
created without --commit still carry provenance.
"""

from typing import Optional

import click

from ..cli_utils import add_common_options, echo_progress, emit_json, handle_errors, project_root
from ..config import configure_logging, load_config
from ..domain.vendor import VendorConfig, VendorLock
from ..errors import UnsafePathError
from ..infra.file_ops import FileOps
from ..infra.yaml_store import StateStore
from ..services.cache_service import CacheStore
from ..services.commit_service import CommitService, FileHashes
from ..services.sync_service import destination_hashes
from ..services.validation_service import nested_destinations, validate_dest_path
from .sync import make_git_client


def synced_file_hashes(store: StateStore, vendor_config: VendorConfig,
                       lock: VendorLock) -> FileHashes:
    """
    Per-file hashes of every lock entry whose destinations the cache
    proves are still at the locked commit. Other entries fall back to the
    hashes stored in vendor.lock.
    """
    files = FileOps()
    cache = CacheStore(store.paths, files)
    nested = nested_destinations(vendor_config)
    hashes = {}
    for entry in lock.vendors:
        vendor = vendor_config.get(entry.name)
        spec = vendor.get_spec(entry.ref) if vendor else None
        if spec is None:
            continue
        try:
            dests = [validate_dest_path(dest) for _, dest in spec.resolve(entry.name)]
        except UnsafePathError:
            continue
        if dests and all(
            cache.is_fresh(entry.name, entry.ref, entry.commit_hash, dest,
                           exclude=nested.get(dest, ()))
            for dest in dests
        ):
            hashes[entry.key] = destination_hashes(store.paths, files, dests, nested)
    return hashes


@click.command('annotate')
@click.argument('commit', required=False)
@click.option('--vendor', default=None, help='Only record this vendor')
@add_common_options('verbose', 'json')
@click.pass_context
@handle_errors
def annotate_handler(
    ctx: click.Context,
    commit: Optional[str],
    vendor: Optional[str],
    verbose: bool,
    output_json: bool,
):
    """
    Attach the vendor note to COMMIT (default HEAD).

    Examples:

        git-vendor annotate
        git-vendor annotate HEAD~1 --vendor mylib
    """
    settings = load_config()
    configure_logging(settings, verbose)
    store = StateStore(project_root(ctx))
    vendor_config = store.load_config()
    lock = store.load_lock()

    git = make_git_client(settings, verbose, None)
    target = CommitService(store.root, git).annotate(
        lock.vendors,
        vendor_config,
        commit_hash=commit,
        vendor=vendor,
        file_hashes=synced_file_hashes(store, vendor_config, lock),
    )

    if output_json:
        emit_json({'type': 'annotate', 'commit': target, 'vendor': vendor})
    else:
        echo_progress(f"Attached vendor note to {target[:8]}")
