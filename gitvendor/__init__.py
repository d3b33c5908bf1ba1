"""
git-vendor - Vendor files from other git repositories, pinned to commits.

Configuration lives in ``.git-vendor/vendor.yml``; resolved commits in
``.git-vendor/vendor.lock``.

Quick Start:
    from gitvendor import StateStore, SyncService, SyncOptions

    store = StateStore(".")
    service = SyncService(".")
    for line in service.sync(store.load_config(), store.load_lock(), SyncOptions()):
        print(line)
    print(service.last_result.failed)

Services:
    SyncService - materialize vendored paths at their locked commits
    UpdateService - resolve refs, rewrite vendor.lock
    CommitService - vendor commits with trailers and git notes
    VerifyService - check vendored files against vendor.lock
"""

__version__ = "0.4.0"

from .domain import LockDetails, VendorConfig, VendorLock, VendorSpec
from .infra import GitClient, StateStore
from .services import (
    CacheStore,
    CommitService,
    ConflictValidator,
    SyncOptions,
    SyncService,
    UpdateOptions,
    UpdateService,
    VerifyService,
)

__all__ = [
    '__version__',
    'LockDetails',
    'VendorConfig',
    'VendorLock',
    'VendorSpec',
    'GitClient',
    'StateStore',
    'CacheStore',
    'CommitService',
    'ConflictValidator',
    'SyncOptions',
    'SyncService',
    'UpdateOptions',
    'UpdateService',
    'VerifyService',
]
