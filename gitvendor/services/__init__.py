"""
Service layer for git-vendor.

- ValidationService: configuration checks, path safety, ConflictValidator
- CacheStore: incremental sync cache
- SyncService: parallel materialization of vendored paths
- UpdateService: ref resolution for check-updates / diff / update
- CommitService: vendor commits, trailers and notes
- VerifyService: vendored files against the hashes in vendor.lock
"""

from .validation_service import (
    ConflictValidator,
    select_vendors,
    validate_config,
    validate_dest_path,
    validate_vendor_name,
)
from .cache_service import CacheStore
from .sync_service import SyncService, SyncOptions
from .update_service import UpdateService, UpdateOptions, select_tag
from .commit_service import CommitService, CommitOutcome, build_trailers, parse_trailers
from .verify_service import VerifyService

__all__ = [
    'ConflictValidator',
    'select_vendors',
    'validate_config',
    'validate_dest_path',
    'validate_vendor_name',
    'CacheStore',
    'SyncService',
    'SyncOptions',
    'UpdateService',
    'UpdateOptions',
    'select_tag',
    'CommitService',
    'CommitOutcome',
    'build_trailers',
    'parse_trailers',
    'VerifyService',
]
