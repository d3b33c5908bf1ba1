"""
Domain objects for git-vendor.

Plain dataclasses with no I/O: vendor declarations, lock entries, commit
metadata and operation results.
"""

from .vendor import (
    PathMapping,
    RefSpec,
    VendorSpec,
    VendorConfig,
    LockDetails,
    VendorLock,
    CommitInfo,
    Trailer,
    VendorRecord,
    MappingOwner,
    PathConflict,
    clean_source_path,
    compute_auto_path,
)
from .operation import (
    OperationStatus,
    MappingAction,
    MappingResult,
    RefSyncResult,
    VendorSyncResult,
    SyncSummary,
    UpdateStatus,
    RefResolution,
    UpdateCheckResult,
    UpdateSummary,
    FileStatus,
    FileVerification,
    VerifySummary,
)

__all__ = [
    "PathMapping",
    "RefSpec",
    "VendorSpec",
    "VendorConfig",
    "LockDetails",
    "VendorLock",
    "CommitInfo",
    "Trailer",
    "VendorRecord",
    "MappingOwner",
    "PathConflict",
    "clean_source_path",
    "compute_auto_path",
    "OperationStatus",
    "MappingAction",
    "MappingResult",
    "RefSyncResult",
    "VendorSyncResult",
    "SyncSummary",
    "UpdateStatus",
    "RefResolution",
    "UpdateCheckResult",
    "UpdateSummary",
    "FileStatus",
    "FileVerification",
    "VerifySummary",
]
