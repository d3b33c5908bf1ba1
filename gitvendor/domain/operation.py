"""
Operation result domain objects for git-vendor.

Structured results for sync, update and check-updates so that reporting
code can render them without re-deriving state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .vendor import CommitInfo, VendorLock


class OperationStatus(Enum):
    """Status of an individual operation."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    DRY_RUN = "dry_run"


class MappingAction(Enum):
    """What happened (or would happen) to one destination."""
    COPIED = "copied"
    WOULD_COPY = "would_copy"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class MappingResult:
    source: str
    dest: str
    action: MappingAction
    checksum: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'from': self.source, 'to': self.dest, 'action': self.action.value}
        if self.checksum:
            result['checksum'] = self.checksum
        return result


@dataclass
class RefSyncResult:
    """Outcome of materializing one ref of one vendor."""
    vendor: str
    ref: str
    status: OperationStatus
    commit_hash: str = ""
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    mappings: List[MappingResult] = field(default_factory=list)
    license_path: Optional[str] = None

    @property
    def changed_paths(self) -> List[str]:
        return [m.dest for m in self.mappings
                if m.action in (MappingAction.COPIED, MappingAction.WOULD_COPY)]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'vendor': self.vendor,
            'ref': self.ref,
            'status': self.status.value,
            'commit_hash': self.commit_hash,
            'mappings': [m.to_dict() for m in self.mappings],
        }
        if self.message:
            result['message'] = self.message
        if self.error:
            result['error'] = self.error
            result['error_type'] = self.error_type
        if self.license_path:
            result['license_path'] = self.license_path
        return result


@dataclass
class VendorSyncResult:
    """All refs of one vendor, processed sequentially by one worker."""
    vendor: str
    refs: List[RefSyncResult] = field(default_factory=list)

    @property
    def status(self) -> OperationStatus:
        statuses = {r.status for r in self.refs}
        for status in (OperationStatus.FAILED, OperationStatus.SUCCESS, OperationStatus.DRY_RUN):
            if status in statuses:
                return status
        return OperationStatus.SKIPPED

    @property
    def errors(self) -> List[str]:
        return [f"{r.vendor}@{r.ref}: {r.error}" for r in self.refs if r.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vendor': self.vendor,
            'status': self.status.value,
            'refs': [r.to_dict() for r in self.refs],
        }


@dataclass
class SyncSummary:
    """
    Aggregate of a sync run.

    ``details`` is ordered like the configuration, whatever order the
    workers finished in.
    """
    operation: str = "sync"
    dry_run: bool = False
    details: List[VendorSyncResult] = field(default_factory=list)
    cancelled: bool = False

    def _count(self, status: OperationStatus) -> int:
        return sum(1 for d in self.details if d.status == status)

    @property
    def total(self) -> int:
        return len(self.details)

    @property
    def successful(self) -> int:
        return self._count(OperationStatus.SUCCESS) + self._count(OperationStatus.DRY_RUN)

    @property
    def skipped(self) -> int:
        return self._count(OperationStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OperationStatus.FAILED)

    @property
    def success(self) -> bool:
        """True if no vendor failed."""
        return self.failed == 0 and not self.cancelled

    @property
    def errors(self) -> List[str]:
        errors: List[str] = []
        for detail in self.details:
            errors.extend(detail.errors)
        return errors

    def ref_results(self) -> List[RefSyncResult]:
        return [r for d in self.details for r in d.refs]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': 'summary',
            'operation': self.operation,
            'total': self.total,
            'successful': self.successful,
            'skipped': self.skipped,
            'failed': self.failed,
            'dry_run': self.dry_run,
            'cancelled': self.cancelled,
            'errors': self.errors,
        }


class UpdateStatus(Enum):
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    NEW = "new"
    ERROR = "error"


@dataclass
class RefResolution:
    """The delta between a locked commit and the remote tip of its ref."""
    vendor: str
    ref: str
    old_hash: str
    new_hash: str
    commits: List[CommitInfo] = field(default_factory=list)
    tag: str = ""

    @property
    def up_to_date(self) -> bool:
        return bool(self.old_hash) and self.old_hash == self.new_hash

    @property
    def diverged(self) -> bool:
        """Hashes differ but no commits lead from the old one to the new one."""
        return bool(self.old_hash) and not self.up_to_date and not self.commits


@dataclass
class UpdateCheckResult:
    """Per-ref outcome of check-updates, update or diff."""
    vendor: str
    ref: str
    status: UpdateStatus
    current_hash: str = ""
    latest_hash: str = ""
    commits: List[CommitInfo] = field(default_factory=list)
    tag: str = ""
    diverged: bool = False
    error: Optional[str] = None

    @classmethod
    def from_resolution(cls, resolution: RefResolution) -> 'UpdateCheckResult':
        if not resolution.old_hash:
            status = UpdateStatus.NEW
        elif resolution.up_to_date:
            status = UpdateStatus.UP_TO_DATE
        else:
            status = UpdateStatus.UPDATE_AVAILABLE
        return cls(
            vendor=resolution.vendor,
            ref=resolution.ref,
            status=status,
            current_hash=resolution.old_hash,
            latest_hash=resolution.new_hash,
            commits=list(resolution.commits),
            tag=resolution.tag,
            diverged=resolution.diverged,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'vendor': self.vendor,
            'ref': self.ref,
            'status': self.status.value,
            'current_hash': self.current_hash,
            'latest_hash': self.latest_hash,
        }
        if self.commits:
            result['commits'] = [c.to_dict() for c in self.commits]
        if self.tag:
            result['tag'] = self.tag
        if self.diverged:
            result['diverged'] = True
        if self.error:
            result['error'] = self.error
        return result


@dataclass
class UpdateSummary:
    """Aggregate of check-updates / update, in configuration order."""
    operation: str = "check-updates"
    dry_run: bool = False
    details: List[UpdateCheckResult] = field(default_factory=list)
    lock: Optional[VendorLock] = None
    lock_saved: bool = False

    def _count(self, status: UpdateStatus) -> int:
        return sum(1 for d in self.details if d.status == status)

    @property
    def up_to_date(self) -> int:
        return self._count(UpdateStatus.UP_TO_DATE)

    @property
    def outdated(self) -> int:
        return self._count(UpdateStatus.UPDATE_AVAILABLE) + self._count(UpdateStatus.NEW)

    @property
    def failed(self) -> int:
        return self._count(UpdateStatus.ERROR)

    @property
    def all_current(self) -> bool:
        return self.outdated == 0 and self.failed == 0

    @property
    def changed(self) -> List[UpdateCheckResult]:
        return [d for d in self.details
                if d.status in (UpdateStatus.UPDATE_AVAILABLE, UpdateStatus.NEW)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'summary',
            'operation': self.operation,
            'total': len(self.details),
            'up_to_date': self.up_to_date,
            'outdated': self.outdated,
            'failed': self.failed,
            'dry_run': self.dry_run,
            'lock_saved': self.lock_saved,
        }


class FileStatus(Enum):
    """State of one vendored file against the hashes in vendor.lock."""
    VERIFIED = "verified"
    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"


@dataclass
class FileVerification:
    path: str
    status: FileStatus
    vendor: str = ""
    ref: str = ""
    expected_hash: Optional[str] = None
    actual_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'type': 'file',
            'path': self.path,
            'status': self.status.value,
            'vendor': self.vendor,
            'ref': self.ref,
        }
        if self.expected_hash:
            result['expected_hash'] = self.expected_hash
        if self.actual_hash:
            result['actual_hash'] = self.actual_hash
        return result


@dataclass
class VerifySummary:
    """
    Outcome of comparing vendored files with vendor.lock.

    FAIL when a locked file was modified or deleted, WARN when files
    appeared that the lock does not know about (or a ref has no recorded
    hashes at all), PASS otherwise.
    """
    files: List[FileVerification] = field(default_factory=list)
    unhashed: List[str] = field(default_factory=list)

    def _count(self, status: FileStatus) -> int:
        return sum(1 for f in self.files if f.status == status)

    @property
    def verified(self) -> int:
        return self._count(FileStatus.VERIFIED)

    @property
    def modified(self) -> int:
        return self._count(FileStatus.MODIFIED)

    @property
    def added(self) -> int:
        return self._count(FileStatus.ADDED)

    @property
    def deleted(self) -> int:
        return self._count(FileStatus.DELETED)

    @property
    def result(self) -> str:
        if self.modified or self.deleted:
            return "FAIL"
        if self.added or self.unhashed:
            return "WARN"
        return "PASS"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'summary',
            'operation': 'verify',
            'result': self.result,
            'total': len(self.files),
            'verified': self.verified,
            'modified': self.modified,
            'added': self.added,
            'deleted': self.deleted,
            'unhashed': list(self.unhashed),
        }
