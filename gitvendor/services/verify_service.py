"""
Verify service for git-vendor.

Compares the vendored files on disk with the per-file hashes recorded in
vendor.lock. Works offline: no git and no network, only the project tree.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..domain.operation import FileStatus, FileVerification, VerifySummary
from ..domain.vendor import LockDetails, VendorConfig, VendorLock, VendorSpec
from ..errors import UnsafePathError
from ..infra.file_ops import FileOps
from ..paths import ProjectPaths
from .sync_service import destination_hashes
from .validation_service import nested_destinations, select_vendors, validate_dest_path

logger = logging.getLogger(__name__)


class VerifyService:
    """
    Service for checking vendored files against vendor.lock.

    Example:
        service = VerifyService(root)
        summary = service.verify(config, lock)
        if summary.result == "FAIL":
            for f in summary.files:
                print(f.status.value, f.path)
    """

    def __init__(self, root: Path, file_ops: Optional[FileOps] = None):
        self.paths = ProjectPaths(root)
        self.files = file_ops or FileOps()
        self.last_result: Optional[VerifySummary] = None

    def verify(
        self,
        vendor_config: VendorConfig,
        lock: VendorLock,
        vendor: Optional[str] = None,
        group: Optional[str] = None,
    ) -> VerifySummary:
        """
        Check every locked ref of the selected vendors.

        Raises:
            VendorNotFoundError: ``vendor`` is not configured
            GroupNotFoundError: no vendor is in ``group``
        """
        summary = VerifySummary()
        self.last_result = summary
        nested = nested_destinations(vendor_config)

        for spec in select_vendors(vendor_config, vendor, group):
            for ref_spec in spec.specs:
                entry = lock.find(spec.name, ref_spec.ref)
                if entry is None:
                    logger.debug(f"{spec.name}@{ref_spec.ref} is not locked, skipping")
                    continue
                if not entry.file_hashes:
                    summary.unhashed.append(f"{spec.name}@{ref_spec.ref}")
                    continue
                summary.files.extend(self.verify_ref(spec, entry, nested))

        summary.files.sort(key=lambda f: f.path)
        return summary

    def verify_ref(
        self,
        spec: VendorSpec,
        entry: LockDetails,
        nested: Dict[str, List[str]],
    ) -> List[FileVerification]:
        """Verified, modified and deleted files from the lock, then unexpected ones."""
        ref_spec = spec.get_spec(entry.ref)
        mappings = ref_spec.resolve(spec.name) if ref_spec else []
        dests = []
        for _, dest in mappings:
            try:
                dests.append(validate_dest_path(dest))
            except UnsafePathError as e:
                logger.warning(f"{spec.name}@{entry.ref}: {e}")
        live = destination_hashes(self.paths, self.files, dests, nested)

        results = []
        for path, expected in sorted(entry.file_hashes.items()):
            actual = live.get(path) or self._hash_outside(path)
            if actual is None:
                status = FileStatus.DELETED
            elif actual == expected:
                status = FileStatus.VERIFIED
            else:
                status = FileStatus.MODIFIED
            results.append(FileVerification(
                path=path, status=status, vendor=spec.name, ref=entry.ref,
                expected_hash=expected, actual_hash=actual,
            ))

        for path in sorted(set(live) - set(entry.file_hashes)):
            results.append(FileVerification(
                path=path, status=FileStatus.ADDED, vendor=spec.name, ref=entry.ref,
                actual_hash=live[path],
            ))
        return results

    def _hash_outside(self, path: str) -> Optional[str]:
        """Hash of a locked file that no configured destination covers any more."""
        try:
            target = self.paths.dest(validate_dest_path(path))
        except UnsafePathError as e:
            logger.warning(f"Ignoring locked path {path!r}: {e}")
            return None
        if not target.is_file():
            return None
        return self.files.checksum(target)
