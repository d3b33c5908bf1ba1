"""
Update service for git-vendor.

Computes, for each tracked ref, the delta between the locked commit and
the remote tip: new hash, the commits in between (newest first, capped),
and a representative tag for the tip. The same computation backs three
commands:

- ``check-updates``: report only
- ``diff``: report with commit lists
- ``update``: additionally rewrite vendor.lock
"""

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

from ..config import effective_workers, load_config
from ..domain.operation import (
    RefResolution,
    UpdateCheckResult,
    UpdateStatus,
    UpdateSummary,
)
from ..domain.vendor import LockDetails, VendorConfig, VendorLock, VendorSpec
from ..errors import GitCancelledError, GitOperationError, VendorError
from ..infra.file_ops import FileOps
from ..infra.git_client import GitClient
from ..infra.license_client import LicenseClient
from ..infra.yaml_store import StateStore
from ..paths import ProjectPaths, sanitize_filename
from .validation_service import select_vendors, validate_config

logger = logging.getLogger(__name__)

SEMVER_TAG = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


def select_tag(tags: Sequence[str]) -> str:
    """First semantic-version tag, else the first tag, else ""."""
    for tag in tags:
        if SEMVER_TAG.match(tag):
            return tag
    return tags[0] if tags else ""


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class UpdateOptions:
    """Options for check-updates / update / diff."""
    vendor: Optional[str] = None
    group: Optional[str] = None
    dry_run: bool = False
    verbose: bool = False
    max_workers: Optional[int] = None
    max_commits: Optional[int] = None
    detect_license: bool = True


@dataclass
class _Target:
    vendor: VendorSpec
    ref: str
    locked: Optional[LockDetails] = None
    resolution: Optional[RefResolution] = None
    result: Optional[UpdateCheckResult] = None


class UpdateService:
    """
    Service for resolving refs against their remotes.

    Example:
        service = UpdateService(root)
        for progress in service.check(config, lock, UpdateOptions()):
            print(progress)

        if not service.last_result.all_current:
            ...
    """

    def __init__(
        self,
        root: Path,
        config: Optional[Dict[str, Any]] = None,
        git_client: Optional[GitClient] = None,
        file_ops: Optional[FileOps] = None,
        license_client: Optional[LicenseClient] = None,
        state_store: Optional[StateStore] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.paths = ProjectPaths(root)
        self.config = config or load_config()
        self.cancel_event = cancel_event or threading.Event()
        self.git = git_client or GitClient(
            timeout=self.config.get('git', {}).get('timeout_seconds', 300),
            cancel_event=self.cancel_event,
        )
        self.files = file_ops or FileOps()
        self.license_client = license_client or LicenseClient.from_config(self.config)
        self.state_store = state_store or StateStore(self.paths.root)
        self.last_result: Optional[UpdateSummary] = None

    @property
    def max_commits(self) -> int:
        return int(self.config.get('updates', {}).get('max_commits', 10))

    @property
    def fetch_depth(self) -> int:
        return int(self.config.get('updates', {}).get('fetch_depth', 20))

    def resolve_ref(
        self,
        vendor: VendorSpec,
        ref: str,
        current_locked_hash: str = "",
        max_commits: Optional[int] = None,
    ) -> RefResolution:
        """
        Resolve ``ref`` on the vendor's remote.

        When the tip equals ``current_locked_hash`` no commits or tag are
        computed. Otherwise the commits strictly after the locked hash up
        to the tip are listed newest first, capped at ``max_commits``.

        Raises:
            GitOperationError: the remote or ref could not be fetched
        """
        max_commits = max_commits or self.max_commits
        prefix = f"git-vendor-check-{sanitize_filename(vendor.name)}-"

        with self.files.temp_dir(prefix=prefix) as workdir:
            self.git.init(workdir)
            self.git.add_remote(workdir, "origin", vendor.url)
            self.git.fetch(workdir, ref, depth=self.fetch_depth)
            new_hash = self.git.head_hash(workdir, "FETCH_HEAD")

            resolution = RefResolution(
                vendor=vendor.name,
                ref=ref,
                old_hash=current_locked_hash,
                new_hash=new_hash,
            )
            if resolution.up_to_date:
                return resolution

            if current_locked_hash:
                resolution.commits = self._commits_between(
                    workdir, ref, current_locked_hash, new_hash, max_commits
                )
            resolution.tag = select_tag(self.git.tags_at(workdir, new_hash))
            return resolution

    def _commits_between(self, workdir: Path, ref: str, old_hash: str,
                         new_hash: str, max_commits: int):
        """Commit log old..new; deepens the shallow history once if needed."""
        try:
            return self.git.commit_log(workdir, old_hash, new_hash, max_commits)
        except GitCancelledError:
            raise
        except GitOperationError as e:
            logger.debug(f"Log {old_hash[:8]}..{new_hash[:8]} not in shallow history: {e}")

        try:
            self.git.fetch(workdir, old_hash, depth=1)
        except GitCancelledError:
            raise
        except GitOperationError:
            try:
                self.git.fetch(workdir, ref)
            except GitCancelledError:
                raise
            except GitOperationError as e:
                logger.debug(f"Cannot deepen {ref}: {e}")
                return []
        try:
            return self.git.commit_log(workdir, old_hash, new_hash, max_commits)
        except GitCancelledError:
            raise
        except GitOperationError as e:
            logger.debug(f"Commit log unavailable for {ref}: {e}")
            return []

    def _targets(self, vendor_config: VendorConfig, lock: VendorLock,
                 options: UpdateOptions) -> List[_Target]:
        validate_config(vendor_config)
        targets = []
        for vendor in select_vendors(vendor_config, options.vendor, options.group):
            for spec in vendor.specs:
                targets.append(_Target(vendor=vendor, ref=spec.ref,
                                       locked=lock.find(vendor.name, spec.ref)))
        return targets

    def _resolve_target(self, target: _Target, options: UpdateOptions) -> _Target:
        current = target.locked.commit_hash if target.locked else ""
        try:
            target.resolution = self.resolve_ref(
                target.vendor, target.ref, current, options.max_commits
            )
            target.result = UpdateCheckResult.from_resolution(target.resolution)
        except (VendorError, OSError) as e:
            if not isinstance(e, GitCancelledError):
                logger.error(f"{target.vendor.name}@{target.ref}: {e}")
            target.result = UpdateCheckResult(
                vendor=target.vendor.name,
                ref=target.ref,
                status=UpdateStatus.ERROR,
                current_hash=current,
                error="cancelled" if isinstance(e, GitCancelledError) else str(e),
            )
        return target

    def _resolve_all(
        self,
        targets: List[_Target],
        options: UpdateOptions,
    ) -> Generator[str, None, None]:
        if options.verbose and hasattr(self.git, 'verbose'):
            self.git.verbose = True
        if not targets:
            return

        workers = min(effective_workers(self.config, options.max_workers), len(targets))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="git-vendor")
        try:
            futures = [executor.submit(self._resolve_target, t, options) for t in targets]
            for future in as_completed(futures):
                yield self._describe(future.result().result)
        except KeyboardInterrupt:
            self.cancel_event.set()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=self.cancel_event.is_set())
            for target in targets:
                if target.result is None:
                    target.result = UpdateCheckResult(
                        vendor=target.vendor.name,
                        ref=target.ref,
                        status=UpdateStatus.ERROR,
                        current_hash=target.locked.commit_hash if target.locked else "",
                        error="cancelled",
                    )

    def check(
        self,
        vendor_config: VendorConfig,
        lock: VendorLock,
        options: UpdateOptions,
        operation: str = "check-updates",
    ) -> Generator[str, None, UpdateSummary]:
        """
        Report, per tracked ref, whether the remote moved. Never writes.

        Yields:
            One progress line per ref, in completion order

        Returns:
            UpdateSummary in configuration order
        """
        summary = UpdateSummary(operation=operation, dry_run=options.dry_run)
        self.last_result = summary

        targets = self._targets(vendor_config, lock, options)
        yield from self._resolve_all(targets, options)
        summary.details = [t.result for t in targets]
        return summary

    def diff(
        self,
        vendor_config: VendorConfig,
        lock: VendorLock,
        options: UpdateOptions,
    ) -> Generator[str, None, UpdateSummary]:
        """Same as :meth:`check`; callers render the commit lists."""
        return (yield from self.check(vendor_config, lock, options, operation="diff"))

    def update(
        self,
        vendor_config: VendorConfig,
        lock: VendorLock,
        options: UpdateOptions,
    ) -> Generator[str, None, UpdateSummary]:
        """
        Resolve the selected refs and rewrite vendor.lock.

        Changed refs get the new hash, a fresh timestamp, the license cache
        path, the SPDX identifier and the resolved tag. Unchanged and
        failed refs keep their entry untouched. Entries for vendors or refs
        no longer configured are dropped. Under dry-run nothing is saved.

        Returns:
            UpdateSummary with ``lock`` set to the new lock
        """
        summary = UpdateSummary(operation="update", dry_run=options.dry_run)
        self.last_result = summary

        targets = self._targets(vendor_config, lock, options)
        yield from self._resolve_all(targets, options)
        summary.details = [t.result for t in targets]

        spdx_by_vendor = self._detect_licenses(targets, options)
        summary.lock = self._merge_lock(vendor_config, lock, targets, spdx_by_vendor)

        if options.dry_run:
            yield "Dry run: vendor.lock not written"
        elif summary.changed or summary.lock.to_dict() != lock.to_dict():
            self.state_store.save_lock(summary.lock)
            summary.lock_saved = True
            yield f"Updated {self.paths.relative(self.paths.lock_file)}"
        return summary

    def _detect_licenses(self, targets: List[_Target], options: UpdateOptions) -> Dict[str, str]:
        """SPDX id per vendor with at least one changed ref."""
        spdx: Dict[str, str] = {}
        for target in targets:
            name = target.vendor.name
            if name in spdx or target.result.status not in (
                UpdateStatus.UPDATE_AVAILABLE, UpdateStatus.NEW
            ):
                continue
            detected = None
            if options.detect_license and not options.dry_run:
                detected = self.license_client.detect(target.vendor.url)
            spdx[name] = detected or target.vendor.license
        return spdx

    def _merge_lock(
        self,
        vendor_config: VendorConfig,
        lock: VendorLock,
        targets: List[_Target],
        spdx_by_vendor: Dict[str, str],
    ) -> VendorLock:
        """
        New lock: existing entries replaced in place, new refs appended in
        configuration order, stale entries dropped. Moved entries start
        without file hashes; those are filled in once the new commit is
        on disk.
        """
        updates: Dict[Tuple[str, str], LockDetails] = {}
        now = utc_timestamp()
        for target in targets:
            if target.result.status not in (UpdateStatus.UPDATE_AVAILABLE, UpdateStatus.NEW):
                continue
            updates[(target.vendor.name, target.ref)] = LockDetails(
                name=target.vendor.name,
                ref=target.ref,
                commit_hash=target.resolution.new_hash,
                license_path=self.paths.license_relpath(target.vendor.name),
                updated=now,
                license_spdx=spdx_by_vendor.get(target.vendor.name, ""),
                source_version_tag=target.resolution.tag,
            )

        configured = {
            (vendor.name, spec.ref)
            for vendor in vendor_config.vendors
            for spec in vendor.specs
        }
        entries: List[LockDetails] = []
        seen = set()
        for entry in lock.vendors:
            if entry.key not in configured or entry.key in seen:
                logger.info(f"Dropping lock entry {entry.name}@{entry.ref} (no longer configured)")
                continue
            entries.append(updates.pop(entry.key, entry))
            seen.add(entry.key)

        for vendor in vendor_config.vendors:
            for spec in vendor.specs:
                key = (vendor.name, spec.ref)
                if key in updates:
                    entries.append(updates.pop(key))
        return VendorLock(vendors=entries)

    @staticmethod
    def _describe(result: UpdateCheckResult) -> str:
        label = f"{result.vendor}@{result.ref}"
        if result.status == UpdateStatus.ERROR:
            return f"  ✗ {label}: {result.error}"
        if result.status == UpdateStatus.UP_TO_DATE:
            return f"  ✓ {label}: up to date ({result.current_hash[:8]})"
        if result.status == UpdateStatus.NEW:
            return f"  + {label}: not locked yet, tip {result.latest_hash[:8]}"
        tag = f" [{result.tag}]" if result.tag else ""
        return (f"  ↑ {label}: {result.current_hash[:8]} -> {result.latest_hash[:8]}{tag}"
                f" ({len(result.commits)} commit(s))")
