"""
Sync service for git-vendor.

Materializes every configured (vendor, ref) at its locked commit as plain
file copies. Vendors run in parallel on a bounded worker pool; refs of one
vendor run sequentially on the same worker. A failing vendor is recorded
on its own result and never stops its siblings.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Tuple

from ..config import effective_workers, load_config
from ..domain.operation import (
    MappingAction,
    MappingResult,
    OperationStatus,
    RefSyncResult,
    SyncSummary,
    VendorSyncResult,
)
from ..domain.vendor import LockDetails, RefSpec, VendorConfig, VendorLock, VendorSpec
from ..errors import (
    GitCancelledError,
    GitOperationError,
    LockMissingError,
    SourcePathNotFoundError,
    UnsafePathError,
    VendorError,
)
from ..infra.file_ops import FileOps
from ..infra.git_client import GitClient
from ..paths import LICENSE_FILENAMES, ProjectPaths, sanitize_filename
from .cache_service import CacheStore
from .validation_service import (
    ConflictValidator,
    nested_destinations,
    select_vendors,
    validate_config,
    validate_dest_path,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncOptions:
    """Options for sync."""
    dry_run: bool = False
    force: bool = False       # ignore the cache, still record new entries
    no_cache: bool = False    # ignore the cache and do not record
    group: Optional[str] = None
    vendor: Optional[str] = None
    verbose: bool = False
    max_workers: Optional[int] = None


class SyncService:
    """
    Service for materializing vendored paths.

    Example:
        service = SyncService(root)
        for progress in service.sync(config, lock, SyncOptions(dry_run=True)):
            print(progress)

        result = service.last_result
        print(f"{result.failed} vendor(s) failed")
    """

    def __init__(
        self,
        root: Path,
        config: Optional[Dict[str, Any]] = None,
        git_client: Optional[GitClient] = None,
        file_ops: Optional[FileOps] = None,
        cache: Optional[CacheStore] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize SyncService.

        Args:
            root: Project root (the directory holding .git-vendor/)
            config: Tool settings (loads default if None)
            git_client: Git capability (real git if None)
            file_ops: File capability
            cache: Sync cache (one under .git-vendor/.cache if None)
            cancel_event: Set to abort outstanding work
        """
        self.paths = ProjectPaths(root)
        self.config = config or load_config()
        self.cancel_event = cancel_event or threading.Event()
        self.git = git_client or GitClient(
            timeout=self.config.get('git', {}).get('timeout_seconds', 300),
            cancel_event=self.cancel_event,
        )
        self.files = file_ops or FileOps()
        self.cache = cache or CacheStore(self.paths, self.files)
        self.validator = ConflictValidator()
        self.nested: Dict[str, List[str]] = {}
        self.last_result: Optional[SyncSummary] = None

    def sync(
        self,
        vendor_config: VendorConfig,
        lock: VendorLock,
        options: SyncOptions,
    ) -> Generator[str, None, SyncSummary]:
        """
        Sync the selected vendors.

        Configuration and conflict validation run to completion first and
        raise before any vendor work starts.

        Yields:
            One progress line per processed ref

        Returns:
            SyncSummary in configuration order

        Raises:
            ConfigError: invalid configuration or unknown filter
            ConflictError: unsafe or colliding destinations
        """
        result = SyncSummary(dry_run=options.dry_run)
        self.last_result = result

        validate_config(vendor_config)
        self.validator.check(vendor_config)
        self.nested = nested_destinations(vendor_config)
        vendors = select_vendors(vendor_config, options.vendor, options.group)

        if options.verbose and hasattr(self.git, 'verbose'):
            self.git.verbose = True

        workers = min(effective_workers(self.config, options.max_workers), len(vendors)) or 1
        logger.debug(f"Syncing {len(vendors)} vendor(s) with {workers} worker(s)")

        finished: Dict[str, VendorSyncResult] = {}
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="git-vendor")
        try:
            futures = {
                executor.submit(self._sync_vendor_safely, vendor, lock, options): vendor
                for vendor in vendors
            }
            for future in as_completed(futures):
                vendor_result = future.result()
                finished[vendor_result.vendor] = vendor_result
                for ref_result in vendor_result.refs:
                    yield self._describe(ref_result)
        except KeyboardInterrupt:
            self.cancel_event.set()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=self.cancel_event.is_set())
            result.cancelled = self.cancel_event.is_set()
            for vendor in vendors:
                if vendor.name not in finished:
                    finished[vendor.name] = self._cancelled_result(vendor)
            result.details = [finished[v.name] for v in vendors]

        return result

    def _sync_vendor_safely(self, vendor: VendorSpec, lock: VendorLock,
                            options: SyncOptions) -> VendorSyncResult:
        try:
            return self.sync_vendor(vendor, lock, options)
        except Exception as e:
            logger.exception(f"Unexpected error syncing {vendor.name}")
            vendor_result = VendorSyncResult(vendor=vendor.name)
            vendor_result.refs.append(RefSyncResult(
                vendor=vendor.name,
                ref="*",
                status=OperationStatus.FAILED,
                error=str(e),
                error_type=type(e).__name__,
            ))
            return vendor_result

    def _cancelled_result(self, vendor: VendorSpec) -> VendorSyncResult:
        vendor_result = VendorSyncResult(vendor=vendor.name)
        for spec in vendor.specs:
            vendor_result.refs.append(RefSyncResult(
                vendor=vendor.name,
                ref=spec.ref,
                status=OperationStatus.FAILED,
                error="cancelled",
                error_type=GitCancelledError.__name__,
            ))
        return vendor_result

    def sync_vendor(self, vendor: VendorSpec, lock: VendorLock,
                    options: SyncOptions) -> VendorSyncResult:
        """All refs of one vendor, in declaration order."""
        vendor_result = VendorSyncResult(vendor=vendor.name)
        for spec in vendor.specs:
            vendor_result.refs.append(
                self.sync_ref(vendor, spec, lock.find(vendor.name, spec.ref), options)
            )
        return vendor_result

    def sync_ref(
        self,
        vendor: VendorSpec,
        spec: RefSpec,
        locked: Optional[LockDetails],
        options: SyncOptions,
    ) -> RefSyncResult:
        """
        Sync one ref of one vendor at its locked commit.

        Never raises for vendor-level failures; they are returned on the
        result with status FAILED.
        """
        result = RefSyncResult(vendor=vendor.name, ref=spec.ref, status=OperationStatus.SUCCESS)
        order: Dict[str, int] = {}
        try:
            if self.cancel_event.is_set():
                raise GitCancelledError("cancelled")
            if locked is None or not locked.commit_hash:
                raise LockMissingError(vendor.name, spec.ref)
            result.commit_hash = locked.commit_hash

            mappings = [(source, validate_dest_path(dest))
                        for source, dest in spec.resolve(vendor.name)]
            order = {dest: index for index, (_, dest) in enumerate(mappings)}
            pending = self._plan(vendor, spec, locked, mappings, options, result)

            if not pending:
                result.status = OperationStatus.SKIPPED
                result.message = "up to date"
            elif options.dry_run:
                result.status = OperationStatus.DRY_RUN
                result.mappings.extend(
                    MappingResult(source, dest, MappingAction.WOULD_COPY) for source, dest in pending
                )
                result.message = f"would copy {len(pending)} path(s)"
            else:
                self._materialize(vendor, spec, locked, pending, options, result)
                result.message = f"copied {len(pending)} path(s)"

        except GitCancelledError:
            result.status = OperationStatus.FAILED
            result.error = "cancelled"
            result.error_type = GitCancelledError.__name__
        except (VendorError, OSError) as e:
            logger.error(f"{vendor.name}@{spec.ref}: {e}")
            result.status = OperationStatus.FAILED
            result.error = str(e)
            result.error_type = type(e).__name__

        result.mappings.sort(key=lambda m: order.get(m.dest, len(order)))
        return result

    def _plan(
        self,
        vendor: VendorSpec,
        spec: RefSpec,
        locked: LockDetails,
        mappings: List[Tuple[str, str]],
        options: SyncOptions,
        result: RefSyncResult,
    ) -> List[Tuple[str, str]]:
        """
        Split mappings into cache hits (recorded on ``result`` as unchanged)
        and the ones that need a copy. Reads only; never touches the cache
        files, so it is safe under dry-run.
        """
        if options.force or options.no_cache:
            return list(mappings)

        pending = []
        for source, dest in mappings:
            if self.cache.is_fresh(vendor.name, spec.ref, locked.commit_hash, dest,
                                   exclude=self.nested.get(dest, ())):
                checksum, _ = self.cache.lookup(vendor.name, spec.ref, locked.commit_hash, dest)
                result.mappings.append(
                    MappingResult(source, dest, MappingAction.UNCHANGED, checksum=checksum)
                )
            else:
                pending.append((source, dest))
        return pending

    def _materialize(
        self,
        vendor: VendorSpec,
        spec: RefSpec,
        locked: LockDetails,
        pending: List[Tuple[str, str]],
        options: SyncOptions,
        result: RefSyncResult,
    ) -> None:
        """Fetch, check out the locked commit, and copy the pending mappings."""
        record = not options.no_cache
        prefix = f"git-vendor-{sanitize_filename(vendor.name)}-"

        with self.files.temp_dir(prefix=prefix) as workdir:
            self._fetch_locked(workdir, vendor.url, spec.ref, locked.commit_hash)
            self.git.checkout(workdir, locked.commit_hash)
            result.license_path = self._copy_license(workdir, vendor.name)

            if record:
                self.cache.invalidate(vendor.name, spec.ref, locked.commit_hash)
            try:
                for source, dest in pending:
                    if self.cancel_event.is_set():
                        raise GitCancelledError("cancelled")
                    source_path = self._source_path(workdir, vendor, spec, source)
                    target = self.paths.dest(dest)
                    keep = [self.paths.dest(inner) for inner in self.nested.get(dest, ())]
                    self.files.copy(source_path, target, keep=keep)
                    checksum = self.files.checksum(target, exclude=keep)
                    result.mappings.append(
                        MappingResult(source, dest, MappingAction.COPIED, checksum=checksum)
                    )
                    if record:
                        self.cache.record(vendor.name, spec.ref, locked.commit_hash,
                                          dest, checksum, source=source)
            finally:
                if record:
                    self.cache.save(vendor.name, spec.ref)

    def _fetch_locked(self, workdir: Path, url: str, ref: str, commit_hash: str) -> None:
        """
        Make ``commit_hash`` available in ``workdir``.

        Tries a depth-1 fetch of the commit itself, then the full history
        of the ref, then everything. Whether the commit is really gone is
        decided by the checkout that follows.
        """
        self.git.init(workdir)
        self.git.add_remote(workdir, "origin", url)

        attempts = (
            ("locked commit", lambda: self.git.fetch(workdir, commit_hash, depth=1)),
            (f"ref {ref}", lambda: self.git.fetch(workdir, ref)),
        )
        for label, attempt in attempts:
            try:
                attempt()
                return
            except GitCancelledError:
                raise
            except GitOperationError as e:
                logger.debug(f"Fetching {label} from {url} failed: {e}")
        self.git.fetch_all(workdir)

    def _source_path(self, workdir: Path, vendor: VendorSpec, spec: RefSpec, source: str) -> Path:
        source_path = (workdir / source) if source else workdir
        try:
            source_path.resolve().relative_to(workdir.resolve())
        except ValueError:
            raise UnsafePathError(source, "source escapes the repository") from None
        if not source_path.exists():
            raise SourcePathNotFoundError(vendor.name, spec.ref, source)
        return source_path

    def _copy_license(self, workdir: Path, vendor_name: str) -> Optional[str]:
        """Copy the upstream license into .git-vendor/licenses/<vendor>.txt."""
        for name in LICENSE_FILENAMES:
            candidate = workdir / name
            if candidate.is_file():
                self.files.copy(candidate, self.paths.license_file(vendor_name))
                return self.paths.license_relpath(vendor_name)
        logger.debug(f"No license file found for {vendor_name}")
        return None

    @staticmethod
    def _describe(ref_result: RefSyncResult) -> str:
        label = f"{ref_result.vendor}@{ref_result.ref}"
        if ref_result.status == OperationStatus.FAILED:
            return f"  ✗ {label}: {ref_result.error}"
        if ref_result.status == OperationStatus.SKIPPED:
            return f"  - {label}: {ref_result.message}"
        if ref_result.status == OperationStatus.DRY_RUN:
            return f"  Would sync {label}: {ref_result.message}"
        return f"  ✓ {label}: {ref_result.message}"


def destination_hashes(
    paths: ProjectPaths,
    files: FileOps,
    dests: Iterable[str],
    nested: Optional[Dict[str, List[str]]] = None,
) -> Dict[str, str]:
    """
    Live SHA-256 of every file under ``dests``, keyed by project-relative
    POSIX path.

    Destinations listed in ``nested`` under one of ``dests`` belong to
    other mappings and are left out. Missing destinations contribute
    nothing.
    """
    nested = nested or {}
    hashes: Dict[str, str] = {}
    for dest in dests:
        target = paths.dest(dest)
        if not target.exists():
            continue
        if target.is_file():
            hashes[dest] = files.checksum(target)
            continue
        exclude = [paths.dest(inner) for inner in nested.get(dest, ())]
        for rel, digest in files.file_hashes(target, exclude).items():
            hashes[f"{dest}/{rel}"] = digest
    return hashes


def file_hashes_by_ref(
    service: SyncService,
    summary: SyncSummary,
) -> Dict[Tuple[str, str], Dict[str, str]]:
    """
    Per-file hashes of every ref a sync run materialized or confirmed.

    Read from disk, so only destinations the run has just proven to match
    the locked commit are listed. Failed and dry-run refs are left out.
    """
    hashes: Dict[Tuple[str, str], Dict[str, str]] = {}
    for ref_result in summary.ref_results():
        if ref_result.status not in (OperationStatus.SUCCESS, OperationStatus.SKIPPED):
            continue
        dests = [m.dest for m in ref_result.mappings]
        hashes[(ref_result.vendor, ref_result.ref)] = destination_hashes(
            service.paths, service.files, dests, service.nested
        )
    return hashes
