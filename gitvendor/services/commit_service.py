"""
Commit service for git-vendor.

Creates one commit covering every vendor touched by a run, with a
positional trailer block:

    chore(vendor): sync 2 vendors

    Commit-Schema: vendor/v1
    Vendor-Name: lib-a
    Vendor-Ref: main
    Vendor-Commit: 3f2c...
    Vendor-Name: lib-b
    Vendor-Ref: v2
    Vendor-Commit: 91ab...

and a JSON note under refs/notes/vendor with the full provenance. The
trailers are the human summary; the note is what tooling reads.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..domain.vendor import LockDetails, Trailer, VendorConfig, VendorRecord
from ..errors import (
    CommitError,
    GitCancelledError,
    GitOperationError,
    NoteAttachmentError,
    VendorNotFoundError,
)
from ..infra.git_client import GitClient
from ..paths import COMMIT_SCHEMA, NOTES_REF, ProjectPaths
from .validation_service import normalize_dest

logger = logging.getLogger(__name__)

SCHEMA_TRAILER = "Commit-Schema"
NAME_TRAILER = "Vendor-Name"
REF_TRAILER = "Vendor-Ref"
COMMIT_TRAILER = "Vendor-Commit"

_STRIDE = (NAME_TRAILER, REF_TRAILER, COMMIT_TRAILER)

FileHashes = Dict[Tuple[str, str], Dict[str, str]]


def build_trailers(lock_details: Sequence[LockDetails]) -> List[Trailer]:
    """One (Vendor-Name, Vendor-Ref, Vendor-Commit) triple per entry, in input order."""
    trailers: List[Trailer] = []
    for record in (VendorRecord.from_lock(lock) for lock in lock_details):
        trailers.append(Trailer(NAME_TRAILER, record.name))
        trailers.append(Trailer(REF_TRAILER, record.ref))
        trailers.append(Trailer(COMMIT_TRAILER, record.commit))
    return trailers


def parse_trailers(trailers: Sequence[Trailer]) -> List[VendorRecord]:
    """
    Rebuild vendor records from a trailer sequence.

    Vendor trailers are read as fixed-stride groups; other keys are
    ignored.

    Raises:
        ValueError: a group is incomplete or out of order
    """
    vendor_trailers = [t for t in trailers if t.key in _STRIDE]
    if len(vendor_trailers) % len(_STRIDE):
        raise ValueError(f"{len(vendor_trailers)} vendor trailers is not a multiple of 3")

    records = []
    for start in range(0, len(vendor_trailers), len(_STRIDE)):
        group = vendor_trailers[start:start + len(_STRIDE)]
        keys = tuple(t.key for t in group)
        if keys != _STRIDE:
            raise ValueError(f"vendor trailer group {start // 3} out of order: {keys}")
        records.append(VendorRecord(name=group[0].value, ref=group[1].value, commit=group[2].value))
    return records


def parse_trailer_lines(message: str) -> List[Trailer]:
    """``Key: value`` lines of a commit message, in order."""
    trailers = []
    for line in message.splitlines():
        key, sep, value = line.partition(": ")
        if sep and key and " " not in key:
            trailers.append(Trailer(key, value.strip()))
    return trailers


def build_subject(operation: str, lock_details: Sequence[LockDetails]) -> str:
    if len(lock_details) == 1:
        lock = lock_details[0]
        return f"chore(vendor): {operation} {lock.name} to {lock.ref}"
    return f"chore(vendor): {operation} {len(lock_details)} vendors"


@dataclass
class CommitOutcome:
    """Result of a vendor commit."""
    commit_hash: Optional[str] = None
    note_attached: bool = False
    skipped_reason: Optional[str] = None
    paths: Sequence[str] = ()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'type': 'commit',
            'commit': self.commit_hash,
            'note_attached': self.note_attached,
        }
        if self.skipped_reason:
            result['skipped'] = self.skipped_reason
        return result


class CommitService:
    """
    Builds vendor trailers and notes and creates the vendor commit.

    Example:
        service = CommitService(root)
        outcome = service.commit_vendors("sync", locks, config)
        print(outcome.commit_hash)
    """

    def __init__(self, root: Path, git_client: Optional[GitClient] = None):
        self.paths = ProjectPaths(root)
        self.git = git_client or GitClient()

    def build_note(
        self,
        lock_details: Sequence[LockDetails],
        vendor_config: Optional[VendorConfig] = None,
        file_hashes: Optional[FileHashes] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Machine-readable provenance for every entry, keyed by vendor name.

        A vendor tracking several refs gets one item per ref under
        ``refs``.
        """
        file_hashes = file_hashes or {}
        vendors: Dict[str, Dict[str, Any]] = {}
        for lock in lock_details:
            spec = vendor_config.get(lock.name) if vendor_config else None
            ref_spec = spec.get_spec(lock.ref) if spec else None
            entry = vendors.setdefault(lock.name, {
                'url': spec.url if spec else "",
                'license': lock.license_spdx or (spec.license if spec else ""),
                'license_path': lock.license_path,
                'refs': [],
            })
            hashes = file_hashes.get(lock.key) or lock.file_hashes
            entry['refs'].append({
                'ref': lock.ref,
                'commit': lock.commit_hash,
                'version_tag': lock.source_version_tag,
                'updated': lock.updated,
                'paths': [normalize_dest(dest) for _, dest in ref_spec.resolve(lock.name)] if ref_spec else [],
                'file_hashes': dict(sorted(hashes.items())),
            })

        note: Dict[str, Any] = {
            'schema': COMMIT_SCHEMA,
            'created': datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            'vendors': vendors,
        }
        if extra:
            note['metadata'] = dict(extra)
        return note

    def vendor_paths(
        self,
        lock_details: Sequence[LockDetails],
        vendor_config: VendorConfig,
    ) -> List[str]:
        """
        Paths a vendor commit stages: every destination of the entries,
        vendor.lock, vendor.yml and license files. Only paths present on
        disk, deduplicated, in that order.
        """
        candidates: List[str] = []
        for lock in lock_details:
            spec = vendor_config.get(lock.name)
            ref_spec = spec.get_spec(lock.ref) if spec else None
            if ref_spec:
                candidates.extend(normalize_dest(dest) for _, dest in ref_spec.resolve(lock.name))
        candidates.append(self.paths.relative(self.paths.lock_file))
        candidates.append(self.paths.relative(self.paths.config_file))
        for lock in lock_details:
            if lock.license_path:
                candidates.append(lock.license_path)
            candidates.append(self.paths.license_relpath(lock.name))

        paths: List[str] = []
        for path in candidates:
            if path not in paths and (self.paths.root / path).exists():
                paths.append(path)
        return paths

    def commit(
        self,
        staged_paths: Sequence[str],
        subject: str,
        trailers: Sequence[Trailer],
        note: Optional[Dict[str, Any]] = None,
    ) -> CommitOutcome:
        """
        Stage ``staged_paths``, commit, then attach ``note``.

        Anything the user had already staged is included as well.
        Note attachment is best-effort: a failure is logged and reported
        on the outcome, never raised.

        Raises:
            CommitError: staging or committing failed
        """
        outcome = CommitOutcome(paths=list(staged_paths))
        root = self.paths.root
        try:
            self.git.add(root, list(staged_paths))
            if not self.git.has_staged_changes(root):
                outcome.skipped_reason = "nothing to commit"
                logger.warning("No vendored changes to commit")
                return outcome
            message_trailers = [Trailer(SCHEMA_TRAILER, COMMIT_SCHEMA), *trailers]
            # The hash is only known once the commit exists
            outcome.commit_hash = self.git.commit(root, subject, message_trailers)
        except GitCancelledError:
            raise
        except GitOperationError as e:
            raise CommitError(f"vendor commit failed: {e}") from e

        if note is not None:
            try:
                self._attach_note(outcome.commit_hash, note)
                outcome.note_attached = True
            except NoteAttachmentError as e:
                logger.warning(f"{e} (commit {outcome.commit_hash[:8]} kept)")
        return outcome

    def _attach_note(self, commit_hash: str, note: Dict[str, Any]) -> None:
        try:
            self.git.add_note(self.paths.root, commit_hash,
                              json.dumps(note, indent=2, sort_keys=False), NOTES_REF)
        except GitCancelledError:
            raise
        except GitOperationError as e:
            raise NoteAttachmentError(f"cannot attach vendor note: {e}") from e

    def commit_vendors(
        self,
        operation: str,
        lock_details: Sequence[LockDetails],
        vendor_config: VendorConfig,
        file_hashes: Optional[FileHashes] = None,
    ) -> CommitOutcome:
        """One commit for all ``lock_details``; the usual entry point for --commit."""
        if not lock_details:
            logger.warning("No vendors to commit")
            return CommitOutcome(skipped_reason="no vendors")
        note = self.build_note(lock_details, vendor_config, file_hashes,
                               extra={'operation': operation, **self._identity()})
        return self.commit(
            self.vendor_paths(lock_details, vendor_config),
            build_subject(operation, lock_details),
            build_trailers(lock_details),
            note,
        )

    def annotate(
        self,
        lock_details: Sequence[LockDetails],
        vendor_config: Optional[VendorConfig] = None,
        commit_hash: Optional[str] = None,
        vendor: Optional[str] = None,
        file_hashes: Optional[FileHashes] = None,
    ) -> str:
        """
        Attach a vendor note to an existing commit (HEAD by default).

        Returns:
            The annotated commit hash

        Raises:
            VendorNotFoundError: ``vendor`` has no lock entry
            NoteAttachmentError: the note could not be attached
        """
        entries = [lock for lock in lock_details if vendor is None or lock.name == vendor]
        if not entries:
            raise VendorNotFoundError(vendor or "(any)")

        try:
            target = self.git.head_hash(self.paths.root, commit_hash or "HEAD")
        except GitCancelledError:
            raise
        except GitOperationError as e:
            raise NoteAttachmentError(f"cannot resolve commit {commit_hash or 'HEAD'}: {e}") from e

        note = self.build_note(entries, vendor_config, file_hashes,
                               extra={'operation': 'annotate', **self._identity()})
        self._attach_note(target, note)
        logger.info(f"Attached vendor note to {target[:8]}")
        return target

    def _identity(self) -> Dict[str, str]:
        identity = self.git.user_identity(self.paths.root)
        return {'recorded_by': identity} if identity else {}
