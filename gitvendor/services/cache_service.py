"""
Incremental sync cache for git-vendor.

Remembers, per (vendor, ref), which commit was last materialized and the
checksum of every destination written from it. A destination is fresh
only when all three hold:

1. the cached commit equals the currently locked commit,
2. the destination exists on disk,
3. its live checksum equals the cached checksum.

Entries are never patched across a commit change: recording against a
new commit starts a fresh bucket for that vendor/ref.

One JSON file per vendor/ref lives under ``.git-vendor/.cache/``. A
corrupt file is logged and treated as empty.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Collection, Dict, Optional, Tuple

from ..errors import CacheError
from ..infra.file_ops import FileOps
from ..infra.file_store import FileStore
from ..paths import ProjectPaths

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    dest: str
    source: str
    checksum: str


@dataclass
class RefCache:
    """All cached destinations of one vendor/ref at one commit."""
    vendor: str
    ref: str
    commit_hash: str
    entries: Dict[str, CacheEntry] = field(default_factory=dict)
    cached_at: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> 'RefCache':
        entries = {}
        for item in data.get('files') or []:
            entry = CacheEntry(
                dest=str(item['path']),
                source=str(item.get('source', '')),
                checksum=str(item['hash']),
            )
            entries[entry.dest] = entry
        return cls(
            vendor=str(data['vendor_name']),
            ref=str(data['ref']),
            commit_hash=str(data['commit_hash']),
            entries=entries,
            cached_at=str(data.get('cached_at', '')),
        )

    def to_dict(self) -> dict:
        return {
            'vendor_name': self.vendor,
            'ref': self.ref,
            'commit_hash': self.commit_hash,
            'files': [
                {'path': e.dest, 'source': e.source, 'hash': e.checksum}
                for e in sorted(self.entries.values(), key=lambda e: e.dest)
            ],
            'cached_at': self.cached_at,
        }


class CacheStore:
    """
    Commit-and-checksum keyed record of materialized destinations.

    Safe for concurrent use by sync workers. Each destination key has its
    own lock, so workers on different keys never contend; bucket-level
    operations (load, invalidate, save) take the vendor/ref lock.

    Example:
        cache = CacheStore(ProjectPaths(root))
        if not cache.is_fresh("lib", "main", locked_hash, "vendor/lib"):
            ...copy...
            cache.record("lib", "main", locked_hash, "vendor/lib", digest, source="src")
        cache.save("lib", "main")
    """

    def __init__(self, paths: ProjectPaths, files: Optional[FileOps] = None):
        self.paths = paths
        self.files = files or FileOps()
        self._buckets: Dict[Tuple[str, str], Optional[RefCache]] = {}
        self._locks: Dict[tuple, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: tuple) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _store(self, vendor: str, ref: str) -> FileStore:
        return FileStore(self.paths.cache_file(vendor, ref))

    def _load(self, vendor: str, ref: str) -> Optional[RefCache]:
        """Read the bucket from disk on first use. Caller holds the bucket lock."""
        key = (vendor, ref)
        if key in self._buckets:
            return self._buckets[key]

        bucket = None
        store = self._store(vendor, ref)
        try:
            data = store.read()
            if data is not None:
                bucket = RefCache.from_dict(data)
                if (bucket.vendor, bucket.ref) != key:
                    logger.debug(f"Cache file {store.path} belongs to "
                                 f"{bucket.vendor}@{bucket.ref}, ignoring")
                    bucket = None
        except CacheError as e:
            logger.warning(f"{e}; treating as cache miss")
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Malformed cache file {store.path} ({e}); treating as cache miss")

        self._buckets[key] = bucket
        return bucket

    def _bucket(self, vendor: str, ref: str) -> Optional[RefCache]:
        with self._lock_for((vendor, ref)):
            return self._load(vendor, ref)

    def lookup(self, vendor: str, ref: str, commit_hash: str, dest: str) -> Tuple[Optional[str], bool]:
        """
        Cached checksum for ``dest`` at ``commit_hash``.

        Returns (checksum, True) on a hit, (None, False) when nothing is
        cached or the cache belongs to another commit. Does not look at
        the file system.
        """
        bucket = self._bucket(vendor, ref)
        if bucket is None or bucket.commit_hash != commit_hash:
            return None, False
        with self._lock_for((vendor, ref, dest)):
            entry = bucket.entries.get(dest)
        if entry is None:
            return None, False
        return entry.checksum, True

    def is_fresh(self, vendor: str, ref: str, commit_hash: str, dest: str,
                 exclude: Collection[str] = ()) -> bool:
        """
        True when ``dest`` can be skipped: same commit, exists, same checksum.

        ``exclude`` lists destinations nested inside ``dest`` that other
        mappings own; they are left out of the live checksum.
        """
        checksum, found = self.lookup(vendor, ref, commit_hash, dest)
        if not found:
            return False
        return not self.files.is_stale(self.paths.dest(dest), checksum,
                                       [self.paths.dest(inner) for inner in exclude])

    def record(
        self,
        vendor: str,
        ref: str,
        commit_hash: str,
        dest: str,
        checksum: str,
        source: str = "",
    ) -> None:
        """Store the checksum of a freshly written destination."""
        with self._lock_for((vendor, ref)):
            bucket = self._load(vendor, ref)
            if bucket is None or bucket.commit_hash != commit_hash:
                bucket = RefCache(vendor=vendor, ref=ref, commit_hash=commit_hash)
                self._buckets[(vendor, ref)] = bucket
        with self._lock_for((vendor, ref, dest)):
            bucket.entries[dest] = CacheEntry(dest=dest, source=source, checksum=checksum)

    def invalidate(self, vendor: str, ref: str, commit_hash: Optional[str] = None) -> bool:
        """
        Drop the vendor/ref cache unless it was built from ``commit_hash``.

        With no hash, drops it unconditionally. Returns True if anything
        was removed.
        """
        with self._lock_for((vendor, ref)):
            bucket = self._load(vendor, ref)
            if bucket is None:
                return False
            if commit_hash is not None and bucket.commit_hash == commit_hash:
                return False
            self._buckets[(vendor, ref)] = None
            store = self._store(vendor, ref)
            try:
                store.delete()
            except OSError as e:
                logger.warning(f"Cannot remove cache file {store.path}: {e}")
            return True

    def save(self, vendor: str, ref: str) -> None:
        """Persist the vendor/ref bucket. Failures are logged, never raised."""
        with self._lock_for((vendor, ref)):
            bucket = self._buckets.get((vendor, ref))
            if bucket is None:
                return
            bucket.cached_at = datetime.now(timezone.utc).isoformat()
            store = self._store(vendor, ref)
            try:
                store.write(bucket.to_dict())
            except OSError as e:
                logger.warning(f"Cannot write cache file {store.path}: {e}")

    def entries(self, vendor: str, ref: str) -> Dict[str, str]:
        """Cached {dest: checksum} for vendor/ref, regardless of commit."""
        bucket = self._bucket(vendor, ref)
        if bucket is None:
            return {}
        return {dest: e.checksum for dest, e in bucket.entries.items()}

    def cached_commit(self, vendor: str, ref: str) -> Optional[str]:
        bucket = self._bucket(vendor, ref)
        return bucket.commit_hash if bucket else None
