"""
File operations for git-vendor: copying vendored trees, content checksums
and scoped temporary directories.
"""

import hashlib
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024

# Never copied out of a source tree
_IGNORED_NAMES = (".git",)


@dataclass
class CopyStats:
    files: int = 0
    bytes: int = 0


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


def _is_within(path: Path, others: Collection[Path]) -> bool:
    """True if ``path`` is one of ``others`` or lies beneath one of them."""
    return any(path == other or other in path.parents for other in others)


class FileOps:
    """
    Copy, checksum and temp-directory operations.

    Example:
        files = FileOps()
        with files.temp_dir() as tmp:
            ...
            files.copy(tmp / "src/lib", project / "vendor/lib")
            digest = files.checksum(project / "vendor/lib")
    """

    def copy(self, source: Path, dest: Path, keep: Collection[Path] = ()) -> CopyStats:
        """
        Replace ``dest`` with a copy of ``source`` (file or directory).

        Only ``dest`` itself is replaced; siblings are never touched.
        ``.git`` entries inside a source directory are skipped. Paths in
        ``keep`` that lie inside a directory ``dest`` belong to someone
        else: they are neither removed nor overwritten.
        """
        source = Path(source)
        dest = Path(dest)
        keep = [Path(p) for p in keep if dest in Path(p).parents]
        stats = CopyStats()

        if dest.is_symlink() or dest.is_file():
            dest.unlink()
        elif dest.is_dir():
            if keep:
                self._clear_except(dest, keep)
            else:
                shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        if source.is_dir():
            def ignore(directory, names):
                skipped = set(shutil.ignore_patterns(*_IGNORED_NAMES)(directory, names))
                if keep:
                    target = dest / Path(directory).relative_to(source)
                    skipped.update(n for n in names if (target / n) in keep)
                return skipped

            shutil.copytree(source, dest, symlinks=True, ignore=ignore, dirs_exist_ok=True)
            for path in dest.rglob('*'):
                if _is_within(path, keep):
                    continue
                if path.is_file() and not path.is_symlink():
                    stats.files += 1
                    stats.bytes += path.stat().st_size
        else:
            shutil.copy2(source, dest)
            stats.files = 1
            stats.bytes = dest.stat().st_size

        logger.debug(f"Copied {source} -> {dest} ({stats.files} files)")
        return stats

    def _clear_except(self, dest: Path, keep: Collection[Path]) -> None:
        """Empty directory ``dest`` apart from ``keep`` and the directories holding them."""
        for entry in list(dest.iterdir()):
            if entry in keep:
                continue
            if any(entry in kept.parents for kept in keep):
                self._clear_except(entry, keep)
            elif entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def file_hashes(self, path: Path, exclude: Collection[Path] = ()) -> Dict[str, str]:
        """
        SHA-256 per regular file under ``path``, keyed by relative POSIX path.

        Anything in ``exclude`` (or beneath it) is left out.
        """
        path = Path(path)
        exclude = [Path(p) for p in exclude]
        if path.is_file():
            return {path.name: _hash_file(path)}

        hashes = {}
        for root, dirs, files in os.walk(path):
            dirs[:] = [
                d for d in dirs
                if d not in _IGNORED_NAMES and not _is_within(Path(root) / d, exclude)
            ]
            for name in files:
                file_path = Path(root) / name
                if _is_within(file_path, exclude):
                    continue
                if file_path.is_symlink():
                    rel = file_path.relative_to(path).as_posix()
                    hashes[rel] = hashlib.sha256(
                        os.readlink(file_path).encode()
                    ).hexdigest()
                elif file_path.is_file():
                    hashes[file_path.relative_to(path).as_posix()] = _hash_file(file_path)
        return hashes

    def checksum(self, path: Path, exclude: Collection[Path] = ()) -> str:
        """
        SHA-256 of a file's bytes, or of a directory's sorted
        (relative path, file hash) listing without ``exclude``.

        Raises:
            FileNotFoundError: path does not exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(str(path))
        if path.is_file():
            return _hash_file(path)

        digest = hashlib.sha256()
        for rel, file_hash in sorted(self.file_hashes(path, exclude).items()):
            digest.update(rel.encode('utf-8'))
            digest.update(b'\0')
            digest.update(file_hash.encode('ascii'))
            digest.update(b'\n')
        return digest.hexdigest()

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_stale(self, path: Path, expected_checksum: Optional[str],
                 exclude: Collection[Path] = ()) -> bool:
        """True if ``path`` is missing or its live checksum differs."""
        if not expected_checksum or not self.exists(path):
            return True
        try:
            return self.checksum(path, exclude) != expected_checksum
        except OSError as e:
            logger.debug(f"Cannot checksum {path}: {e}")
            return True

    @contextmanager
    def temp_dir(self, prefix: str = "git-vendor-") -> Iterator[Path]:
        """A temporary directory removed on every exit path."""
        with tempfile.TemporaryDirectory(prefix=prefix, ignore_cleanup_errors=True) as tmp:
            yield Path(tmp)

    def write_text(self, path: Path, content: str) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
