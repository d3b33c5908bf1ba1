"""
JSON document persistence for git-vendor state files.

Writes go to a temporary sibling and are renamed into place, so a crash
never leaves a half-written cache file behind. Missing parent directories
are created on write.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import CacheError

logger = logging.getLogger(__name__)


def write_atomic(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory and rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(fd, 'w') as f:
            f.write(content)
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class FileStore:
    """
    A single JSON document on disk.

    Example:
        store = FileStore(Path(".git-vendor/.cache/lib-main.json"))
        data = store.read()      # None if the file does not exist
        store.write({"commit_hash": "abc123", "files": []})
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Read the document.

        Returns:
            The decoded object, or None if the file does not exist

        Raises:
            CacheError: the file exists but is unreadable or not a JSON object
        """
        with self._lock:
            if not self.path.exists():
                return None
            try:
                with open(self.path, 'r') as f:
                    data = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
                raise CacheError(f"cannot read {self.path}: {e}") from e
            if not isinstance(data, dict):
                raise CacheError(f"cannot read {self.path}: expected a JSON object")
            return data

    def write(self, data: Dict[str, Any]) -> None:
        """Replace the document atomically."""
        content = json.dumps(data, indent=2, ensure_ascii=False) + '\n'
        with self._lock:
            write_atomic(self.path, content)

    def delete(self) -> bool:
        """Remove the document. Returns True if it existed."""
        with self._lock:
            try:
                self.path.unlink()
                return True
            except FileNotFoundError:
                return False
