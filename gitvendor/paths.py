"""
Project-relative locations of git-vendor state.
"""

import re
from pathlib import Path

VENDOR_DIR = ".git-vendor"
CONFIG_FILE = "vendor.yml"
LOCK_FILE = "vendor.lock"
LICENSES_DIR = "licenses"
CACHE_DIR = ".cache"

NOTES_REF = "refs/notes/vendor"
COMMIT_SCHEMA = "vendor/v1"

DEFAULT_REF = "main"

LICENSE_FILENAMES = ("LICENSE", "LICENSE.txt", "LICENSE.md", "COPYING")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(value: str) -> str:
    """Replace anything outside [A-Za-z0-9._-] so the value is filename-safe."""
    return _UNSAFE_FILENAME_CHARS.sub("_", value) or "_"


class ProjectPaths:
    """Resolves the .git-vendor layout under a project root."""

    def __init__(self, root):
        self.root = Path(root).resolve()

    @property
    def vendor_dir(self) -> Path:
        return self.root / VENDOR_DIR

    @property
    def config_file(self) -> Path:
        return self.vendor_dir / CONFIG_FILE

    @property
    def lock_file(self) -> Path:
        return self.vendor_dir / LOCK_FILE

    @property
    def licenses_dir(self) -> Path:
        return self.vendor_dir / LICENSES_DIR

    @property
    def cache_dir(self) -> Path:
        return self.vendor_dir / CACHE_DIR

    def license_file(self, vendor: str) -> Path:
        return self.licenses_dir / f"{sanitize_filename(vendor)}.txt"

    def license_relpath(self, vendor: str) -> str:
        return self.relative(self.license_file(vendor))

    def cache_file(self, vendor: str, ref: str) -> Path:
        return self.cache_dir / f"{sanitize_filename(vendor)}-{sanitize_filename(ref)}.json"

    def dest(self, dest: str) -> Path:
        """Absolute path of a validated project-relative destination."""
        return self.root / dest

    def relative(self, path: Path) -> str:
        return Path(path).resolve().relative_to(self.root).as_posix()
