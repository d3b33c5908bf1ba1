"""
Infrastructure layer for git-vendor.

Contains abstractions for external systems:
- GitClient: Git command execution
- FileOps: copying, checksums and temp directories
- StateStore: vendor.yml / vendor.lock persistence
- FileStore: atomic JSON documents (sync cache)
- LicenseClient: GitHub/GitLab license lookup

The services depend only on the methods of these classes, so tests can
substitute fakes.
"""

from .git_client import GitClient
from .file_ops import FileOps, CopyStats
from .file_store import FileStore, write_atomic
from .yaml_store import StateStore
from .license_client import LicenseClient, parse_repo_url

__all__ = [
    'GitClient',
    'FileOps',
    'CopyStats',
    'FileStore',
    'write_atomic',
    'StateStore',
    'LicenseClient',
    'parse_repo_url',
]
