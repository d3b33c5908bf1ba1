"""
Error hierarchy for git-vendor.

Fatal errors (configuration, conflicts) abort a command before any vendor
work starts. Per-vendor errors (git, missing sources, missing locks) are
captured on that vendor's result and never abort siblings.
"""

from typing import List, Optional, Sequence

from .exit_codes import (
    CommandError,
    CONFIG_ERROR,
    CONFLICT_ERROR,
    GENERAL_ERROR,
)


class VendorError(CommandError):
    """Base class for all git-vendor errors."""
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message, exit_code)


class ConfigError(VendorError):
    """Raised when vendor.yml is missing, malformed or inconsistent."""
    def __init__(self, message: str, problems: Optional[Sequence[str]] = None):
        super().__init__(message, CONFIG_ERROR)
        self.problems: List[str] = list(problems or [])


class VendorNotFoundError(ConfigError):
    """Raised when a vendor filter names a vendor that is not configured."""
    def __init__(self, name: str):
        super().__init__(f"vendor '{name}' not found in configuration")
        self.name = name


class GroupNotFoundError(ConfigError):
    """Raised when a group filter matches no configured vendor."""
    def __init__(self, group: str):
        super().__init__(f"no vendors belong to group '{group}'")
        self.group = group


class ConflictError(VendorError):
    """Raised when two mappings write the same destination."""
    def __init__(self, message: str, conflicts: Optional[Sequence] = None):
        super().__init__(message, CONFLICT_ERROR)
        self.conflicts = list(conflicts or [])


class UnsafePathError(ConflictError):
    """Raised for destinations that are absolute or escape the project root."""
    def __init__(self, path: str, reason: str):
        super().__init__(f"unsafe destination path {path!r}: {reason}")
        self.path = path
        self.reason = reason


class GitOperationError(VendorError):
    """A git subprocess failed."""
    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = list(command or [])
        self.returncode = returncode
        self.stderr = stderr


class StaleCommitError(GitOperationError):
    """The locked commit no longer exists in the remote."""


class CheckoutError(GitOperationError):
    """Checkout of the locked commit failed for a reason other than staleness."""


class GitCancelledError(GitOperationError):
    """A git command was killed because the run was cancelled."""


class SourcePathNotFoundError(VendorError):
    """A mapping's source path does not exist at the locked commit."""
    def __init__(self, vendor: str, ref: str, source: str):
        super().__init__(f"{vendor}@{ref}: source path '{source}' not found in remote tree")
        self.vendor = vendor
        self.ref = ref
        self.source = source


class LockMissingError(VendorError):
    """A configured ref has never been resolved into vendor.lock."""
    def __init__(self, vendor: str, ref: str):
        super().__init__(
            f"{vendor}@{ref} has no lock entry; run 'git-vendor update {vendor}' first"
        )
        self.vendor = vendor
        self.ref = ref


class CacheError(VendorError):
    """A cache file is corrupt or unreadable. Always treated as a cache miss."""


class NoteAttachmentError(VendorError):
    """Attaching the vendor note to a commit failed."""


class CommitError(VendorError):
    """Staging or creating the vendor commit failed."""
