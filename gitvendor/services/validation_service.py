"""
Validation service for git-vendor.

Static checks over vendor.yml that run before any network or file work:
configuration consistency, destination path safety and destination
conflicts between mappings. Everything here is a pure function of the
in-memory configuration.
"""

import logging
import ntpath
import posixpath
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from ..domain.vendor import MappingOwner, PathConflict, VendorConfig, VendorSpec
from ..errors import (
    ConfigError,
    ConflictError,
    GroupNotFoundError,
    UnsafePathError,
    VendorNotFoundError,
)
from ..paths import VENDOR_DIR

logger = logging.getLogger(__name__)

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")

# Destinations that would clobber repository or tool state
_RESERVED_ROOTS = (".git", VENDOR_DIR)


def normalize_dest(path: str) -> str:
    """Canonical form used to compare destinations: POSIX separators, no ``./``, no trailing slash."""
    normalized = posixpath.normpath(path.replace("\\", "/"))
    return "" if normalized == "." else normalized


def validate_dest_path(path: str) -> str:
    """
    Check that a destination stays inside the project root.

    Returns the normalized path.

    Raises:
        UnsafePathError: empty, absolute, drive-qualified, containing ``..``
            segments or NUL bytes, or pointing at the project root or at
            .git / .git-vendor
    """
    if not path or not path.strip():
        raise UnsafePathError(path, "destination is empty")
    if "\x00" in path:
        raise UnsafePathError(path, "contains a null byte")
    if path.startswith(("/", "\\")) or posixpath.isabs(path) or ntpath.isabs(path):
        raise UnsafePathError(path, "absolute paths are not allowed")
    if _DRIVE_LETTER.match(path):
        raise UnsafePathError(path, "drive-qualified paths are not allowed")
    if ".." in re.split(r"[\\/]", path):
        raise UnsafePathError(path, "parent directory segments ('..') are not allowed")

    normalized = normalize_dest(path)
    if not normalized:
        raise UnsafePathError(path, "destination resolves to the project root")
    if normalized.split("/", 1)[0] in _RESERVED_ROOTS:
        raise UnsafePathError(path, f"destination inside {normalized.split('/', 1)[0]}")
    return normalized


def validate_vendor_name(name: str) -> None:
    """
    Vendor names end up in cache and license filenames.

    Raises:
        ConfigError: empty, or containing ``/``, ``\\``, ``..`` or NUL
    """
    if not name:
        raise ConfigError("vendor name is empty")
    if "\x00" in name:
        raise ConfigError(f"vendor name {name!r} contains a null byte")
    if "/" in name or "\\" in name:
        raise ConfigError(f"vendor name {name!r} must not contain path separators")
    if ".." in name:
        raise ConfigError(f"vendor name {name!r} must not contain '..'")


def config_problems(config: VendorConfig) -> List[str]:
    """Every consistency problem in the configuration, in declaration order."""
    problems: List[str] = []
    if not config.vendors:
        problems.append("no vendors configured")
        return problems

    seen = set()
    for index, vendor in enumerate(config.vendors):
        label = vendor.name or f"vendors[{index}]"
        try:
            validate_vendor_name(vendor.name)
        except ConfigError as e:
            problems.append(f"{label}: {e}")
        if vendor.name in seen:
            problems.append(f"{label}: duplicate vendor name")
        seen.add(vendor.name)

        if not vendor.url:
            problems.append(f"{label}: missing url")
        if not vendor.specs:
            problems.append(f"{label}: no refs configured")

        refs = set()
        for spec in vendor.specs:
            if not spec.ref.strip():
                problems.append(f"{label}: empty ref")
                continue
            if spec.ref in refs:
                problems.append(f"{label}@{spec.ref}: ref listed twice")
            refs.add(spec.ref)
            if not spec.mappings:
                problems.append(f"{label}@{spec.ref}: no path mappings")
            for mapping in spec.mappings:
                if not mapping.source.strip():
                    problems.append(f"{label}@{spec.ref}: mapping with empty 'from'")
    return problems


def validate_config(config: VendorConfig) -> None:
    """
    Raises:
        ConfigError: listing every problem found
    """
    problems = config_problems(config)
    if problems:
        raise ConfigError(
            "invalid vendor configuration:\n  " + "\n  ".join(problems),
            problems=problems,
        )


def select_vendors(
    config: VendorConfig,
    vendor: Optional[str] = None,
    group: Optional[str] = None,
) -> List[VendorSpec]:
    """
    Vendors matching the single-vendor and group filters, in config order.

    Raises:
        VendorNotFoundError: ``vendor`` is not configured
        GroupNotFoundError: no vendor (after the name filter) is in ``group``
    """
    selected = list(config.vendors)
    if vendor:
        spec = config.get(vendor)
        if spec is None:
            raise VendorNotFoundError(vendor)
        selected = [spec]
    if group:
        selected = [v for v in selected if v.in_group(group)]
        if not selected:
            raise GroupNotFoundError(group)
    return selected


def nested_destinations(config: VendorConfig) -> Dict[str, List[str]]:
    """
    Destinations that lie inside another mapping's destination.

    Returns {outer: [inner, ...]} over normalized paths, both sorted.
    Sync leaves the inner paths alone when it replaces the outer one and
    keeps them out of its checksum. Unsafe destinations are ignored here.
    """
    dests = set()
    for _, dest in ConflictValidator().expand(config):
        try:
            dests.add(validate_dest_path(dest))
        except UnsafePathError:
            continue

    nested: Dict[str, List[str]] = {}
    for outer in sorted(dests):
        inner = [d for d in sorted(dests) if d.startswith(outer + "/")]
        if inner:
            nested[outer] = inner
    return nested


class ConflictValidator:
    """
    Detects destinations written by more than one mapping.

    Two destinations conflict only when they are identical after
    normalization; a directory and a file inside it are not flagged
    (see nested_destinations).
    Runs to completion before any clone or copy, which is what makes
    destination paths disjoint across concurrent vendor workers.

    Example:
        validator = ConflictValidator()
        validator.check(config)   # raises UnsafePathError / ConflictError
    """

    def expand(self, config: VendorConfig) -> Iterable[Tuple[MappingOwner, str]]:
        """Every (owner, raw destination) pair across all vendors and refs."""
        for vendor in config.vendors:
            for spec in vendor.specs:
                for source, dest in spec.resolve(vendor.name):
                    yield MappingOwner(vendor=vendor.name, ref=spec.ref, source=source), dest

    def check_paths(self, config: VendorConfig) -> None:
        """Fail fast on the first unsafe destination."""
        for owner, dest in self.expand(config):
            try:
                validate_dest_path(dest)
            except UnsafePathError as e:
                raise UnsafePathError(
                    dest, f"{e.reason} (vendor {owner.vendor}@{owner.ref}, from {owner.source!r})"
                ) from e

    def find_conflicts(self, config: VendorConfig) -> List[PathConflict]:
        """
        Conflicts sorted by destination, owners sorted within each, so the
        result does not depend on declaration order.
        """
        owners: Dict[str, List[MappingOwner]] = defaultdict(list)
        for owner, dest in self.expand(config):
            owners[normalize_dest(dest)].append(owner)

        conflicts = []
        for dest in sorted(owners):
            if len(owners[dest]) > 1:
                conflicts.append(PathConflict(
                    dest=dest,
                    owners=sorted(owners[dest], key=lambda o: (o.vendor, o.ref, o.source)),
                ))
        return conflicts

    def check(self, config: VendorConfig) -> None:
        """
        Raises:
            UnsafePathError: a destination escapes the project
            ConflictError: two or more mappings share a destination
        """
        self.check_paths(config)
        conflicts = self.find_conflicts(config)
        if conflicts:
            lines = "\n  ".join(c.describe() for c in conflicts)
            raise ConflictError(
                f"{len(conflicts)} destination conflict(s):\n  {lines}",
                conflicts=conflicts,
            )
        logger.debug("No destination conflicts")
