"""
Vendor domain objects for git-vendor.

Mirrors the on-disk shape of vendor.yml and vendor.lock. These objects
carry no I/O: loading and saving is the job of the StateStore.
"""

import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..paths import DEFAULT_REF


def clean_source_path(source: str, ref: str = "") -> str:
    """
    Normalize a mapping source as written by users.

    Strips leading slashes and the ``blob/<ref>/`` or ``tree/<ref>/``
    prefix left over from pasting a GitHub browser URL.
    """
    path = source.replace("\\", "/").lstrip("/")
    if ref:
        for kind in ("blob", "tree"):
            prefix = f"{kind}/{ref}/"
            if path.startswith(prefix):
                path = path[len(prefix):]
                break
    return path.rstrip("/")


def compute_auto_path(source: str, default_target: str, vendor_name: str) -> str:
    """Destination for a mapping that did not name one."""
    base = posixpath.basename(source.rstrip("/"))
    if not base or base == ".":
        base = vendor_name
    if default_target:
        return posixpath.join(default_target, base)
    return base


@dataclass
class PathMapping:
    """One ``from -> to`` pair under a ref."""
    source: str
    dest: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PathMapping':
        return cls(
            source=str(data.get('from') or ''),
            dest=str(data.get('to') or ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'from': self.source}
        if self.dest:
            result['to'] = self.dest
        return result


@dataclass
class RefSpec:
    """A tracked ref of a vendor and the paths it materializes."""
    ref: str = DEFAULT_REF
    default_target: str = ""
    mappings: List[PathMapping] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RefSpec':
        return cls(
            ref=str(data.get('ref') if data.get('ref') is not None else DEFAULT_REF),
            default_target=str(data.get('default_target') or ''),
            mappings=[PathMapping.from_dict(m) for m in data.get('mapping') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'ref': self.ref}
        if self.default_target:
            result['default_target'] = self.default_target
        result['mapping'] = [m.to_dict() for m in self.mappings]
        return result

    def resolve(self, vendor_name: str) -> List[Tuple[str, str]]:
        """
        Expand mappings into concrete (source, destination) pairs.

        Sources are cleaned; empty or ``.`` destinations are replaced by
        the auto path. Destinations are returned as written otherwise and
        must still pass path-safety validation before use.
        """
        resolved = []
        for mapping in self.mappings:
            source = clean_source_path(mapping.source, self.ref)
            dest = mapping.dest.strip()
            if dest in ("", "."):
                dest = compute_auto_path(source, self.default_target, vendor_name)
            resolved.append((source, dest))
        return resolved


@dataclass
class VendorSpec:
    """A named remote dependency."""
    name: str
    url: str
    license: str = ""
    groups: List[str] = field(default_factory=list)
    specs: List[RefSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VendorSpec':
        return cls(
            name=str(data.get('name') or ''),
            url=str(data.get('url') or ''),
            license=str(data.get('license') or ''),
            groups=[str(g) for g in data.get('groups') or []],
            specs=[RefSpec.from_dict(s) for s in data.get('specs') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'name': self.name, 'url': self.url}
        if self.license:
            result['license'] = self.license
        if self.groups:
            result['groups'] = list(self.groups)
        result['specs'] = [s.to_dict() for s in self.specs]
        return result

    def in_group(self, group: Optional[str]) -> bool:
        return not group or group in self.groups

    def get_spec(self, ref: str) -> Optional[RefSpec]:
        for spec in self.specs:
            if spec.ref == ref:
                return spec
        return None


@dataclass
class VendorConfig:
    """Ordered vendor declarations (vendor.yml)."""
    vendors: List[VendorSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'VendorConfig':
        data = data or {}
        return cls(vendors=[VendorSpec.from_dict(v) for v in data.get('vendors') or []])

    def to_dict(self) -> Dict[str, Any]:
        return {'vendors': [v.to_dict() for v in self.vendors]}

    def get(self, name: str) -> Optional[VendorSpec]:
        for vendor in self.vendors:
            if vendor.name == name:
                return vendor
        return None

    def names(self) -> List[str]:
        return [v.name for v in self.vendors]


@dataclass
class LockDetails:
    """The pinned state of one (vendor, ref) pair."""
    name: str
    ref: str
    commit_hash: str
    license_path: str = ""
    updated: str = ""
    license_spdx: str = ""
    source_version_tag: str = ""
    file_hashes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LockDetails':
        return cls(
            name=str(data.get('name') or ''),
            ref=str(data.get('ref') or ''),
            commit_hash=str(data.get('commit_hash') or ''),
            license_path=str(data.get('license_path') or ''),
            updated=str(data.get('updated') or ''),
            license_spdx=str(data.get('license_spdx') or ''),
            source_version_tag=str(data.get('source_version_tag') or ''),
            file_hashes=dict(data.get('file_hashes') or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': self.name,
            'ref': self.ref,
            'commit_hash': self.commit_hash,
            'license_path': self.license_path,
            'updated': self.updated,
        }
        if self.license_spdx:
            result['license_spdx'] = self.license_spdx
        if self.source_version_tag:
            result['source_version_tag'] = self.source_version_tag
        if self.file_hashes:
            result['file_hashes'] = dict(self.file_hashes)
        return result

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.ref)


@dataclass
class VendorLock:
    """Ordered lock entries (vendor.lock)."""
    vendors: List[LockDetails] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'VendorLock':
        data = data or {}
        return cls(vendors=[LockDetails.from_dict(v) for v in data.get('vendors') or []])

    def to_dict(self) -> Dict[str, Any]:
        return {'vendors': [v.to_dict() for v in self.vendors]}

    def find(self, name: str, ref: str) -> Optional[LockDetails]:
        for entry in self.vendors:
            if entry.name == name and entry.ref == ref:
                return entry
        return None

    def for_vendor(self, name: str) -> List[LockDetails]:
        return [entry for entry in self.vendors if entry.name == name]


@dataclass
class CommitInfo:
    """One commit between a locked hash and a remote tip."""
    hash: str
    short_hash: str
    subject: str
    author: str
    date: str  # "YYYY-MM-DD HH:MM:SS +ZZZZ"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hash': self.hash,
            'short_hash': self.short_hash,
            'subject': self.subject,
            'author': self.author,
            'date': self.date,
        }


@dataclass(frozen=True)
class Trailer:
    """A ``Key: value`` line in a commit message footer."""
    key: str
    value: str

    def __str__(self) -> str:
        return f"{self.key}: {self.value}"


@dataclass(frozen=True)
class VendorRecord:
    """
    The structured form of one Vendor-Name/Vendor-Ref/Vendor-Commit group.

    Only flattened into positional trailers when a commit message is
    written, and rebuilt from them when one is read.
    """
    name: str
    ref: str
    commit: str

    @classmethod
    def from_lock(cls, lock: LockDetails) -> 'VendorRecord':
        return cls(name=lock.name, ref=lock.ref, commit=lock.commit_hash)


@dataclass(frozen=True)
class MappingOwner:
    """A (vendor, source) pair writing to some destination."""
    vendor: str
    ref: str
    source: str


@dataclass
class PathConflict:
    """A destination written by more than one mapping."""
    dest: str
    owners: List[MappingOwner] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dest': self.dest,
            'owners': [
                {'vendor': o.vendor, 'ref': o.ref, 'source': o.source}
                for o in self.owners
            ],
        }

    def describe(self) -> str:
        owners = ", ".join(f"{o.vendor}@{o.ref}:{o.source}" for o in self.owners)
        return f"{self.dest} <- {owners}"
