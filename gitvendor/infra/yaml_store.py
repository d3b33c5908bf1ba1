"""
StateStore: loads and saves vendor.yml and vendor.lock.

Both are YAML documents under ``.git-vendor/``. Loading happens once per
command, before any vendor work; saving happens only after all core
computation has finished.
"""

import logging
from pathlib import Path

import yaml

from ..domain.vendor import VendorConfig, VendorLock
from ..errors import ConfigError
from ..paths import ProjectPaths
from .file_store import write_atomic

logger = logging.getLogger(__name__)


class StateStore:
    """
    YAML persistence for the vendor configuration and lock.

    Example:
        store = StateStore(Path("."))
        config = store.load_config()
        lock = store.load_lock()
        ...
        store.save_lock(lock)
    """

    def __init__(self, root: Path):
        self.paths = ProjectPaths(root)

    @property
    def root(self) -> Path:
        return self.paths.root

    def _load_yaml(self, path: Path, what: str):
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"{what} is not valid YAML: {e}") from e
        except OSError as e:
            raise ConfigError(f"cannot read {what}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{what} must be a mapping with a 'vendors' key")
        if data.get('vendors') is not None and not isinstance(data['vendors'], list):
            raise ConfigError(f"{what}: 'vendors' must be a list")
        return data

    def _dump(self, path: Path, data) -> None:
        write_atomic(path, yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    def load_config(self) -> VendorConfig:
        """
        Load vendor.yml.

        Raises:
            ConfigError: missing file, invalid YAML or wrong shape
        """
        path = self.paths.config_file
        if not path.exists():
            raise ConfigError(
                f"{self.paths.relative(path)} not found; is this a git-vendor project?"
            )
        data = self._load_yaml(path, self.paths.relative(path))
        try:
            return VendorConfig.from_dict(data)
        except (AttributeError, TypeError) as e:
            raise ConfigError(f"{self.paths.relative(path)} is malformed: {e}") from e

    def save_config(self, config: VendorConfig) -> None:
        self._dump(self.paths.config_file, config.to_dict())
        logger.info(f"Saved {self.paths.relative(self.paths.config_file)}")

    def load_lock(self) -> VendorLock:
        """Load vendor.lock; a missing lock is an empty lock."""
        path = self.paths.lock_file
        if not path.exists():
            return VendorLock()
        data = self._load_yaml(path, self.paths.relative(path))
        try:
            return VendorLock.from_dict(data)
        except (AttributeError, TypeError) as e:
            raise ConfigError(f"{self.paths.relative(path)} is malformed: {e}") from e

    def save_lock(self, lock: VendorLock) -> None:
        self._dump(self.paths.lock_file, lock.to_dict())
        logger.info(f"Saved {self.paths.relative(self.paths.lock_file)}")
