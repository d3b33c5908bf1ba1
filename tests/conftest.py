"""
Shared fixtures: a project directory with vendor.yml and two fake remotes.
"""

import pytest
import yaml

from fakes import FakeGitClient, FakeRemote

from gitvendor.config import get_default_config
from gitvendor.domain.vendor import LockDetails, VendorLock
from gitvendor.infra.yaml_store import StateStore

LIB_A_URL = "https://github.com/acme/lib-a"
LIB_B_URL = "https://github.com/acme/lib-b"


def write_vendor_yml(root, vendors):
    config_dir = root / ".git-vendor"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "vendor.yml").write_text(yaml.safe_dump({'vendors': vendors}, sort_keys=False))


def two_vendor_config():
    return [
        {
            'name': 'lib-a',
            'url': LIB_A_URL,
            'license': 'MIT',
            'groups': ['frontend'],
            'specs': [{'ref': 'main', 'mapping': [{'from': 'src/a', 'to': 'vendor/a'}]}],
        },
        {
            'name': 'lib-b',
            'url': LIB_B_URL,
            'groups': ['backend'],
            'specs': [{'ref': 'main', 'mapping': [{'from': 'util.py', 'to': 'vendor/b/util.py'}]}],
        },
    ]


@pytest.fixture
def settings():
    return get_default_config()


@pytest.fixture
def remotes():
    lib_a = FakeRemote()
    lib_a.commit({
        'src/a/core.py': "A = 1\n",
        'src/a/helpers.py': "def helper():\n    return 1\n",
        'LICENSE': "MIT License\n",
    }, subject="initial a")
    lib_b = FakeRemote()
    lib_b.commit({'util.py': "B = 1\n", 'README.md': "lib-b\n"}, subject="initial b")
    return {LIB_A_URL: lib_a, LIB_B_URL: lib_b}


@pytest.fixture
def git(remotes):
    return FakeGitClient(remotes)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    write_vendor_yml(root, two_vendor_config())
    return root


@pytest.fixture
def vendor_config(project):
    return StateStore(project).load_config()


@pytest.fixture
def lock(remotes):
    """A lock pinning both vendors at their current tips."""
    return VendorLock(vendors=[
        LockDetails(name='lib-a', ref='main', commit_hash=remotes[LIB_A_URL].tip(),
                    license_path=".git-vendor/licenses/lib-a.txt", updated="2025-01-01T00:00:00Z"),
        LockDetails(name='lib-b', ref='main', commit_hash=remotes[LIB_B_URL].tip(),
                    license_path=".git-vendor/licenses/lib-b.txt", updated="2025-01-01T00:00:00Z"),
    ])
