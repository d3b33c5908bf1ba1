"""
Tests for the infrastructure layer: file operations, JSON and YAML stores,
license lookup.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
import yaml

from gitvendor.domain.vendor import LockDetails, VendorLock
from gitvendor.errors import CacheError, ConfigError
from gitvendor.infra.file_ops import FileOps
from gitvendor.infra.file_store import FileStore, write_atomic
from gitvendor.infra.license_client import LicenseClient, parse_repo_url
from gitvendor.infra.yaml_store import StateStore


class TestFileOps:
    """Tests for FileOps copy and checksum."""

    def test_copy_directory_skips_git(self, tmp_path):
        src = tmp_path / "src"
        (src / ".git").mkdir(parents=True)
        (src / ".git" / "HEAD").write_text("ref")
        (src / "pkg").mkdir()
        (src / "pkg" / "mod.py").write_text("x = 1\n")

        stats = FileOps().copy(src, tmp_path / "out" / "lib")

        assert (tmp_path / "out" / "lib" / "pkg" / "mod.py").read_text() == "x = 1\n"
        assert not (tmp_path / "out" / "lib" / ".git").exists()
        assert stats.files == 1

    def test_copy_replaces_only_dest(self, tmp_path):
        src = tmp_path / "new.py"
        src.write_text("new\n")
        out = tmp_path / "out"
        out.mkdir()
        (out / "lib").mkdir()
        (out / "lib" / "old.py").write_text("old\n")
        (out / "sibling.py").write_text("keep\n")

        FileOps().copy(src, out / "lib")

        assert (out / "lib").read_text() == "new\n"
        assert (out / "sibling.py").read_text() == "keep\n"

    def test_copy_keeps_nested_paths(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "core.py").write_text("core\n")
        (src / "util.py").write_text("upstream util\n")
        out = tmp_path / "out"
        out.mkdir()
        (out / "stale.py").write_text("old\n")
        (out / "util.py").write_text("owned elsewhere\n")
        (out / "deep" / "kept").mkdir(parents=True)
        (out / "deep" / "kept" / "f.txt").write_text("kept\n")
        (out / "deep" / "gone.txt").write_text("old\n")

        stats = FileOps().copy(src, out, keep=[out / "util.py", out / "deep" / "kept"])

        assert (out / "core.py").read_text() == "core\n"
        assert (out / "util.py").read_text() == "owned elsewhere\n"
        assert (out / "deep" / "kept" / "f.txt").read_text() == "kept\n"
        assert not (out / "stale.py").exists()
        assert not (out / "deep" / "gone.txt").exists()
        assert stats.files == 1

    def test_checksum_excludes_nested_paths(self, tmp_path):
        files = FileOps()
        (tmp_path / "lib").mkdir()
        (tmp_path / "lib" / "core.py").write_text("core\n")
        nested = tmp_path / "lib" / "util.py"
        nested.write_text("one\n")
        before = files.checksum(tmp_path / "lib", exclude=[nested])

        nested.write_text("two\n")

        assert files.checksum(tmp_path / "lib", exclude=[nested]) == before
        assert files.is_stale(tmp_path / "lib", before, exclude=[nested]) is False
        assert set(files.file_hashes(tmp_path / "lib", exclude=[nested])) == {"core.py"}

    def test_directory_checksum_is_content_based(self, tmp_path):
        files = FileOps()
        for name in ("a", "b"):
            (tmp_path / name / "sub").mkdir(parents=True)
            (tmp_path / name / "sub" / "f.txt").write_text("same\n")
        assert files.checksum(tmp_path / "a") == files.checksum(tmp_path / "b")

        (tmp_path / "b" / "sub" / "f.txt").write_text("different\n")
        assert files.checksum(tmp_path / "a") != files.checksum(tmp_path / "b")

    def test_checksum_sees_renames(self, tmp_path):
        files = FileOps()
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "x.txt").write_text("same\n")
        before = files.checksum(tmp_path / "a")
        (tmp_path / "a" / "x.txt").rename(tmp_path / "a" / "y.txt")
        assert files.checksum(tmp_path / "a") != before

    def test_checksum_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FileOps().checksum(tmp_path / "nope")

    def test_is_stale(self, tmp_path):
        files = FileOps()
        path = tmp_path / "f.txt"
        path.write_text("x")
        digest = files.checksum(path)
        assert files.is_stale(path, digest) is False
        assert files.is_stale(path, None) is True
        assert files.is_stale(tmp_path / "missing", digest) is True

    def test_temp_dir_removed(self):
        with FileOps().temp_dir() as tmp:
            (tmp / "f").write_text("x")
            kept = tmp
        assert not kept.exists()

    def test_temp_dir_removed_on_error(self):
        with pytest.raises(RuntimeError):
            with FileOps().temp_dir() as tmp:
                kept = tmp
                raise RuntimeError("boom")
        assert not kept.exists()


class TestFileStore:
    """Tests for JSON persistence."""

    def test_missing_file_reads_none(self, tmp_path):
        assert FileStore(tmp_path / "x.json").read() is None

    def test_write_then_read(self, tmp_path):
        store = FileStore(tmp_path / "deep" / "x.json")
        store.write({'a': 1})
        assert store.read() == {'a': 1}
        assert store.delete() is True
        assert store.delete() is False

    def test_corrupt_file_raises_cache_error(self, tmp_path):
        path = tmp_path / "x.json"
        path.write_text("[1, 2")
        with pytest.raises(CacheError):
            FileStore(path).read()

    def test_non_object_raises_cache_error(self, tmp_path):
        path = tmp_path / "x.json"
        path.write_text("[1, 2]")
        with pytest.raises(CacheError):
            FileStore(path).read()

    def test_write_atomic_leaves_no_temp_files(self, tmp_path):
        write_atomic(tmp_path / "f.txt", "content")
        assert [p.name for p in tmp_path.iterdir()] == ["f.txt"]


class TestStateStore:
    """Tests for vendor.yml / vendor.lock persistence."""

    def test_missing_config(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            StateStore(tmp_path).load_config()

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / ".git-vendor").mkdir()
        (tmp_path / ".git-vendor" / "vendor.yml").write_text("vendors: [unclosed")
        with pytest.raises(ConfigError, match="not valid YAML"):
            StateStore(tmp_path).load_config()

    def test_wrong_shape(self, tmp_path):
        (tmp_path / ".git-vendor").mkdir()
        (tmp_path / ".git-vendor" / "vendor.yml").write_text("vendors: just-a-string\n")
        with pytest.raises(ConfigError):
            StateStore(tmp_path).load_config()

    def test_load_config(self, project):
        config = StateStore(project).load_config()
        assert config.names() == ['lib-a', 'lib-b']
        assert config.get('lib-a').specs[0].mappings[0].dest == 'vendor/a'

    def test_missing_lock_is_empty(self, tmp_path):
        assert StateStore(tmp_path).load_lock().vendors == []

    def test_lock_round_trip_keeps_order(self, tmp_path):
        store = StateStore(tmp_path)
        lock = VendorLock(vendors=[
            LockDetails(name='z', ref='main', commit_hash='1' * 40),
            LockDetails(name='a', ref='main', commit_hash='2' * 40, source_version_tag='v1.0.0'),
        ])
        store.save_lock(lock)

        data = yaml.safe_load((tmp_path / ".git-vendor" / "vendor.lock").read_text())
        assert [v['name'] for v in data['vendors']] == ['z', 'a']
        assert store.load_lock() == lock


class TestParseRepoUrl:
    """Tests for remote URL parsing."""

    @pytest.mark.parametrize("url,host,path", [
        ("https://github.com/owner/repo", "github.com", "owner/repo"),
        ("https://github.com/owner/repo.git", "github.com", "owner/repo"),
        ("git@github.com:owner/repo.git", "github.com", "owner/repo"),
        ("ssh://git@gitlab.com:2222/group/sub/repo.git", "gitlab.com", "group/sub/repo"),
    ])
    def test_parse(self, url, host, path):
        location = parse_repo_url(url)
        assert (location.host, location.path) == (host, path)

    def test_platforms(self):
        assert parse_repo_url("https://github.com/a/b").platform == "github"
        assert parse_repo_url("https://gitlab.example.org/a/b").platform == "gitlab"
        assert parse_repo_url("https://example.org/a/b").platform is None

    def test_unparseable(self):
        assert parse_repo_url("/local/path") is None


def _response(status, payload=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    return response


class TestLicenseClient:
    """Tests for SPDX detection over mocked HTTP."""

    def test_github_spdx(self):
        client = LicenseClient(github_token="tok", base_delay=0)
        with patch('gitvendor.infra.license_client.requests.get',
                   return_value=_response(200, {'license': {'spdx_id': 'Apache-2.0'}})) as get:
            assert client.detect("https://github.com/owner/repo") == "Apache-2.0"
        url = get.call_args[0][0]
        assert url == "https://api.github.com/repos/owner/repo/license"
        assert get.call_args[1]['headers']['Authorization'] == "token tok"

    def test_github_noassertion_is_unknown(self):
        with patch('gitvendor.infra.license_client.requests.get',
                   return_value=_response(200, {'license': {'spdx_id': 'NOASSERTION'}})):
            assert LicenseClient(base_delay=0).detect("https://github.com/o/r") is None

    def test_gitlab_key_mapped(self):
        with patch('gitvendor.infra.license_client.requests.get',
                   return_value=_response(200, {'license': {'key': 'mit'}})) as get:
            assert LicenseClient(base_delay=0).detect("https://gitlab.com/group/repo") == "MIT"
        assert "projects/group%2Frepo" in get.call_args[0][0]

    def test_not_found(self):
        with patch('gitvendor.infra.license_client.requests.get', return_value=_response(404)):
            assert LicenseClient(base_delay=0).detect("https://github.com/o/r") is None

    def test_retries_rate_limit_then_succeeds(self):
        responses = [_response(429), _response(200, {'license': {'spdx_id': 'MIT'}})]
        with patch('gitvendor.infra.license_client.requests.get', side_effect=responses) as get, \
                patch('gitvendor.infra.license_client.time.sleep'):
            assert LicenseClient(base_delay=0).detect("https://github.com/o/r") == "MIT"
        assert get.call_count == 2

    def test_network_error_gives_up(self):
        with patch('gitvendor.infra.license_client.requests.get',
                   side_effect=requests.ConnectionError("down")) as get, \
                patch('gitvendor.infra.license_client.time.sleep'):
            assert LicenseClient(max_retries=2, base_delay=0).detect("https://github.com/o/r") is None
        assert get.call_count == 3

    def test_unknown_host_makes_no_request(self):
        with patch('gitvendor.infra.license_client.requests.get') as get:
            assert LicenseClient().detect("https://example.org/o/r") is None
        get.assert_not_called()
