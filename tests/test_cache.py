"""
Tests for the incremental sync cache.
"""

import json

from gitvendor.infra.file_ops import FileOps
from gitvendor.paths import ProjectPaths
from gitvendor.services.cache_service import CacheStore, RefCache

COMMIT_1 = "1" * 40
COMMIT_2 = "2" * 40


def make_cache(root):
    return CacheStore(ProjectPaths(root), FileOps())


def write_dest(root, rel, content="data\n"):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return FileOps().checksum(path)


class TestFreshness:
    """Tests for is_fresh: commit, existence and checksum must all match."""

    def test_fresh_after_record(self, tmp_path):
        cache = make_cache(tmp_path)
        digest = write_dest(tmp_path, "vendor/a.py")
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", digest)
        assert cache.is_fresh("lib", "main", COMMIT_1, "vendor/a.py")

    def test_other_commit_is_stale(self, tmp_path):
        cache = make_cache(tmp_path)
        digest = write_dest(tmp_path, "vendor/a.py")
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", digest)
        assert not cache.is_fresh("lib", "main", COMMIT_2, "vendor/a.py")

    def test_missing_file_is_stale(self, tmp_path):
        cache = make_cache(tmp_path)
        digest = write_dest(tmp_path, "vendor/a.py")
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", digest)
        (tmp_path / "vendor/a.py").unlink()
        assert not cache.is_fresh("lib", "main", COMMIT_1, "vendor/a.py")

    def test_modified_file_is_stale(self, tmp_path):
        cache = make_cache(tmp_path)
        digest = write_dest(tmp_path, "vendor/a.py")
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", digest)
        (tmp_path / "vendor/a.py").write_text("edited locally\n")
        assert not cache.is_fresh("lib", "main", COMMIT_1, "vendor/a.py")

    def test_unknown_dest(self, tmp_path):
        cache = make_cache(tmp_path)
        assert cache.lookup("lib", "main", COMMIT_1, "vendor/a.py") == (None, False)


class TestPersistence:
    """Tests for cache files on disk."""

    def test_save_and_reload(self, tmp_path):
        cache = make_cache(tmp_path)
        digest = write_dest(tmp_path, "vendor/a.py")
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", digest, source="a.py")
        cache.save("lib", "main")

        cache_file = tmp_path / ".git-vendor" / ".cache" / "lib-main.json"
        data = json.loads(cache_file.read_text())
        assert data['vendor_name'] == "lib"
        assert data['commit_hash'] == COMMIT_1
        assert data['files'] == [{'path': "vendor/a.py", 'source': "a.py", 'hash': digest}]

        reloaded = make_cache(tmp_path)
        assert reloaded.is_fresh("lib", "main", COMMIT_1, "vendor/a.py")
        assert reloaded.cached_commit("lib", "main") == COMMIT_1

    def test_corrupt_file_is_a_miss(self, tmp_path):
        cache_file = tmp_path / ".git-vendor" / ".cache" / "lib-main.json"
        cache_file.parent.mkdir(parents=True)
        cache_file.write_text("{broken")
        cache = make_cache(tmp_path)
        assert cache.lookup("lib", "main", COMMIT_1, "vendor/a.py") == (None, False)

    def test_malformed_document_is_a_miss(self, tmp_path):
        cache_file = tmp_path / ".git-vendor" / ".cache" / "lib-main.json"
        cache_file.parent.mkdir(parents=True)
        cache_file.write_text(json.dumps({'files': []}))
        assert make_cache(tmp_path).cached_commit("lib", "main") is None

    def test_file_of_another_vendor_is_ignored(self, tmp_path):
        # "a/b" and "a_b" sanitize to the same filename
        cache = make_cache(tmp_path)
        cache.record("a_b", "main", COMMIT_1, "x", "f" * 64)
        cache.save("a_b", "main")
        assert make_cache(tmp_path).cached_commit("a/b", "main") is None

    def test_ref_cache_round_trip(self):
        bucket = RefCache.from_dict({
            'vendor_name': 'lib', 'ref': 'v1', 'commit_hash': COMMIT_1,
            'files': [{'path': 'x', 'hash': 'h'}], 'cached_at': 't',
        })
        assert bucket.entries['x'].checksum == 'h'
        assert bucket.to_dict()['files'] == [{'path': 'x', 'source': '', 'hash': 'h'}]


class TestInvalidation:
    """Tests for wholesale invalidation on commit change."""

    def test_record_for_new_commit_drops_old_entries(self, tmp_path):
        cache = make_cache(tmp_path)
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", "a" * 64)
        cache.record("lib", "main", COMMIT_1, "vendor/b.py", "b" * 64)
        cache.record("lib", "main", COMMIT_2, "vendor/a.py", "c" * 64)
        assert cache.entries("lib", "main") == {"vendor/a.py": "c" * 64}

    def test_invalidate_other_commit(self, tmp_path):
        cache = make_cache(tmp_path)
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", "a" * 64)
        cache.save("lib", "main")
        assert cache.invalidate("lib", "main", COMMIT_2) is True
        assert cache.entries("lib", "main") == {}
        assert not (tmp_path / ".git-vendor" / ".cache" / "lib-main.json").exists()

    def test_invalidate_same_commit_keeps_entries(self, tmp_path):
        cache = make_cache(tmp_path)
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", "a" * 64)
        assert cache.invalidate("lib", "main", COMMIT_1) is False
        assert cache.entries("lib", "main") == {"vendor/a.py": "a" * 64}

    def test_invalidate_touches_only_its_vendor(self, tmp_path):
        cache = make_cache(tmp_path)
        cache.record("lib", "main", COMMIT_1, "vendor/a.py", "a" * 64)
        cache.record("other", "main", COMMIT_1, "vendor/o.py", "o" * 64)
        cache.save("lib", "main")
        cache.save("other", "main")

        cache.invalidate("lib", "main", COMMIT_2)
        assert cache.entries("other", "main") == {"vendor/o.py": "o" * 64}
        assert (tmp_path / ".git-vendor" / ".cache" / "other-main.json").exists()
