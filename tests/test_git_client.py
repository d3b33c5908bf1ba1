"""
Tests for GitClient against real local repositories.

Skipped when git is not installed.
"""

import shutil
import subprocess
import threading

import pytest

from gitvendor.domain.vendor import Trailer
from gitvendor.errors import GitCancelledError, GitOperationError, StaleCommitError
from gitvendor.infra.git_client import GitClient, is_stale_commit_message
from gitvendor.paths import NOTES_REF

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd, *args):
    result = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout.strip()


def make_repo(path):
    path.mkdir(parents=True)
    git(path, "init", "--quiet", "--initial-branch=main")
    git(path, "config", "user.name", "Upstream Dev")
    git(path, "config", "user.email", "dev@example.com")
    git(path, "config", "commit.gpgsign", "false")
    return path


def commit_file(repo, rel, content, message):
    target = repo / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(repo, "add", rel)
    git(repo, "commit", "--quiet", "-m", message)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture
def upstream(tmp_path):
    repo = make_repo(tmp_path / "upstream")
    first = commit_file(repo, "src/lib.py", "v = 1\n", "first")
    git(repo, "tag", "v1.0.0")
    second = commit_file(repo, "src/lib.py", "v = 2\n", "second")
    third = commit_file(repo, "src/lib.py", "v = 3\n", "third")
    git(repo, "tag", "-a", "v1.1.0", "-m", "release")
    git(repo, "tag", "nightly")
    return repo, [first, second, third]


@pytest.fixture
def workdir(tmp_path, upstream):
    repo, _ = upstream
    path = tmp_path / "work"
    path.mkdir()
    client = GitClient(timeout=60)
    client.init(path)
    client.add_remote(path, "origin", repo.as_uri())
    return path


class TestStaleMarkers:
    """Tests for stale-commit classification."""

    @pytest.mark.parametrize("stderr", [
        "fatal: reference is not a tree: abc",
        "error: pathspec 'abc' did not match any file(s) known to git",
        "fatal: Not a valid object name abc",
        "error: Server does not allow request for unadvertised object abc",
    ])
    def test_stale(self, stderr):
        assert is_stale_commit_message(stderr)

    def test_not_stale(self):
        assert not is_stale_commit_message("fatal: could not read from remote repository")


class TestFetchAndCheckout:
    """Tests for the fetch / checkout path used by sync."""

    def test_fetch_ref_and_resolve(self, workdir, upstream):
        _, commits = upstream
        client = GitClient(timeout=60)
        client.fetch(workdir, "main", depth=1)
        assert client.head_hash(workdir, "FETCH_HEAD") == commits[-1]

    def test_fetch_commit_and_checkout(self, workdir, upstream):
        _, commits = upstream
        client = GitClient(timeout=60)
        client.fetch(workdir, commits[0], depth=1)
        client.checkout(workdir, commits[0])
        assert (workdir / "src" / "lib.py").read_text() == "v = 1\n"
        assert client.head_hash(workdir) == commits[0]

    def test_checkout_unknown_commit_is_stale(self, workdir):
        client = GitClient(timeout=60)
        client.fetch(workdir, "main")
        with pytest.raises(StaleCommitError):
            client.checkout(workdir, "0123456789abcdef0123456789abcdef01234567")

    def test_fetch_unknown_ref(self, workdir):
        with pytest.raises(GitOperationError) as exc_info:
            GitClient(timeout=60).fetch(workdir, "no-such-branch")
        assert exc_info.value.returncode != 0
        assert exc_info.value.command[:2] == ["git", "fetch"]

    def test_shallow_clone_without_checkout(self, tmp_path, upstream):
        repo, commits = upstream
        dest = tmp_path / "clone"
        client = GitClient(timeout=60)
        client.clone(repo.as_uri(), dest, no_checkout=True, depth=1)
        assert client.head_hash(dest) == commits[-1]
        assert not (dest / "src").exists()
        assert client.list_tree(dest, "HEAD", "src") == ["src/lib.py"]

    def test_list_tree(self, workdir):
        client = GitClient(timeout=60)
        client.fetch(workdir, "main")
        assert client.list_tree(workdir, "FETCH_HEAD") == ["src"]
        assert client.list_tree(workdir, "FETCH_HEAD", "src") == ["src/lib.py"]


class TestInspection:
    """Tests for commit log and tag lookup."""

    def test_commit_log_newest_first(self, workdir, upstream):
        _, commits = upstream
        client = GitClient(timeout=60)
        client.fetch(workdir, "main")
        log = client.commit_log(workdir, commits[0], commits[2])
        assert [c.hash for c in log] == [commits[2], commits[1]]
        assert log[0].subject == "third"
        assert log[0].author == "Upstream Dev"
        assert log[0].short_hash == commits[2][:len(log[0].short_hash)]

    def test_commit_log_max_count(self, workdir, upstream):
        _, commits = upstream
        client = GitClient(timeout=60)
        client.fetch(workdir, "main")
        assert len(client.commit_log(workdir, commits[0], commits[2], max_count=1)) == 1

    def test_tags_at_includes_annotated(self, workdir, upstream):
        _, commits = upstream
        tags = GitClient(timeout=60).tags_at(workdir, commits[2])
        assert sorted(tags) == ["nightly", "v1.1.0"]

    def test_tags_at_untagged_commit(self, workdir, upstream):
        _, commits = upstream
        assert GitClient(timeout=60).tags_at(workdir, commits[1]) == []


class TestWriting:
    """Tests for commits with trailers and notes in the project repository."""

    def test_commit_with_trailers_and_note(self, tmp_path):
        project = make_repo(tmp_path / "project")
        (project / "vendor").mkdir()
        (project / "vendor" / "a.py").write_text("a\n")
        client = GitClient(timeout=60)

        client.add(project, ["vendor"])
        assert client.has_staged_changes(project) is True
        commit_hash = client.commit(project, "chore(vendor): sync lib to main", [
            Trailer("Vendor-Name", "lib"),
            Trailer("Vendor-Ref", "main"),
        ])

        assert commit_hash == git(project, "rev-parse", "HEAD")
        assert client.has_staged_changes(project) is False
        message = client.commit_message(project)
        assert message.splitlines()[0] == "chore(vendor): sync lib to main"
        assert "Vendor-Name: lib\nVendor-Ref: main" in message

        client.add_note(project, commit_hash, '{"schema": "vendor/v1"}', NOTES_REF)
        assert client.get_note(project, commit_hash, NOTES_REF) == '{"schema": "vendor/v1"}'

    def test_missing_note(self, tmp_path):
        project = make_repo(tmp_path / "project")
        commit_hash = commit_file(project, "f.txt", "x", "init")
        assert GitClient(timeout=60).get_note(project, commit_hash, NOTES_REF) is None

    def test_user_identity(self, tmp_path):
        project = make_repo(tmp_path / "project")
        assert GitClient(timeout=60).user_identity(project) == "Upstream Dev <dev@example.com>"


class TestCancellation:
    """Tests for the cancel event."""

    def test_cancelled_before_start(self, tmp_path):
        event = threading.Event()
        event.set()
        with pytest.raises(GitCancelledError):
            GitClient(cancel_event=event).init(tmp_path)
        assert not (tmp_path / ".git").exists()
