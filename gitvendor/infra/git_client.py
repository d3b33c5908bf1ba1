"""
Git client infrastructure for git-vendor.

Provides a clean abstraction over git command execution.
All git operations go through this client, making them:
- Easy to replace with a fake in tests
- Consistent in error handling
- Isolated from sync/update/commit logic

Commands run with an argument list (never a shell string), so URLs and
paths from vendor.yml are passed through verbatim.
"""

import logging
import os
import subprocess
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence

from ..domain.vendor import CommitInfo
from ..errors import (
    CheckoutError,
    GitCancelledError,
    GitOperationError,
    StaleCommitError,
)

logger = logging.getLogger(__name__)

# Substrings git prints when an object we asked for does not exist in the
# remote or local object store. Treated as "the locked commit is stale".
STALE_COMMIT_MARKERS = (
    "reference is not a tree",
    "not a valid object",
    "did not match any",
    "unadvertised object",
    "couldn't find remote ref",
    "bad object",
)

# Field separator for --pretty output
_SEP = "\x1f"

_POLL_INTERVAL = 0.1


def is_stale_commit_message(stderr: str) -> bool:
    text = stderr.lower()
    return any(marker in text for marker in STALE_COMMIT_MARKERS)


class GitClient:
    """
    Abstraction over git commands.

    Every operation raises GitOperationError (or a subclass) on failure.
    A shared cancel event aborts running commands: the subprocess is
    killed and GitCancelledError raised.

    Example:
        client = GitClient(timeout=120)
        client.init(tmp)
        client.add_remote(tmp, "origin", url)
        client.fetch(tmp, "main", depth=1)
        head = client.head_hash(tmp, "FETCH_HEAD")
    """

    def __init__(
        self,
        timeout: int = 300,
        verbose: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize GitClient.

        Args:
            timeout: Per-command timeout in seconds
            verbose: Log every git invocation at INFO instead of DEBUG
            cancel_event: Set to abort in-flight commands
        """
        self.timeout = timeout
        self.verbose = verbose
        self.cancel_event = cancel_event or threading.Event()

    def _run(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        error_cls=GitOperationError,
    ) -> str:
        """
        Run ``git <args>`` and return stripped stdout.

        Raises:
            GitCancelledError: the cancel event was set while running
            error_cls: non-zero exit or timeout
        """
        cmd = ["git", *args]
        name = next((a for a in args if not a.startswith("-") and "=" not in a), "git")
        log = logger.info if self.verbose else logger.debug
        log(f"git {' '.join(args)}" + (f" (in {cwd})" if cwd else ""))

        if self.cancel_event.is_set():
            raise GitCancelledError("cancelled", command=cmd)

        env = dict(os.environ, GIT_TERMINAL_PROMPT="0", LC_ALL="C")
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                env=env,
            )
        except OSError as e:
            raise GitOperationError(f"cannot run git: {e}", command=cmd) from e

        deadline = time.monotonic() + self.timeout
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if self.cancel_event.is_set():
                    proc.kill()
                    proc.communicate()
                    raise GitCancelledError("cancelled", command=cmd)
                if time.monotonic() > deadline:
                    proc.kill()
                    proc.communicate()
                    raise error_cls(
                        f"git {name} timed out after {self.timeout}s",
                        command=cmd,
                    )

        if proc.returncode != 0:
            stderr = (stderr or "").strip()
            raise error_cls(
                f"git {name} failed: {stderr or f'exit code {proc.returncode}'}",
                command=cmd,
                returncode=proc.returncode,
                stderr=stderr,
            )
        return (stdout or "").strip()

    # Repository setup

    def init(self, path: Path) -> None:
        self._run(["init", "--quiet"], cwd=path)

    def add_remote(self, path: Path, name: str, url: str) -> None:
        self._run(["remote", "add", name, url], cwd=path)

    def fetch(self, path: Path, ref: str, depth: int = 0, remote: str = "origin") -> None:
        """Fetch a single ref (branch, tag or commit); depth 0 means full history."""
        args = ["fetch", "--quiet", "--no-tags"]
        if depth:
            args.append(f"--depth={depth}")
        args += [remote, ref]
        try:
            self._run(args, cwd=path)
        except GitCancelledError:
            raise
        except GitOperationError as e:
            if is_stale_commit_message(e.stderr):
                raise StaleCommitError(
                    str(e), command=e.command, returncode=e.returncode, stderr=e.stderr
                ) from e
            raise

    def fetch_all(self, path: Path, remote: str = "origin") -> None:
        self._run(["fetch", "--quiet", "--tags", remote], cwd=path)

    def clone(
        self,
        url: str,
        dest: Path,
        filter_spec: Optional[str] = None,
        no_checkout: bool = False,
        depth: int = 0,
    ) -> None:
        args = ["clone", "--quiet"]
        if filter_spec:
            args.append(f"--filter={filter_spec}")
        if no_checkout:
            args.append("--no-checkout")
        if depth:
            args.append(f"--depth={depth}")
        args += [url, str(dest)]
        self._run(args)

    def checkout(self, path: Path, ref: str) -> None:
        """
        Check out ``ref`` (normally a full commit hash) as a detached HEAD.

        Raises:
            StaleCommitError: the object does not exist
            CheckoutError: any other checkout failure
        """
        try:
            self._run(["-c", "advice.detachedHead=false", "checkout", "--quiet", ref],
                      cwd=path, error_cls=CheckoutError)
        except GitCancelledError:
            raise
        except CheckoutError as e:
            if is_stale_commit_message(e.stderr):
                raise StaleCommitError(
                    f"commit {ref} not found in remote (force-pushed or deleted?)",
                    command=e.command, returncode=e.returncode, stderr=e.stderr,
                ) from e
            raise

    # Inspection

    def head_hash(self, path: Path, ref: str = "HEAD") -> str:
        return self._run(["rev-parse", "--verify", f"{ref}^{{commit}}"], cwd=path)

    def list_tree(self, path: Path, ref: str, subdir: str = "") -> List[str]:
        """Names of the entries directly under ``subdir`` at ``ref``."""
        args = ["ls-tree", "--name-only", ref]
        if subdir:
            args.append(subdir.rstrip("/") + "/")
        output = self._run(args, cwd=path)
        return [line for line in output.splitlines() if line]

    def commit_log(
        self,
        path: Path,
        old_hash: str,
        new_hash: str,
        max_count: int = 10,
    ) -> List[CommitInfo]:
        """Commits in ``old_hash..new_hash``, newest first."""
        fmt = _SEP.join(["%H", "%h", "%s", "%an", "%ai"])
        args = ["log", f"--pretty=format:{fmt}"]
        if max_count:
            args.append(f"--max-count={max_count}")
        args.append(f"{old_hash}..{new_hash}" if old_hash else new_hash)
        output = self._run(args, cwd=path)

        commits = []
        for line in output.splitlines():
            parts = line.split(_SEP)
            if len(parts) != 5:
                continue
            commits.append(CommitInfo(
                hash=parts[0],
                short_hash=parts[1],
                subject=parts[2],
                author=parts[3],
                date=parts[4],
            ))
        return commits

    def tags_at(self, path: Path, commit_hash: str, remote: str = "origin") -> List[str]:
        """
        Tags on the remote pointing at ``commit_hash``.

        Annotated tags match through their peeled ``^{}`` entry. Order is
        the order the remote listed them in.
        """
        output = self._run(["ls-remote", "--tags", remote], cwd=path)
        tags: List[str] = []
        for line in output.splitlines():
            try:
                sha, refname = line.split("\t", 1)
            except ValueError:
                continue
            if sha != commit_hash or not refname.startswith("refs/tags/"):
                continue
            name = refname[len("refs/tags/"):]
            if name.endswith("^{}"):
                name = name[:-3]
            if name not in tags:
                tags.append(name)
        return tags

    def config_value(self, path: Path, key: str) -> str:
        try:
            return self._run(["config", "--get", key], cwd=path)
        except GitCancelledError:
            raise
        except GitOperationError:
            return ""

    def user_identity(self, path: Path) -> str:
        """"Name <email>", or whichever half is configured, or ""."""
        name = self.config_value(path, "user.name")
        email = self.config_value(path, "user.email")
        if name and email:
            return f"{name} <{email}>"
        return name or email

    # Writing

    def add(self, path: Path, paths: Sequence[str]) -> None:
        if paths:
            self._run(["add", "--all", "--", *paths], cwd=path)

    def has_staged_changes(self, path: Path) -> bool:
        try:
            self._run(["diff", "--cached", "--quiet"], cwd=path)
        except GitCancelledError:
            raise
        except GitOperationError as e:
            if e.returncode == 1:
                return True
            raise
        return False

    def commit(self, path: Path, subject: str, trailers: Sequence = ()) -> str:
        """Create a commit from the index and return its hash."""
        args = ["commit", "--quiet", "-m", subject]
        if trailers:
            args += ["-m", "\n".join(str(t) for t in trailers)]
        self._run(args, cwd=path)
        return self.head_hash(path)

    def add_note(self, path: Path, commit_hash: str, content: str, notes_ref: str) -> None:
        self._run(["notes", f"--ref={notes_ref}", "add", "--force", "-m", content, commit_hash],
                  cwd=path)

    def get_note(self, path: Path, commit_hash: str, notes_ref: str) -> Optional[str]:
        try:
            return self._run(["notes", f"--ref={notes_ref}", "show", commit_hash], cwd=path)
        except GitCancelledError:
            raise
        except GitOperationError:
            return None

    def commit_message(self, path: Path, commit_hash: str = "HEAD") -> str:
        return self._run(["log", "-1", "--pretty=format:%B", commit_hash], cwd=path)
