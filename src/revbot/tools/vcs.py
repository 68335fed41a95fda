"""Minimal git helpers.

The helpers below provide just enough structure to materialize a remote
reference into a scratch directory, inspect pending changes, commit them with
an explicit identity and push the result back.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Set

import subprocess


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


@dataclass(slots=True, frozen=True)
class GitIdentity:
    """Name and e-mail address recorded as commit author and committer."""

    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


def _completed(process: subprocess.CompletedProcess[bytes]) -> subprocess.CompletedProcess[str]:
    stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
    stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
    return subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)


def _run(path: Path, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
    command = ["git", *args]
    process = subprocess.run(
        command,
        cwd=path,
        capture_output=True,
        text=False,
        check=False,
    )
    result = _completed(process)
    if check and result.returncode != 0:
        message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
        raise GitError(f"git {' '.join(args)} failed: {message}")
    return result


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def materialize(cls, root: Path | str, url: str, ref: str) -> "GitRepository":
        """Check out ``ref`` from ``url`` into ``root``, reusing an earlier copy.

        A previous checkout in ``root`` is fetched and hard-reset instead of
        cloned again. When ``ref`` does not exist on the remote yet, the
        working copy starts out empty and the first push creates it.
        """

        path = Path(root).resolve()
        path.mkdir(parents=True, exist_ok=True)
        if not (path / ".git").exists():
            _run(path, ["init"])

        repo = cls(path)
        fetched = repo._run_git(["fetch", "--quiet", url, ref], check=False)
        if fetched.returncode == 0:
            repo._run_git(["checkout", "--quiet", "--force", "-B", "materialized", "FETCH_HEAD"])
            repo._run_git(["clean", "-fdx", "--quiet"])
        elif repo._current_head() is None:
            repo._run_git(["clean", "-fdx", "--quiet"])
        else:
            message = fetched.stderr.strip() or fetched.stdout.strip() or "unknown git error"
            raise GitError(f"git fetch {url} {ref} failed: {message}")
        return repo

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        return _run(self.root, args, check=check)

    # ------------------------------------------------------------- repo status
    def working_tree_changes(self) -> List[Path]:
        """Return the paths with pending modifications, untracked files included."""

        result = self._run_git(["status", "--porcelain", "--untracked-files=all"], check=True)
        paths: Set[Path] = set()
        for line in result.stdout.splitlines():
            if not line:
                continue
            status = line[:2]
            raw_path = line[3:]
            if status[0] in {"R", "C"} and " -> " in raw_path:
                raw_path = raw_path.split(" -> ", 1)[1]
            paths.add(Path(raw_path.strip()))
        return sorted(paths, key=lambda item: item.as_posix())

    def is_clean(self) -> bool:
        """Return ``True`` when the working tree has no pending changes."""

        return not self.working_tree_changes()

    # ---------------------------------------------------------------- commits
    def _current_head(self) -> str | None:
        result = self._run_git(["rev-parse", "--verify", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        head = result.stdout.strip()
        return head or None

    def fetch(self, url: str, ref: str) -> str:
        """Fetch ``ref`` from ``url`` and return the fetched commit hash."""

        self._run_git(["fetch", "--quiet", url, ref])
        rev = self._run_git(["rev-parse", "FETCH_HEAD"])
        return rev.stdout.strip()

    def squash(self, revision: str) -> None:
        """Stage the combined changes of ``revision`` on top of ``HEAD``."""

        self._run_git(["merge", "--squash", "--quiet", revision])

    def commit_all(
        self,
        message: str,
        *,
        author: GitIdentity,
        committer: GitIdentity | None = None,
    ) -> str | None:
        """Add all changes to the index and create a commit.

        Returns the new commit SHA when a commit was created.  Returns ``None`` when
        there were no changes to commit.
        """

        self._run_git(["add", "--all"], check=True)
        if self._run_git(["diff", "--cached", "--quiet"], check=False).returncode == 0:
            return None

        identity = committer or author
        commit_args: List[str] = [
            "-c",
            f"user.name={identity.name}",
            "-c",
            f"user.email={identity.email}",
            "commit",
            "--quiet",
            "--author",
            str(author),
            "-m",
            message,
        ]
        commit = self._run_git(commit_args, check=False)
        if commit.returncode != 0:
            output = commit.stderr.strip() or commit.stdout.strip() or ""
            if "nothing to commit" in output.lower():
                return None
            raise GitError(f"git commit failed: {output}")

        rev = self._run_git(["rev-parse", "HEAD"], check=True)
        return rev.stdout.strip()

    # -------------------------------------------------------------- remotes
    def push(self, url: str, ref: str) -> None:
        """Push ``HEAD`` to branch ``ref`` at ``url``."""

        target = ref if ref.startswith("refs/") else f"refs/heads/{ref}"
        self._run_git(["push", "--quiet", url, f"HEAD:{target}"], check=True)


__all__ = ["GitError", "GitIdentity", "GitRepository"]
