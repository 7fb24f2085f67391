from __future__ import annotations

import subprocess  # noqa: S404
from shutil import which
from typing import TYPE_CHECKING

from combine_dir.exceptions import GitCommandError, NotAGitRepositoryError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

GIT_TIMEOUT = 30.0

_NOT_A_REPO_MARKERS = ("not a git repository", "not in a git directory")


def git_available() -> bool:
    """Tell whether a `git` executable is on the PATH."""
    return which("git") is not None


def run_git(args: Sequence[str], cwd: Path, timeout: float = GIT_TIMEOUT) -> subprocess.CompletedProcess[str]:
    """Run `git` with `args` in `cwd`, without raising on a non-zero exit.

    Raises:
        FileNotFoundError: if git is not installed.
        subprocess.TimeoutExpired: if git does not finish within `timeout` seconds.
    """
    return subprocess.run(
        ["git", *args],  # noqa: S607
        cwd=str(cwd),
        text=True,
        capture_output=True,
        check=False,
        timeout=timeout,
    )


def git_ls_files(repo: Path, timeout: float = GIT_TIMEOUT) -> list[Path]:
    """List the files git would show under `repo`: tracked plus untracked-but-not-ignored.

    `repo` may be a subdirectory of the work tree; only files below it are listed.

    Args:
        repo (Path): the directory to list
        timeout (float): seconds before git is abandoned

    Raises:
        NotAGitRepositoryError: if `repo` is not inside a git work tree.
        GitCommandError: if `git` fails for another reason.

    Returns:
        list[Path]: absolute paths of the listed files, without duplicates
    """
    command = ["ls-files", "-z", "--cached", "--others", "--exclude-standard"]
    out = run_git(command, cwd=repo, timeout=timeout)
    if out.returncode != 0:
        if any(marker in out.stderr.lower() for marker in _NOT_A_REPO_MARKERS):
            raise NotAGitRepositoryError(folder=repo)
        raise GitCommandError(
            command="git " + " ".join(command),
            returncode=out.returncode,
            stdout=out.stdout,
            stderr=out.stderr,
        )
    seen: dict[str, None] = {}
    for line in out.stdout.split("\0"):
        if line:
            seen.setdefault(line)
    return [repo / rel for rel in seen]


class GitIgnoreEvaluator:
    """Answer "is this path ignored?" with `git check-ignore`."""

    name = "git"

    def __init__(self, repo: Path, timeout: float = GIT_TIMEOUT) -> None:
        self.repo = repo
        self.timeout = timeout

    def available(self) -> bool:
        return git_available()

    def is_ignored(self, path: Path) -> bool:
        """Check `path` against the ignore rules of the work tree containing `repo`.

        Raises:
            GitCommandError: if git cannot evaluate the path (e.g. not a work tree).
            FileNotFoundError: if git is not installed.
            subprocess.TimeoutExpired: if git hangs.
        """
        command = ["check-ignore", "-q", "--", str(path)]
        out = run_git(command, cwd=self.repo, timeout=self.timeout)
        if out.returncode == 0:
            return True
        if out.returncode == 1:
            return False
        raise GitCommandError(
            command="git " + " ".join(command),
            returncode=out.returncode,
            stdout=out.stdout,
            stderr=out.stderr,
        )
