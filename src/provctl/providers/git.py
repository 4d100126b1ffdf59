"""Source control operations for the deployed application checkout."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .command import CommandError, CommandRunner


class GitError(RuntimeError):
    """Raised when git commands fail."""


@dataclass(slots=True)
class GitProvider:
    """Clone, pull and inspect a working tree."""

    runner: CommandRunner
    git_bin: str = "git"

    def installed(self) -> bool:
        """Return ``True`` when git is available."""
        return self.runner.which(self.git_bin) is not None

    def clone(self, url: str, destination: Path) -> None:
        """Clone *url* into *destination* (which must be empty)."""
        self._git(["clone", url, str(destination)], cwd=destination.parent)

    def current_branch(self, repo: Path) -> str:
        """Return the checked-out branch name."""
        return (self._git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=repo).stdout or "").strip()

    def has_uncommitted_changes(self, repo: Path) -> bool:
        """Return ``True`` when tracked files differ from ``HEAD``."""
        self._git(["update-index", "-q", "--refresh"], cwd=repo, check=False)
        result = self._git(["diff-index", "--quiet", "HEAD", "--"], cwd=repo, check=False)
        return result.returncode != 0

    def stash(self, repo: Path) -> None:
        """Stash local modifications."""
        self._git(["stash"], cwd=repo)

    def pull(self, repo: Path, branch: str) -> None:
        """Pull *branch* from origin."""
        self._git(["pull", "origin", branch], cwd=repo)

    def changed_files_since_previous(self, repo: Path) -> list[str]:
        """Return files changed between the previous and current ``HEAD``."""
        result = self._git(["diff", "HEAD@{1}", "--name-only"], cwd=repo, check=False)
        if result.returncode != 0:
            return []
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def recent_log(self, repo: Path, count: int = 5) -> list[str]:
        """Return the last *count* commits in one-line form."""
        result = self._git(["log", f"-{count}", "--oneline"], cwd=repo, check=False)
        return (result.stdout or "").splitlines()

    # ------------------------------------------------------------------
    def _git(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.run([self.git_bin, *args], cwd=cwd, check=check)
        except CommandError as exc:
            raise GitError(str(exc)) from exc


__all__ = ["GitError", "GitProvider"]
