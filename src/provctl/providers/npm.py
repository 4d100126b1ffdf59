"""npm invocations for building the application and installing CLIs."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .command import CommandError, CommandRunner


class NpmError(RuntimeError):
    """Raised when npm commands fail."""


@dataclass(slots=True)
class NpmProvider:
    """Install dependencies, build projects and install global packages."""

    runner: CommandRunner
    npm_bin: str = "npm"

    def installed(self) -> bool:
        """Return ``True`` when npm is available."""
        return self.runner.which(self.npm_bin) is not None

    def install(self, project: Path) -> None:
        """Install project dependencies."""
        self._npm(["install"], cwd=project)

    def build(self, project: Path) -> None:
        """Run the project's build script."""
        self._npm(["run", "build"], cwd=project)

    def install_global(self, package: str) -> None:
        """Install *package* globally."""
        self._npm(["install", "-g", package])

    # ------------------------------------------------------------------
    def _npm(self, args: Sequence[str], *, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.run([self.npm_bin, *args], cwd=cwd)
        except CommandError as exc:
            raise NpmError(str(exc)) from exc


__all__ = ["NpmError", "NpmProvider"]
