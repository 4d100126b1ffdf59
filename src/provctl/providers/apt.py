"""Package manager provider backed by apt and dpkg."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from .command import CommandError, CommandRunner

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class PackageError(RuntimeError):
    """Raised when package installation or upgrades fail."""


@dataclass(slots=True)
class AptProvider:
    """Install and query Debian packages."""

    runner: CommandRunner
    apt_bin: str = "apt-get"
    dpkg_query_bin: str = "dpkg-query"

    def is_installed(self, package: str) -> bool:
        """Return ``True`` when *package* is fully installed."""
        status = self.runner.output([self.dpkg_query_bin, "-W", "-f=${Status}", package])
        return status is not None and status.endswith("install ok installed")

    def missing(self, packages: Sequence[str]) -> list[str]:
        """Return the subset of *packages* that is not installed."""
        return [package for package in packages if not self.is_installed(package)]

    def install(self, packages: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
        """Install *packages*; returns ``None`` when nothing needed installing."""
        pending = self.missing(packages)
        if not pending:
            return None
        return self._apt(["install", "-y", *pending])

    def update(self) -> subprocess.CompletedProcess[str]:
        """Refresh package indexes."""
        return self._apt(["update"])

    def upgrade(self) -> subprocess.CompletedProcess[str]:
        """Apply pending package upgrades."""
        return self._apt(["upgrade", "-y"])

    # ------------------------------------------------------------------
    def _apt(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.run([self.apt_bin, *args], env=APT_ENV)
        except CommandError as exc:
            raise PackageError(str(exc)) from exc


__all__ = ["AptProvider", "PackageError"]
