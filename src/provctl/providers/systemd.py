"""Systemd provider for controlling collaborator service units."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from .command import CommandError, CommandRunner


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Thin wrapper around ``systemctl`` and ``journalctl``."""

    runner: CommandRunner
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"

    def is_active(self, unit: str) -> bool:
        """Return ``True`` when *unit* is active."""
        return self.runner.succeeds([self.systemctl_bin, "is-active", "--quiet", unit])

    def is_enabled(self, unit: str) -> bool:
        """Return ``True`` when *unit* is enabled."""
        return self.runner.succeeds([self.systemctl_bin, "is-enabled", "--quiet", unit])

    def start(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Start *unit*."""
        return self._systemctl("start", unit)

    def stop(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Stop *unit*."""
        return self._systemctl("stop", unit)

    def restart(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Restart *unit*."""
        return self._systemctl("restart", unit)

    def reload(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Reload *unit*."""
        return self._systemctl("reload", unit)

    def enable(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Enable *unit* at boot."""
        return self._systemctl("enable", unit)

    def daemon_reload(self) -> subprocess.CompletedProcess[str]:
        """Reload unit definitions."""
        return self._systemctl("daemon-reload")

    def unit_files(self, pattern: str) -> list[str]:
        """Return installed unit file names matching *pattern*."""
        result = self._systemctl(
            "list-unit-files", pattern, "--no-legend", "--no-pager", check=False
        )
        names: list[str] = []
        for line in (result.stdout or "").splitlines():
            parts = line.split()
            if parts:
                names.append(parts[0])
        return names

    def journal_tail(self, unit: str, lines: int) -> list[str]:
        """Return the last *lines* journal lines for *unit*."""
        try:
            result = self._journalctl(
                ["--unit", unit, "--no-pager", "--lines", str(lines)], check=False
            )
        except SystemdError:
            return []
        return (result.stdout or "").splitlines()[-lines:]

    # ------------------------------------------------------------------
    def _systemctl(
        self,
        command: str,
        *units: str,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command, *units]
        return self._run_command(args, check=check, error_prefix=f"{self.systemctl_bin} {command}")

    def _journalctl(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.journalctl_bin, *args]
        return self._run_command(command, check=check, error_prefix=self.journalctl_bin)

    def _run_command(
        self,
        args: list[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.run(args, check=check)
        except CommandError as exc:
            if exc.returncode is None:
                raise SystemdError(f"{error_prefix} failed: {args[0]} not found") from exc
            message = (exc.stderr or exc.stdout or "no output").strip()
            raise SystemdError(
                f"{error_prefix} failed (exit {exc.returncode}): {message}"
            ) from exc


__all__ = ["SystemdError", "SystemdProvider"]
