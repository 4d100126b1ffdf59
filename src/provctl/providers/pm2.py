"""Process manager provider wrapping the PM2 CLI."""
from __future__ import annotations

import json
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from .command import CommandError, CommandRunner


class ProcessManagerError(RuntimeError):
    """Raised when PM2 commands fail or return unreadable output."""


@dataclass(slots=True)
class PM2Provider:
    """Start, restart and persist PM2-managed processes."""

    runner: CommandRunner
    pm2_bin: str = "pm2"

    def installed(self) -> bool:
        """Return ``True`` when the pm2 binary is available."""
        return self.runner.which(self.pm2_bin) is not None

    def version(self) -> str | None:
        """Return the installed PM2 version."""
        return self.runner.output([self.pm2_bin, "--version"])

    def processes(self) -> list[dict[str, object]]:
        """Return the process list from ``pm2 jlist``."""
        result = self._pm2(["jlist"])
        text = result.stdout or ""
        start = text.find("[")
        if start == -1:
            raise ProcessManagerError("pm2 jlist returned no process list.")
        try:
            payload = json.loads(text[start:])
        except json.JSONDecodeError as exc:
            raise ProcessManagerError(f"pm2 jlist returned invalid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise ProcessManagerError("pm2 jlist did not return a list.")
        return [item for item in payload if isinstance(item, dict)]

    def describe(self, name: str) -> dict[str, object] | None:
        """Return the process entry called *name*, if PM2 knows it."""
        for process in self.processes():
            if process.get("name") == name:
                return process
        return None

    def start_npm(self, name: str, *, cwd: Path, port: int) -> None:
        """Start ``npm start -- -p <port>`` under PM2 as *name*."""
        self._pm2(
            ["start", "npm", "--name", name, "--", "start", "--", "-p", str(port)],
            cwd=cwd,
        )

    def restart(self, name: str) -> None:
        """Restart *name* with a refreshed environment."""
        self._pm2(["restart", name, "--update-env"])

    def delete(self, name: str) -> None:
        """Remove *name* from PM2; missing processes are ignored."""
        self._pm2(["delete", name], check=False)

    def save(self) -> None:
        """Persist the current process list."""
        self._pm2(["save"])

    def startup(self, *, user: str | None = None, home: Path | None = None) -> None:
        """Install the systemd startup unit."""
        args = ["startup", "systemd"]
        if user:
            args.extend(["-u", user])
        if home is not None:
            args.extend(["--hp", str(home)])
        self._pm2(args)

    # ------------------------------------------------------------------
    def _pm2(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        cwd: Path | None = None,
    ) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.run([self.pm2_bin, *args], check=check, cwd=cwd)
        except CommandError as exc:
            raise ProcessManagerError(str(exc)) from exc


def process_port(process: Mapping[str, object]) -> int | None:
    """Extract the listening port encoded in a ``pm2 jlist`` entry.

    ``PORT`` in the process environment wins; otherwise a ``-p``/``--port``
    argument is used. Returns ``None`` when neither is present or parseable.
    """
    pm2_env = process.get("pm2_env")
    if not isinstance(pm2_env, Mapping):
        return None
    for source in (pm2_env.get("env"), pm2_env):
        if isinstance(source, Mapping):
            port = _as_port(source.get("PORT"))
            if port is not None:
                return port
    args = pm2_env.get("args")
    if isinstance(args, str):
        args = args.split()
    if isinstance(args, list):
        for index, value in enumerate(args):
            if value in ("-p", "--port") and index + 1 < len(args):
                return _as_port(args[index + 1])
            if isinstance(value, str) and value.startswith("--port="):
                return _as_port(value.split("=", 1)[1])
    return None


def _as_port(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1 <= value <= 65535 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if 1 <= number <= 65535 else None
    return None


__all__ = ["PM2Provider", "ProcessManagerError", "process_port"]
