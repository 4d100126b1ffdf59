"""Shared subprocess runner used by every provider."""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

LOGGER = logging.getLogger(__name__)

# sbin directories are not always on PATH for non-login shells.
EXTRA_SEARCH_PATHS: tuple[str, ...] = ("/usr/local/sbin", "/usr/sbin", "/sbin")


class CommandError(RuntimeError):
    """Raised when an external command is missing or exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        args: Sequence[str] = (),
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Store the failing command and its captured output."""
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@dataclass(slots=True)
class CommandRunner:
    """Run collaborator commands and capture their output."""

    env: Mapping[str, str] | None = None
    extra_paths: Sequence[str] = field(default_factory=lambda: EXTRA_SEARCH_PATHS)

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input: str | None = None,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Execute *args*; raise :class:`CommandError` on failure when *check* is set."""
        command = [str(part) for part in args]
        LOGGER.debug("exec: %s", " ".join(command))
        merged_env = None
        if self.env is not None or env is not None:
            merged_env = dict(os.environ)
            merged_env.update(self.env or {})
            merged_env.update(env or {})
        try:
            result = subprocess.run(  # noqa: S603, S607
                command,
                input=input,
                cwd=str(cwd) if cwd is not None else None,
                env=merged_env,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CommandError(f"{command[0]} not found", args=command) from exc
        if check and result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise CommandError(
                f"{' '.join(command)} failed (exit {result.returncode}): {message}",
                args=command,
                returncode=result.returncode,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
            )
        return result

    def succeeds(self, args: Sequence[str], *, cwd: Path | None = None) -> bool:
        """Return ``True`` when *args* exits zero; a missing binary counts as failure."""
        try:
            return self.run(args, check=False, cwd=cwd).returncode == 0
        except CommandError:
            return False

    def output(self, args: Sequence[str], *, cwd: Path | None = None) -> str | None:
        """Return stripped stdout of *args*, or ``None`` when it fails or is missing."""
        try:
            result = self.run(args, check=False, cwd=cwd)
        except CommandError:
            return None
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip()

    def shell(self, script: str, *, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Run *script* through ``bash -c``."""
        return self.run(["bash", "-c", script], check=check)

    def which(self, binary: str) -> str | None:
        """Locate *binary* on PATH (plus sbin directories)."""
        found = shutil.which(binary)
        if found is not None:
            return found
        search = os.pathsep.join(self.extra_paths)
        return shutil.which(binary, path=search)


__all__ = ["CommandError", "CommandRunner"]
