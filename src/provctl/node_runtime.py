"""Helpers for installing the Node.js runtime via ``nvm``."""
from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .providers.command import CommandError, CommandRunner

LOGGER = logging.getLogger(__name__)

LINKED_BINARIES = ("node", "npm", "npx")


class NodeRuntimeError(RuntimeError):
    """Raised when Node runtime management fails."""


@dataclass(slots=True)
class NodeVersionInfo:
    """Parsed Node version details."""

    raw: str
    version: str
    major: int
    minor: int
    patch: int


@dataclass(slots=True)
class NodeRuntimeManager:
    """Wrapper around ``nvm`` for installing Node and exposing it system-wide."""

    runner: CommandRunner
    nvm_dir: Path
    bin_dir: Path
    bashrc: Path
    install_url: str
    node_bin: str = "node"
    npm_bin: str = "npm"

    def nvm_installed(self) -> bool:
        """Return ``True`` when ``nvm.sh`` is present."""
        return (self.nvm_dir / "nvm.sh").is_file()

    def detect_version(self) -> NodeVersionInfo | None:
        """Return the currently available Node version."""
        output = self.runner.output([self._resolve(self.node_bin), "--version"])
        if not output:
            return None
        version = output.lstrip("v").strip()
        major, minor, patch = _parse_semver(version)
        return NodeVersionInfo(raw=output, version=version, major=major, minor=minor, patch=patch)

    def npm_version(self) -> str | None:
        """Return the npm version, if npm runs."""
        return self.runner.output([self._resolve(self.npm_bin), "--version"])

    def install_nvm(self) -> None:
        """Download and run the nvm install script."""
        self.nvm_dir.mkdir(parents=True, exist_ok=True)
        script = (
            f"curl -fsSL {shlex.quote(self.install_url)} | "
            f"NVM_DIR={shlex.quote(str(self.nvm_dir))} PROFILE=/dev/null bash"
        )
        self._shell(script, "nvm installation")
        if not self.nvm_installed():
            raise NodeRuntimeError(f"nvm installer finished but {self.nvm_dir}/nvm.sh is missing.")

    def install_lts(self) -> Path:
        """Install the latest LTS Node, make it the default and return its binary path."""
        script = (
            f"export NVM_DIR={shlex.quote(str(self.nvm_dir))}; "
            '. "$NVM_DIR/nvm.sh"; '
            'nvm install --lts >/dev/null && nvm alias default "lts/*" >/dev/null && '
            "nvm which default"
        )
        result = self._shell(script, "nvm install --lts")
        lines = [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]
        if not lines:
            raise NodeRuntimeError("nvm did not report the installed node binary.")
        return Path(lines[-1])

    def link_binaries(self, node_path: Path, names: tuple[str, ...] = LINKED_BINARIES) -> list[Path]:
        """Symlink the named binaries next to *node_path* into ``bin_dir``."""
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        changed: list[Path] = []
        for name in names:
            source = node_path.parent / name
            target = self.bin_dir / name
            if target.is_symlink() and Path(os.readlink(target)) == source:
                continue
            if target.exists() or target.is_symlink():
                target.unlink()
            target.symlink_to(source)
            LOGGER.debug("Linked %s -> %s", target, source)
            changed.append(target)
        return changed

    def node_bin_dir(self) -> Path | None:
        """Return the directory of the linked node binary."""
        link = self.bin_dir / "node"
        if not link.is_symlink():
            return None
        return Path(os.readlink(link)).parent

    def ensure_shell_profile(self) -> bool:
        """Add the nvm loader lines to ``bashrc`` once; return ``True`` when appended."""
        lines = [
            f'export NVM_DIR="{self.nvm_dir}"',
            '[ -s "$NVM_DIR/nvm.sh" ] && \\. "$NVM_DIR/nvm.sh"',
            '[ -s "$NVM_DIR/bash_completion" ] && \\. "$NVM_DIR/bash_completion"',
        ]
        existing = self.bashrc.read_text(encoding="utf-8") if self.bashrc.exists() else ""
        missing = [line for line in lines if line not in existing]
        if not missing:
            return False
        self.bashrc.parent.mkdir(parents=True, exist_ok=True)
        with self.bashrc.open("a", encoding="utf-8") as handle:
            if existing and not existing.endswith("\n"):
                handle.write("\n")
            handle.write("".join(f"{line}\n" for line in missing))
        return True

    # ------------------------------------------------------------------
    def _resolve(self, binary: str) -> str:
        linked = self.bin_dir / binary
        if linked.exists():
            return str(linked)
        return binary

    def _shell(self, script: str, label: str) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.shell(script)
        except CommandError as exc:
            raise NodeRuntimeError(f"{label} failed: {exc}") from exc


def _parse_semver(value: str) -> tuple[int, int, int]:
    parts = [segment for segment in value.split(".") if segment]
    numbers: list[int] = []
    for segment in parts[:3]:
        try:
            numbers.append(int(segment))
        except ValueError:
            numbers.append(0)
    while len(numbers) < 3:
        numbers.append(0)
    return tuple(numbers)  # type: ignore[return-value]


__all__ = [
    "LINKED_BINARIES",
    "NodeRuntimeError",
    "NodeRuntimeManager",
    "NodeVersionInfo",
]
