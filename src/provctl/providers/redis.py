"""Redis server queries."""
from __future__ import annotations

import re
from dataclasses import dataclass

from .command import CommandRunner

_VERSION_RE = re.compile(r"v=(\S+)")


@dataclass(slots=True)
class RedisProvider:
    """Report Redis installation details."""

    runner: CommandRunner
    server_bin: str = "redis-server"
    cli_bin: str = "redis-cli"

    def installed(self) -> bool:
        """Return ``True`` when redis-cli is available."""
        return self.runner.which(self.cli_bin) is not None

    def version(self) -> str | None:
        """Return the server version from ``redis-server --version``."""
        output = self.runner.output([self.server_bin, "--version"])
        if not output:
            return None
        match = _VERSION_RE.search(output)
        return match.group(1) if match else None


__all__ = ["RedisProvider"]
