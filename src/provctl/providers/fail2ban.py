"""Intrusion prevention provider wrapping ``fail2ban-client``."""
from __future__ import annotations

import re
from dataclasses import dataclass

from .command import CommandRunner

_JAIL_LIST_RE = re.compile(r"Jail list:\s*(.*)$", re.MULTILINE)


@dataclass(slots=True)
class Fail2banProvider:
    """Query fail2ban jails."""

    runner: CommandRunner
    client_bin: str = "fail2ban-client"

    def installed(self) -> bool:
        """Return ``True`` when fail2ban-client is available."""
        return self.runner.which(self.client_bin) is not None

    def jails(self) -> list[str]:
        """Return the names of the configured jails."""
        output = self.runner.output([self.client_bin, "status"])
        if not output:
            return []
        match = _JAIL_LIST_RE.search(output)
        if match is None:
            return []
        return [name.strip() for name in match.group(1).split(",") if name.strip()]


__all__ = ["Fail2banProvider"]
