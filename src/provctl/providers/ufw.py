"""Firewall provider wrapping ``ufw``."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .command import CommandError, CommandRunner


class FirewallError(RuntimeError):
    """Raised when ufw commands fail."""


@dataclass(slots=True, frozen=True)
class FirewallStatus:
    """Parsed ``ufw status`` output."""

    active: bool
    allowed: tuple[str, ...] = ()


@dataclass(slots=True)
class UfwProvider:
    """Configure default policies and allow rules with ufw."""

    runner: CommandRunner
    ufw_bin: str = "ufw"

    def installed(self) -> bool:
        """Return ``True`` when the ufw binary is available."""
        return self.runner.which(self.ufw_bin) is not None

    def status(self) -> FirewallStatus:
        """Return whether the firewall is active and which rules allow traffic."""
        output = self.runner.output([self.ufw_bin, "status"])
        if output is None:
            return FirewallStatus(active=False)
        return parse_ufw_status(output)

    def set_defaults(self) -> None:
        """Deny incoming and allow outgoing traffic by default."""
        self._ufw(["default", "deny", "incoming"])
        self._ufw(["default", "allow", "outgoing"])

    def allow(self, rules: Sequence[str]) -> None:
        """Add allow rules; ufw skips rules that already exist."""
        for rule in rules:
            self._ufw(["allow", rule])

    def enable(self) -> None:
        """Enable the firewall without the interactive confirmation."""
        self._ufw(["--force", "enable"])

    # ------------------------------------------------------------------
    def _ufw(self, args: list[str]) -> None:
        try:
            self.runner.run([self.ufw_bin, *args])
        except CommandError as exc:
            raise FirewallError(str(exc)) from exc


def parse_ufw_status(output: str) -> FirewallStatus:
    """Parse the text produced by ``ufw status``."""
    active = "Status: active" in output
    allowed: list[str] = []
    for line in output.splitlines():
        if "ALLOW" not in line:
            continue
        rule = line.split()[0]
        if rule not in allowed:
            allowed.append(rule)
    return FirewallStatus(active=active, allowed=tuple(allowed))


__all__ = ["FirewallError", "FirewallStatus", "UfwProvider", "parse_ufw_status"]
