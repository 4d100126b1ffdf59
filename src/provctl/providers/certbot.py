"""Certificate issuance through certbot's nginx plugin."""
from __future__ import annotations

import subprocess
from dataclasses import dataclass

from .command import CommandError, CommandRunner

CERTBOT_PACKAGES = ("certbot", "python3-certbot-nginx")


class CertbotError(RuntimeError):
    """Raised when certificate issuance fails."""


@dataclass(slots=True)
class CertbotProvider:
    """Request Let's Encrypt certificates for nginx-served domains."""

    runner: CommandRunner
    certbot_bin: str = "certbot"

    def installed(self) -> bool:
        """Return ``True`` when certbot is available."""
        return self.runner.which(self.certbot_bin) is not None

    def issue(self, domain: str, email: str) -> subprocess.CompletedProcess[str]:
        """Obtain (or keep) a certificate for *domain* and enable the HTTPS redirect."""
        args = [
            self.certbot_bin,
            "--nginx",
            "-d",
            domain,
            "--non-interactive",
            "--agree-tos",
            "-m",
            email,
            "--redirect",
            "--keep-until-expiring",
        ]
        try:
            return self.runner.run(args)
        except CommandError as exc:
            raise CertbotError(str(exc)) from exc


__all__ = ["CERTBOT_PACKAGES", "CertbotError", "CertbotProvider"]
