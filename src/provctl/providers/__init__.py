"""Collaborator providers used by provctl checkers and appliers."""
from __future__ import annotations

from .apt import AptProvider, PackageError
from .certbot import CertbotError, CertbotProvider
from .command import CommandError, CommandRunner
from .fail2ban import Fail2banProvider
from .git import GitError, GitProvider
from .nginx import NginxError, NginxProvider, NginxRenderResult
from .npm import NpmError, NpmProvider
from .pm2 import PM2Provider, ProcessManagerError
from .postgres import PostgresError, PostgresProvider
from .redis import RedisProvider
from .systemd import SystemdError, SystemdProvider
from .ufw import FirewallError, UfwProvider

__all__ = [
    "AptProvider",
    "CertbotError",
    "CertbotProvider",
    "CommandError",
    "CommandRunner",
    "Fail2banProvider",
    "FirewallError",
    "GitError",
    "GitProvider",
    "NginxError",
    "NginxProvider",
    "NginxRenderResult",
    "NpmError",
    "NpmProvider",
    "PM2Provider",
    "PackageError",
    "PostgresError",
    "PostgresProvider",
    "ProcessManagerError",
    "RedisProvider",
    "SystemdError",
    "SystemdProvider",
    "UfwProvider",
]
