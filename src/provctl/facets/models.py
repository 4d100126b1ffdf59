"""Data models shared by facet checkers, appliers and the orchestrator."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rich.console import Console

    from ..backups import BackupManager
    from ..config import AppConfig
    from ..credentials import CredentialStore
    from ..logging import StructuredLogger
    from ..node_runtime import NodeRuntimeManager
    from ..prompts import Prompter
    from ..providers import (
        AptProvider,
        CertbotProvider,
        CommandRunner,
        Fail2banProvider,
        GitProvider,
        NginxProvider,
        NpmProvider,
        PM2Provider,
        PostgresProvider,
        RedisProvider,
        SystemdProvider,
        UfwProvider,
    )
    from ..templates import TemplateEngine
    from ..tls import TLSInspector, TLSValidator


class FacetId(str, Enum):
    """Closed set of infrastructure facets managed by provctl."""

    SSH = "ssh"
    FIREWALL = "firewall"
    FAIL2BAN = "fail2ban"
    SYSTEM = "system"
    MONITORING = "monitoring"
    APPLICATIONS = "applications"
    DNS = "dns"
    POSTGRES = "postgres"
    REDIS = "redis"
    NODEJS = "nodejs"
    PM2 = "pm2"
    TLS = "tls"


class FacetStatus(str, Enum):
    """Classification produced by a facet check."""

    UNCONFIGURED = "unconfigured"
    PARTIAL = "partially-configured"
    CONFIGURED = "configured"
    ERROR = "error"


class ApplyOutcome(str, Enum):
    """Result classification for a single apply."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    INVALID = "invalid"
    PRECONDITION_FAILED = "precondition-failed"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def succeeded(self) -> bool:
        """Return ``True`` for outcomes that leave the facet configured."""
        return self in (ApplyOutcome.APPLIED, ApplyOutcome.UNCHANGED)


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True, frozen=True)
class CheckResult:
    """Outcome of checking one facet against the live system."""

    facet: FacetId
    status: FacetStatus
    detail: str
    diagnostics: Sequence[str] = field(default_factory=tuple)
    checked_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "facet": self.facet.value,
            "status": self.status.value,
            "detail": self.detail,
            "diagnostics": list(self.diagnostics),
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class ActionReport:
    """What an applier did, returned before the postcondition re-check.

    ``satisfied_by`` lists the statuses that count as success for this
    particular apply (a partial package selection only needs ``partial``).
    """

    changed: bool
    summary: str
    notes: Sequence[str] = field(default_factory=tuple)
    satisfied_by: frozenset[FacetStatus] = frozenset({FacetStatus.CONFIGURED})


@dataclass(slots=True, frozen=True)
class ApplyResult:
    """Outcome of applying one facet."""

    facet: FacetId
    outcome: ApplyOutcome
    message: str
    check: CheckResult | None = None
    diagnostics: Sequence[str] = field(default_factory=tuple)
    notes: Sequence[str] = field(default_factory=tuple)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when the facet ended configured."""
        return self.outcome.succeeded

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "facet": self.facet.value,
            "outcome": self.outcome.value,
            "message": self.message,
            "check": self.check.to_dict() if self.check is not None else None,
            "diagnostics": list(self.diagnostics),
            "notes": list(self.notes),
            "error": self.error,
        }


@dataclass(slots=True)
class FacetContext:
    """Everything a checker or applier may touch, passed explicitly."""

    config: AppConfig
    runner: CommandRunner
    logger: StructuredLogger
    templates: TemplateEngine
    backups: BackupManager
    credentials: CredentialStore
    prompter: Prompter
    console: Console
    systemd: SystemdProvider
    apt: AptProvider
    ufw: UfwProvider
    fail2ban: Fail2banProvider
    nginx: NginxProvider
    certbot: CertbotProvider
    postgres: PostgresProvider
    redis: RedisProvider
    pm2: PM2Provider
    git: GitProvider
    npm: NpmProvider
    node: NodeRuntimeManager
    tls_inspector: TLSInspector
    tls_validator: TLSValidator
    is_root: bool = True
    sleep: Callable[[float], None] = time.sleep
    public_ip: Callable[[], str | None] = lambda: None

    def host_path(self, path: Path | str) -> Path:
        """Map an absolute host path (e.g. a home directory) under ``root_dir``."""
        candidate = Path(path)
        if not candidate.is_absolute():
            return candidate
        return self.config.root_dir / candidate.relative_to(candidate.anchor)

    def system_path(self, path: Path) -> str:
        """Return *path* as the host sees it, i.e. relative to ``root_dir``."""
        try:
            relative = path.relative_to(self.config.root_dir)
        except ValueError:
            return str(path)
        return "/" + relative.as_posix() if relative.parts else "/"


CheckFn = Callable[[FacetContext], CheckResult]
ApplyFn = Callable[[FacetContext], ActionReport]


@dataclass(slots=True, frozen=True)
class FacetDefinition:
    """Metadata + callables for one facet."""

    id: FacetId
    label: str
    check: CheckFn
    apply: ApplyFn
    requires: tuple[FacetId, ...] = ()


__all__ = [
    "ActionReport",
    "ApplyFn",
    "ApplyOutcome",
    "ApplyResult",
    "CheckFn",
    "CheckResult",
    "FacetContext",
    "FacetDefinition",
    "FacetId",
    "FacetStatus",
]
