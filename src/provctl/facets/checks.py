"""Read-only facet checkers.

Every checker inspects live state through the :class:`FacetContext` and
classifies the facet without mutating anything. A missing tool or service is
``unconfigured``, never an exception.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from ..config import ApplicationPackage
from ..providers.systemd import SystemdError
from ..templates import MANAGED_MARKER
from ..tls import TLSConfigurationError, TLSValidationSeverity
from .models import CheckResult, FacetContext, FacetId, FacetStatus

FAIL2BAN_UNIT = "fail2ban"
PM2_STARTUP_PATTERN = "pm2-*"

_NOFILE_RE = re.compile(r"^\s*\S+\s+(?:soft|hard|-)\s+nofile\s+(\d+)", re.MULTILINE)
_REDIS_PORT_RE = re.compile(r"^port\s+(\d+)", re.MULTILINE)


@dataclass(slots=True, frozen=True)
class SshdSettings:
    """Effective sshd options relevant to hardening."""

    port: int = 22
    permit_root_login: str | None = None
    password_authentication: str | None = None

    @property
    def hardened(self) -> bool:
        """Return ``True`` when root login and password auth are disabled."""
        return self.permit_root_login == "no" and self.password_authentication == "no"


def read_sshd_settings(path: Path) -> SshdSettings:
    """Parse *path*; like sshd, the first occurrence of a keyword wins."""
    if not path.is_file():
        return SshdSettings()
    seen: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split(None, 1)
        if len(parts) != 2:
            continue
        keyword = parts[0].lower()
        if keyword == "match":
            break
        seen.setdefault(keyword, parts[1].strip())
    port = seen.get("port", "22")
    return SshdSettings(
        port=int(port) if port.isdigit() else 22,
        permit_root_login=seen.get("permitrootlogin"),
        password_authentication=seen.get("passwordauthentication"),
    )


def is_managed(path: Path) -> bool:
    """Return ``True`` when *path* was rendered by provctl."""
    if not path.is_file():
        return False
    return MANAGED_MARKER in path.read_text(encoding="utf-8", errors="replace")


def package_installed(context: FacetContext, package: ApplicationPackage) -> bool:
    """Return ``True`` when *package* is on PATH or known to dpkg."""
    if context.runner.which(package.binary) is not None:
        return True
    return context.apt.is_installed(package.package)


def swap_total_mb(meminfo: Path) -> int:
    """Return ``SwapTotal`` from *meminfo* in MB (0 when unreadable)."""
    if not meminfo.is_file():
        return 0
    for line in meminfo.read_text(encoding="utf-8").splitlines():
        if line.startswith("SwapTotal:"):
            parts = line.split()
            if len(parts) >= 2 and parts[1].isdigit():
                return int(parts[1]) // 1024
    return 0


def nofile_limit(limits_path: Path) -> int | None:
    """Return the smallest ``nofile`` limit granted by *limits_path*."""
    if not limits_path.is_file():
        return None
    values = [int(value) for value in _NOFILE_RE.findall(limits_path.read_text(encoding="utf-8"))]
    return min(values) if values else None


def resolved_dns_servers(resolved_conf: Path) -> list[str]:
    """Return the ``DNS=`` servers configured in *resolved_conf*."""
    servers: list[str] = []
    for line in resolved_conf.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped.startswith("DNS="):
            servers.extend(stripped[len("DNS=") :].split())
    return servers


def pm2_startup_units(context: FacetContext) -> list[str]:
    """Return installed PM2 startup unit files."""
    try:
        return context.systemd.unit_files(PM2_STARTUP_PATTERN)
    except SystemdError:
        return []


# ---------------------------------------------------------------------------
# Checkers
# ---------------------------------------------------------------------------


def check_ssh(context: FacetContext) -> CheckResult:
    cfg = context.config.ssh
    if context.runner.which("sshd") is None:
        return _result(FacetId.SSH, FacetStatus.UNCONFIGURED, "SSH server not installed")
    settings = read_sshd_settings(cfg.config_path)
    detail = (
        f"Port: {settings.port}, Root Login: {settings.permit_root_login or 'default'}, "
        f"Password Auth: {settings.password_authentication or 'default'}"
    )
    if not settings.hardened:
        return _result(FacetId.SSH, FacetStatus.PARTIAL, f"Needs configuration ({detail})")
    if not context.systemd.is_active(cfg.service):
        return _result(FacetId.SSH, FacetStatus.PARTIAL, f"Service {cfg.service} inactive ({detail})")
    return _result(FacetId.SSH, FacetStatus.CONFIGURED, detail)


def check_firewall(context: FacetContext) -> CheckResult:
    if not context.ufw.installed():
        return _result(FacetId.FIREWALL, FacetStatus.UNCONFIGURED, "UFW not installed")
    status = context.ufw.status()
    if not status.active:
        return _result(FacetId.FIREWALL, FacetStatus.PARTIAL, "Installed but not active")
    ports = ",".join(sorted(set(status.allowed))) or "none"
    return _result(FacetId.FIREWALL, FacetStatus.CONFIGURED, f"Active, open ports: {ports}")


def check_fail2ban(context: FacetContext) -> CheckResult:
    if not context.fail2ban.installed():
        return _result(FacetId.FAIL2BAN, FacetStatus.UNCONFIGURED, "Fail2ban not installed")
    if not context.systemd.is_active(FAIL2BAN_UNIT):
        return _result(FacetId.FAIL2BAN, FacetStatus.PARTIAL, "Installed but not active")
    jails = ", ".join(context.fail2ban.jails()) or "none"
    return _result(FacetId.FAIL2BAN, FacetStatus.CONFIGURED, f"Active, jails: {jails}")


def check_system(context: FacetContext) -> CheckResult:
    cfg = context.config.system
    timezone = context.runner.output(["timedatectl", "show", "-p", "Timezone", "--value"]) or "unknown"
    swap_mb = swap_total_mb(cfg.meminfo)
    limit = nofile_limit(cfg.limits_path)
    detail = f"Timezone: {timezone}, Swap: {swap_mb}MB, Open files limit: {limit or 'default'}"
    if swap_mb > 0 and limit is not None and limit >= cfg.nofile:
        return _result(FacetId.SYSTEM, FacetStatus.CONFIGURED, detail)
    return _result(FacetId.SYSTEM, FacetStatus.PARTIAL, detail)


def check_monitoring(context: FacetContext) -> CheckResult:
    cfg = context.config.monitoring
    if not cfg.script_path.is_file():
        return _result(FacetId.MONITORING, FacetStatus.UNCONFIGURED, "Monitoring not installed")
    if not context.systemd.is_active(cfg.service):
        return _result(
            FacetId.MONITORING, FacetStatus.PARTIAL, "Script installed but service not running"
        )
    return _result(FacetId.MONITORING, FacetStatus.CONFIGURED, "Active, monitoring running")


def check_applications(context: FacetContext) -> CheckResult:
    catalog = context.config.applications.packages
    installed = [package for package in catalog if package_installed(context, package)]
    if not installed:
        return _result(FacetId.APPLICATIONS, FacetStatus.UNCONFIGURED, "No applications installed")
    detail = f"{len(installed)}/{len(catalog)} installed: " + ", ".join(
        package.package for package in installed
    )
    status = FacetStatus.CONFIGURED if len(installed) == len(catalog) else FacetStatus.PARTIAL
    return _result(FacetId.APPLICATIONS, status, detail)


def check_dns(context: FacetContext) -> CheckResult:
    cfg = context.config.dns
    if not cfg.resolved_conf.is_file():
        return _result(FacetId.DNS, FacetStatus.UNCONFIGURED, "resolved.conf not found")
    servers = resolved_dns_servers(cfg.resolved_conf)
    if not servers:
        return _result(FacetId.DNS, FacetStatus.PARTIAL, "Using default DNS")
    return _result(FacetId.DNS, FacetStatus.CONFIGURED, f"Current DNS: {' '.join(servers)}")


def check_postgres(context: FacetContext) -> CheckResult:
    cfg = context.config.postgres
    if not context.postgres.installed():
        return _result(FacetId.POSTGRES, FacetStatus.UNCONFIGURED, "PostgreSQL not installed")
    version = context.postgres.server_major_version()
    if version is None:
        return _result(FacetId.POSTGRES, FacetStatus.PARTIAL, "Client installed, server missing")
    cluster = context.postgres.cluster(version, cfg.cluster)
    if cluster is None or not cluster.online:
        return _result(
            FacetId.POSTGRES, FacetStatus.PARTIAL, f"Cluster {version}/{cfg.cluster} not online"
        )
    detail = f"Version: {version}, Port: {cluster.port}"
    if not is_managed(cfg.config_dir(version) / "postgresql.conf"):
        return _result(
            FacetId.POSTGRES, FacetStatus.PARTIAL, f"Running with distribution defaults ({detail})"
        )
    return _result(FacetId.POSTGRES, FacetStatus.CONFIGURED, detail)


def check_redis(context: FacetContext) -> CheckResult:
    cfg = context.config.redis
    if not context.redis.installed():
        return _result(FacetId.REDIS, FacetStatus.UNCONFIGURED, "Redis not installed")
    if not context.systemd.is_active(cfg.service):
        return _result(FacetId.REDIS, FacetStatus.PARTIAL, "Service not running")
    port = cfg.port
    if cfg.config_path.is_file():
        match = _REDIS_PORT_RE.search(cfg.config_path.read_text(encoding="utf-8", errors="replace"))
        if match:
            port = int(match.group(1))
    detail = f"Version: {context.redis.version() or 'unknown'}, Port: {port}"
    if not is_managed(cfg.config_path):
        return _result(FacetId.REDIS, FacetStatus.PARTIAL, f"Running with unmanaged config ({detail})")
    return _result(FacetId.REDIS, FacetStatus.CONFIGURED, detail)


def check_nodejs(context: FacetContext) -> CheckResult:
    if not context.config.node.nvm_dir.is_dir():
        return _result(FacetId.NODEJS, FacetStatus.UNCONFIGURED, "NVM not installed")
    node = context.node.detect_version()
    if node is None:
        return _result(FacetId.NODEJS, FacetStatus.PARTIAL, "NVM installed, node not available")
    npm = context.node.npm_version() or "none"
    return _result(FacetId.NODEJS, FacetStatus.CONFIGURED, f"Node {node.raw}, npm {npm}")


def check_pm2(context: FacetContext) -> CheckResult:
    if not context.pm2.installed():
        return _result(FacetId.PM2, FacetStatus.UNCONFIGURED, "PM2 not installed")
    detail = f"Version: {context.pm2.version() or 'unknown'}"
    if not pm2_startup_units(context):
        return _result(FacetId.PM2, FacetStatus.PARTIAL, f"{detail}, startup not configured")
    return _result(FacetId.PM2, FacetStatus.CONFIGURED, f"{detail}, startup configured")


def check_tls(context: FacetContext) -> CheckResult:
    domains = context.tls_inspector.domains()
    if not domains:
        return _result(FacetId.TLS, FacetStatus.UNCONFIGURED, "No certificates found")
    problems: list[str] = []
    warnings: list[str] = []
    summaries: list[str] = []
    for domain in domains:
        try:
            material = context.tls_inspector.material_for(domain)
        except TLSConfigurationError as exc:
            problems.append(str(exc))
            continue
        report = context.tls_validator.validate(material)
        if report.status is TLSValidationSeverity.ERROR:
            problems.extend(report.problems())
        elif report.status is TLSValidationSeverity.WARNING:
            warnings.extend(report.problems())
        if report.not_valid_after is not None:
            summaries.append(f"{domain} (expires {report.not_valid_after.date().isoformat()})")
    if problems:
        return _result(
            FacetId.TLS,
            FacetStatus.ERROR,
            f"{len(problems)} certificate problem(s)",
            diagnostics=problems + warnings,
        )
    site = context.config.app.site_name
    server_name = context.nginx.server_name(site)
    if server_name in domains and not context.nginx.serves_tls(site):
        warnings.append(f"nginx site '{site}' does not serve the certificate for {server_name}")
    if warnings:
        return _result(FacetId.TLS, FacetStatus.PARTIAL, "; ".join(warnings), diagnostics=warnings)
    return _result(FacetId.TLS, FacetStatus.CONFIGURED, ", ".join(summaries))


def _result(
    facet: FacetId,
    status: FacetStatus,
    detail: str,
    *,
    diagnostics: list[str] | None = None,
) -> CheckResult:
    return CheckResult(
        facet=facet,
        status=status,
        detail=detail,
        diagnostics=tuple(diagnostics or ()),
    )


__all__ = [
    "FAIL2BAN_UNIT",
    "SshdSettings",
    "check_applications",
    "check_dns",
    "check_fail2ban",
    "check_firewall",
    "check_monitoring",
    "check_nodejs",
    "check_pm2",
    "check_postgres",
    "check_redis",
    "check_ssh",
    "check_system",
    "check_tls",
    "is_managed",
    "nofile_limit",
    "package_installed",
    "pm2_startup_units",
    "read_sshd_settings",
    "resolved_dns_servers",
    "swap_total_mb",
]
