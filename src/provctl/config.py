"""Configuration loader for provctl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults.
2. ``/etc/provctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``PROVCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export PROVCTL_SSH__PORT=2200
    export PROVCTL_POLLING__ATTEMPTS=60

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.

Every managed system path is re-rooted under ``root_dir`` (``/`` by default),
which lets the whole tree be staged below a scratch directory.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "PROVCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SSHConfig:
    """sshd hardening targets and admin account discovery."""

    config_path: Path
    group_file: Path
    port: int = 2222
    service: str = "ssh"
    admin_group: str = "sudo"
    max_auth_tries: int = 3

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "config_path": str(self.config_path),
            "group_file": str(self.group_file),
            "port": self.port,
            "service": self.service,
            "admin_group": self.admin_group,
            "max_auth_tries": self.max_auth_tries,
        }


@dataclass(frozen=True)
class FirewallConfig:
    """Extra rules opened alongside the SSH port."""

    allow: tuple[str, ...] = ("80/tcp", "443/tcp")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"allow": list(self.allow)}


@dataclass(frozen=True)
class Fail2banConfig:
    """Jail settings for the sshd filter."""

    jail_path: Path
    logpath: str = "/var/log/auth.log"
    maxretry: int = 3
    bantime: int = 3600
    findtime: int = 600

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "jail_path": str(self.jail_path),
            "logpath": self.logpath,
            "maxretry": self.maxretry,
            "bantime": self.bantime,
            "findtime": self.findtime,
        }


@dataclass(frozen=True)
class SystemConfig:
    """Kernel, swap and limits tuning."""

    swapfile: Path
    fstab: Path
    meminfo: Path
    limits_path: Path
    sysctl_path: Path
    timezone: str = "UTC"
    swap_size: str = "2G"
    nofile: int = 65535

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "swapfile": str(self.swapfile),
            "fstab": str(self.fstab),
            "meminfo": str(self.meminfo),
            "limits_path": str(self.limits_path),
            "sysctl_path": str(self.sysctl_path),
            "timezone": self.timezone,
            "swap_size": self.swap_size,
            "nofile": self.nofile,
        }


@dataclass(frozen=True)
class MonitoringConfig:
    """Resource monitor script, unit and thresholds."""

    script_path: Path
    unit_path: Path
    logrotate_path: Path
    log_dir: Path
    service: str = "system-monitor"
    alert_email: str = "root"
    cpu_threshold: int = 80
    memory_threshold: int = 80
    disk_threshold: int = 80
    interval: int = 300

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "script_path": str(self.script_path),
            "unit_path": str(self.unit_path),
            "logrotate_path": str(self.logrotate_path),
            "log_dir": str(self.log_dir),
            "service": self.service,
            "alert_email": self.alert_email,
            "cpu_threshold": self.cpu_threshold,
            "memory_threshold": self.memory_threshold,
            "disk_threshold": self.disk_threshold,
            "interval": self.interval,
        }


@dataclass(frozen=True)
class ApplicationPackage:
    """A catalog entry offered by the applications facet."""

    package: str
    binary: str
    label: str

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"package": self.package, "binary": self.binary, "label": self.label}


@dataclass(frozen=True)
class ApplicationsConfig:
    """Catalog of installable application packages."""

    packages: tuple[ApplicationPackage, ...]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"packages": [package.to_dict() for package in self.packages]}


@dataclass(frozen=True)
class DNSConfig:
    """systemd-resolved and netplan locations."""

    resolved_conf: Path
    netplan_dir: Path
    fallback: tuple[str, ...] = ("1.1.1.1", "9.9.9.9")
    service: str = "systemd-resolved"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "resolved_conf": str(self.resolved_conf),
            "netplan_dir": str(self.netplan_dir),
            "fallback": list(self.fallback),
            "service": self.service,
        }


@dataclass(frozen=True)
class PostgresConfig:
    """PostgreSQL cluster layout and tuning."""

    etc_root: Path
    data_root: Path
    lib_root: Path
    log_dir: Path
    cluster: str = "main"
    port: int = 5432
    max_connections: int = 100
    shared_buffers: str = "128MB"
    service: str = "postgresql"

    def config_dir(self, version: str) -> Path:
        """Return the configuration directory for *version*."""
        return self.etc_root / version / self.cluster

    def data_dir(self, version: str) -> Path:
        """Return the data directory for *version*."""
        return self.data_root / version / self.cluster

    def log_file(self, version: str) -> Path:
        """Return the cluster log file for *version*."""
        return self.log_dir / f"postgresql-{version}-{self.cluster}.log"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "etc_root": str(self.etc_root),
            "data_root": str(self.data_root),
            "lib_root": str(self.lib_root),
            "log_dir": str(self.log_dir),
            "cluster": self.cluster,
            "port": self.port,
            "max_connections": self.max_connections,
            "shared_buffers": self.shared_buffers,
            "service": self.service,
        }


@dataclass(frozen=True)
class RedisConfig:
    """Redis server configuration targets."""

    config_path: Path
    log_dir: Path
    port: int = 6379
    maxmemory: str = "512mb"
    service: str = "redis-server"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "config_path": str(self.config_path),
            "log_dir": str(self.log_dir),
            "port": self.port,
            "maxmemory": self.maxmemory,
            "service": self.service,
        }


@dataclass(frozen=True)
class NodeConfig:
    """nvm installation settings."""

    nvm_dir: Path
    bashrc: Path
    bin_dir: Path
    nvm_version: str = "v0.39.7"

    @property
    def install_url(self) -> str:
        """Return the nvm install script URL for the configured release."""
        return f"https://raw.githubusercontent.com/nvm-sh/nvm/{self.nvm_version}/install.sh"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "nvm_dir": str(self.nvm_dir),
            "bashrc": str(self.bashrc),
            "bin_dir": str(self.bin_dir),
            "nvm_version": self.nvm_version,
        }


@dataclass(frozen=True)
class PM2Config:
    """PM2 service user and application root."""

    app_root: Path
    user: str = "www-data"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"app_root": str(self.app_root), "user": self.user}


@dataclass(frozen=True)
class AppDeployConfig:
    """Deployment directory and process naming for the web application."""

    directory: Path
    process_name: str = "next"
    default_port: int = 3000
    site_name: str = "nextjs"
    http_attempts: int = 5
    http_interval: float = 1.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "directory": str(self.directory),
            "process_name": self.process_name,
            "default_port": self.default_port,
            "site_name": self.site_name,
            "http_attempts": self.http_attempts,
            "http_interval": self.http_interval,
        }


@dataclass(frozen=True)
class NginxConfig:
    """nginx site directories."""

    sites_available: Path
    sites_enabled: Path

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "sites_available": str(self.sites_available),
            "sites_enabled": str(self.sites_enabled),
        }


@dataclass(frozen=True)
class TLSConfig:
    """Let's Encrypt layout and expiry expectations."""

    live_dir: Path
    warn_expiry_days: int = 30

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"live_dir": str(self.live_dir), "warn_expiry_days": self.warn_expiry_days}


@dataclass(frozen=True)
class PollingConfig:
    """Bounded retry budget for postcondition polling."""

    attempts: int = 30
    interval: float = 1.0
    backoff: float = 1.0
    log_tail_lines: int = 20

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "attempts": self.attempts,
            "interval": self.interval,
            "backoff": self.backoff,
            "log_tail_lines": self.log_tail_lines,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for provctl."""

    config_file: Path
    root_dir: Path
    log_file: Path
    templates_dir: Path
    credentials_dir: Path
    require_root: bool
    ssh: SSHConfig
    firewall: FirewallConfig
    fail2ban: Fail2banConfig
    system: SystemConfig
    monitoring: MonitoringConfig
    applications: ApplicationsConfig
    dns: DNSConfig
    postgres: PostgresConfig
    redis: RedisConfig
    node: NodeConfig
    pm2: PM2Config
    app: AppDeployConfig
    nginx: NginxConfig
    tls: TLSConfig
    polling: PollingConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "root_dir": str(self.root_dir),
            "log_file": str(self.log_file),
            "templates_dir": str(self.templates_dir),
            "credentials_dir": str(self.credentials_dir),
            "require_root": self.require_root,
            "ssh": self.ssh.to_dict(),
            "firewall": self.firewall.to_dict(),
            "fail2ban": self.fail2ban.to_dict(),
            "system": self.system.to_dict(),
            "monitoring": self.monitoring.to_dict(),
            "applications": self.applications.to_dict(),
            "dns": self.dns.to_dict(),
            "postgres": self.postgres.to_dict(),
            "redis": self.redis.to_dict(),
            "node": self.node.to_dict(),
            "pm2": self.pm2.to_dict(),
            "app": self.app.to_dict(),
            "nginx": self.nginx.to_dict(),
            "tls": self.tls.to_dict(),
            "polling": self.polling.to_dict(),
        }


DEFAULT_APPLICATIONS: list[dict[str, str]] = [
    {"package": "nginx", "binary": "nginx", "label": "Nginx web server"},
    {"package": "docker.io", "binary": "docker", "label": "Docker"},
    {"package": "postgresql", "binary": "psql", "label": "PostgreSQL"},
    {"package": "redis-server", "binary": "redis-server", "label": "Redis"},
    {"package": "python3", "binary": "python3", "label": "Python 3"},
]

DEFAULTS: dict[str, object] = {
    "config_file": "/etc/provctl/config.yml",
    "root_dir": "/",
    "log_file": "/var/log/server-setup.log",
    "templates_dir": "/etc/provctl/templates",
    "credentials_dir": "/root",
    "require_root": True,
    "ssh": {
        "config_path": "/etc/ssh/sshd_config",
        "group_file": "/etc/group",
        "port": 2222,
        "service": "ssh",
        "admin_group": "sudo",
        "max_auth_tries": 3,
    },
    "firewall": {
        "allow": ["80/tcp", "443/tcp"],
    },
    "fail2ban": {
        "jail_path": "/etc/fail2ban/jail.local",
        "logpath": "/var/log/auth.log",
        "maxretry": 3,
        "bantime": 3600,
        "findtime": 600,
    },
    "system": {
        "swapfile": "/swapfile",
        "fstab": "/etc/fstab",
        "meminfo": "/proc/meminfo",
        "limits_path": "/etc/security/limits.d/99-provctl-nofile.conf",
        "sysctl_path": "/etc/sysctl.d/99-sysctl-custom.conf",
        "timezone": "UTC",
        "swap_size": "2G",
        "nofile": 65535,
    },
    "monitoring": {
        "script_path": "/usr/local/bin/system_monitor.sh",
        "unit_path": "/etc/systemd/system/system-monitor.service",
        "logrotate_path": "/etc/logrotate.d/system-monitor",
        "log_dir": "/var/log/system-monitor",
        "service": "system-monitor",
        "alert_email": "root",
        "cpu_threshold": 80,
        "memory_threshold": 80,
        "disk_threshold": 80,
        "interval": 300,
    },
    "applications": {
        "packages": DEFAULT_APPLICATIONS,
    },
    "dns": {
        "resolved_conf": "/etc/systemd/resolved.conf",
        "netplan_dir": "/etc/netplan",
        "fallback": ["1.1.1.1", "9.9.9.9"],
        "service": "systemd-resolved",
    },
    "postgres": {
        "etc_root": "/etc/postgresql",
        "data_root": "/var/lib/postgresql",
        "lib_root": "/usr/lib/postgresql",
        "log_dir": "/var/log/postgresql",
        "cluster": "main",
        "port": 5432,
        "max_connections": 100,
        "shared_buffers": "128MB",
        "service": "postgresql",
    },
    "redis": {
        "config_path": "/etc/redis/redis.conf",
        "log_dir": "/var/log/redis",
        "port": 6379,
        "maxmemory": "512mb",
        "service": "redis-server",
    },
    "node": {
        "nvm_dir": "/root/.nvm",
        "bashrc": "/root/.bashrc",
        "bin_dir": "/usr/local/bin",
        "nvm_version": "v0.39.7",
    },
    "pm2": {
        "app_root": "/var/www/nodejs",
        "user": "www-data",
    },
    "app": {
        "directory": "/var/www/nextjs",
        "process_name": "next",
        "default_port": 3000,
        "site_name": "nextjs",
        "http_attempts": 5,
        "http_interval": 1.0,
    },
    "nginx": {
        "sites_available": "/etc/nginx/sites-available",
        "sites_enabled": "/etc/nginx/sites-enabled",
    },
    "tls": {
        "live_dir": "/etc/letsencrypt/live",
        "warn_expiry_days": 30,
    },
    "polling": {
        "attempts": 30,
        "interval": 1.0,
        "backoff": 1.0,
        "log_tail_lines": 20,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    env_override = env.get(CONFIG_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser()
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML config at {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc}") from exc
    if data is None:
        return {}
    return _as_dict(data, str(path))


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, defaults in DEFAULTS.items():
        if not isinstance(defaults, Mapping):
            continue
        mapping = _as_dict(raw.get(section), section)
        unknown_nested = set(mapping.keys()) - set(defaults.keys())
        if unknown_nested:
            joined = ", ".join(sorted(unknown_nested))
            raise ConfigError(f"Unknown keys for {section}: {joined}.")

    packages = _as_sequence(
        _as_dict(raw.get("applications"), "applications").get("packages", []),
        "applications.packages",
    )
    for index, entry in enumerate(packages):
        mapping = _as_dict(entry, f"applications.packages[{index}]")
        missing = {"package", "binary", "label"} - set(mapping.keys())
        if missing:
            joined = ", ".join(sorted(missing))
            raise ConfigError(f"applications.packages[{index}] is missing: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    root_dir = _to_path(raw.get("root_dir", "/"))
    if not root_dir.is_absolute():
        raise ConfigError(f"root_dir must be an absolute path. Got {root_dir}.")

    def rooted(value: object) -> Path:
        return _reroot(root_dir, _to_path(value))

    require_root = raw.get("require_root", True)
    if not isinstance(require_root, bool):
        raise ConfigError("require_root must be a boolean.")

    ssh_mapping = _as_dict(raw.get("ssh"), "ssh")
    ssh = SSHConfig(
        config_path=rooted(ssh_mapping.get("config_path", "/etc/ssh/sshd_config")),
        group_file=rooted(ssh_mapping.get("group_file", "/etc/group")),
        port=_expect_port(ssh_mapping.get("port"), "ssh.port", default=2222),
        service=_expect_str(ssh_mapping.get("service", "ssh"), "ssh.service"),
        admin_group=_expect_str(ssh_mapping.get("admin_group", "sudo"), "ssh.admin_group"),
        max_auth_tries=_expect_positive_int(
            ssh_mapping.get("max_auth_tries"), "ssh.max_auth_tries", default=3
        ),
    )

    firewall_mapping = _as_dict(raw.get("firewall"), "firewall")
    firewall = FirewallConfig(
        allow=_expect_str_tuple(firewall_mapping.get("allow", []), "firewall.allow"),
    )

    fail2ban_mapping = _as_dict(raw.get("fail2ban"), "fail2ban")
    fail2ban = Fail2banConfig(
        jail_path=rooted(fail2ban_mapping.get("jail_path", "/etc/fail2ban/jail.local")),
        logpath=_expect_str(fail2ban_mapping.get("logpath", "/var/log/auth.log"), "fail2ban.logpath"),
        maxretry=_expect_positive_int(fail2ban_mapping.get("maxretry"), "fail2ban.maxretry", default=3),
        bantime=_expect_positive_int(fail2ban_mapping.get("bantime"), "fail2ban.bantime", default=3600),
        findtime=_expect_positive_int(
            fail2ban_mapping.get("findtime"), "fail2ban.findtime", default=600
        ),
    )

    system_mapping = _as_dict(raw.get("system"), "system")
    system = SystemConfig(
        swapfile=rooted(system_mapping.get("swapfile", "/swapfile")),
        fstab=rooted(system_mapping.get("fstab", "/etc/fstab")),
        meminfo=rooted(system_mapping.get("meminfo", "/proc/meminfo")),
        limits_path=rooted(system_mapping.get("limits_path")),
        sysctl_path=rooted(system_mapping.get("sysctl_path")),
        timezone=_expect_str(system_mapping.get("timezone", "UTC"), "system.timezone"),
        swap_size=_expect_str(system_mapping.get("swap_size", "2G"), "system.swap_size"),
        nofile=_expect_positive_int(system_mapping.get("nofile"), "system.nofile", default=65535),
    )

    monitoring_mapping = _as_dict(raw.get("monitoring"), "monitoring")
    monitoring = MonitoringConfig(
        script_path=rooted(monitoring_mapping.get("script_path")),
        unit_path=rooted(monitoring_mapping.get("unit_path")),
        logrotate_path=rooted(monitoring_mapping.get("logrotate_path")),
        log_dir=rooted(monitoring_mapping.get("log_dir")),
        service=_expect_str(monitoring_mapping.get("service", "system-monitor"), "monitoring.service"),
        alert_email=_expect_str(monitoring_mapping.get("alert_email", "root"), "monitoring.alert_email"),
        cpu_threshold=_expect_percentage(monitoring_mapping.get("cpu_threshold"), "monitoring.cpu_threshold"),
        memory_threshold=_expect_percentage(
            monitoring_mapping.get("memory_threshold"), "monitoring.memory_threshold"
        ),
        disk_threshold=_expect_percentage(monitoring_mapping.get("disk_threshold"), "monitoring.disk_threshold"),
        interval=_expect_positive_int(monitoring_mapping.get("interval"), "monitoring.interval", default=300),
    )

    applications_mapping = _as_dict(raw.get("applications"), "applications")
    packages: list[ApplicationPackage] = []
    for index, entry in enumerate(
        _as_sequence(applications_mapping.get("packages", []), "applications.packages")
    ):
        mapping = _as_dict(entry, f"applications.packages[{index}]")
        packages.append(
            ApplicationPackage(
                package=_expect_str(mapping["package"], f"applications.packages[{index}].package"),
                binary=_expect_str(mapping["binary"], f"applications.packages[{index}].binary"),
                label=_expect_str(mapping["label"], f"applications.packages[{index}].label"),
            )
        )
    if not packages:
        raise ConfigError("applications.packages must list at least one package.")
    applications = ApplicationsConfig(packages=tuple(packages))

    dns_mapping = _as_dict(raw.get("dns"), "dns")
    dns = DNSConfig(
        resolved_conf=rooted(dns_mapping.get("resolved_conf", "/etc/systemd/resolved.conf")),
        netplan_dir=rooted(dns_mapping.get("netplan_dir", "/etc/netplan")),
        fallback=_expect_str_tuple(dns_mapping.get("fallback", []), "dns.fallback"),
        service=_expect_str(dns_mapping.get("service", "systemd-resolved"), "dns.service"),
    )

    postgres_mapping = _as_dict(raw.get("postgres"), "postgres")
    postgres = PostgresConfig(
        etc_root=rooted(postgres_mapping.get("etc_root", "/etc/postgresql")),
        data_root=rooted(postgres_mapping.get("data_root", "/var/lib/postgresql")),
        lib_root=rooted(postgres_mapping.get("lib_root", "/usr/lib/postgresql")),
        log_dir=rooted(postgres_mapping.get("log_dir", "/var/log/postgresql")),
        cluster=_expect_str(postgres_mapping.get("cluster", "main"), "postgres.cluster"),
        port=_expect_port(postgres_mapping.get("port"), "postgres.port", default=5432),
        max_connections=_expect_positive_int(
            postgres_mapping.get("max_connections"), "postgres.max_connections", default=100
        ),
        shared_buffers=_expect_str(
            postgres_mapping.get("shared_buffers", "128MB"), "postgres.shared_buffers"
        ),
        service=_expect_str(postgres_mapping.get("service", "postgresql"), "postgres.service"),
    )

    redis_mapping = _as_dict(raw.get("redis"), "redis")
    redis = RedisConfig(
        config_path=rooted(redis_mapping.get("config_path", "/etc/redis/redis.conf")),
        log_dir=rooted(redis_mapping.get("log_dir", "/var/log/redis")),
        port=_expect_port(redis_mapping.get("port"), "redis.port", default=6379),
        maxmemory=_expect_str(redis_mapping.get("maxmemory", "512mb"), "redis.maxmemory"),
        service=_expect_str(redis_mapping.get("service", "redis-server"), "redis.service"),
    )

    node_mapping = _as_dict(raw.get("node"), "node")
    node = NodeConfig(
        nvm_dir=rooted(node_mapping.get("nvm_dir", "/root/.nvm")),
        bashrc=rooted(node_mapping.get("bashrc", "/root/.bashrc")),
        bin_dir=rooted(node_mapping.get("bin_dir", "/usr/local/bin")),
        nvm_version=_expect_str(node_mapping.get("nvm_version", "v0.39.7"), "node.nvm_version"),
    )

    pm2_mapping = _as_dict(raw.get("pm2"), "pm2")
    pm2 = PM2Config(
        app_root=rooted(pm2_mapping.get("app_root", "/var/www/nodejs")),
        user=_expect_str(pm2_mapping.get("user", "www-data"), "pm2.user"),
    )

    app_mapping = _as_dict(raw.get("app"), "app")
    app = AppDeployConfig(
        directory=rooted(app_mapping.get("directory", "/var/www/nextjs")),
        process_name=_expect_str(app_mapping.get("process_name", "next"), "app.process_name"),
        default_port=_expect_port(app_mapping.get("default_port"), "app.default_port", default=3000),
        site_name=_expect_str(app_mapping.get("site_name", "nextjs"), "app.site_name"),
        http_attempts=_expect_positive_int(
            app_mapping.get("http_attempts"), "app.http_attempts", default=5
        ),
        http_interval=_expect_positive_float(
            app_mapping.get("http_interval"), "app.http_interval", default=1.0
        ),
    )

    nginx_mapping = _as_dict(raw.get("nginx"), "nginx")
    nginx = NginxConfig(
        sites_available=rooted(nginx_mapping.get("sites_available", "/etc/nginx/sites-available")),
        sites_enabled=rooted(nginx_mapping.get("sites_enabled", "/etc/nginx/sites-enabled")),
    )

    tls_mapping = _as_dict(raw.get("tls"), "tls")
    warn_expiry_days = _expect_int(
        tls_mapping.get("warn_expiry_days"), "tls.warn_expiry_days", default=30
    )
    if warn_expiry_days < 0:
        raise ConfigError("tls.warn_expiry_days must be zero or greater.")
    tls = TLSConfig(
        live_dir=rooted(tls_mapping.get("live_dir", "/etc/letsencrypt/live")),
        warn_expiry_days=warn_expiry_days,
    )

    polling_mapping = _as_dict(raw.get("polling"), "polling")
    polling = PollingConfig(
        attempts=_expect_positive_int(polling_mapping.get("attempts"), "polling.attempts", default=30),
        interval=_expect_positive_float(
            polling_mapping.get("interval"), "polling.interval", default=1.0
        ),
        backoff=_expect_positive_float(polling_mapping.get("backoff"), "polling.backoff", default=1.0),
        log_tail_lines=_expect_positive_int(
            polling_mapping.get("log_tail_lines"), "polling.log_tail_lines", default=20
        ),
    )
    if polling.backoff < 1.0:
        raise ConfigError("polling.backoff must be 1.0 or greater.")

    return AppConfig(
        config_file=config_file,
        root_dir=root_dir,
        log_file=rooted(raw.get("log_file", "/var/log/server-setup.log")),
        templates_dir=rooted(raw.get("templates_dir", "/etc/provctl/templates")),
        credentials_dir=rooted(raw.get("credentials_dir", "/root")),
        require_root=require_root,
        ssh=ssh,
        firewall=firewall,
        fail2ban=fail2ban,
        system=system,
        monitoring=monitoring,
        applications=applications,
        dns=dns,
        postgres=postgres,
        redis=redis,
        node=node,
        pm2=pm2,
        app=app,
        nginx=nginx,
        tls=tls,
        polling=polling,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = [
                _deep_copy(item) if isinstance(item, Mapping) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _reroot(root: Path, path: Path) -> Path:
    if root == Path("/") or not path.is_absolute():
        return path
    return root / path.relative_to("/")


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _expect_str_tuple(value: object, label: str) -> tuple[str, ...]:
    items = _as_sequence(value, label)
    result: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ConfigError(f"Expected {label} entries to be strings. Got {item!r}.")
        result.append(item)
    return tuple(result)


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_positive_int(value: object | None, label: str, *, default: int) -> int:
    number = _expect_int(value, label, default=default)
    if number <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {number}.")
    return number


def _expect_port(value: object | None, label: str, *, default: int) -> int:
    port = _expect_int(value, label, default=default)
    if port < 1 or port > 65535:
        raise ConfigError(f"{label} must be between 1 and 65535. Got {port}.")
    return port


def _expect_percentage(value: object | None, label: str) -> int:
    number = _expect_int(value, label, default=80)
    if number < 1 or number > 100:
        raise ConfigError(f"{label} must be between 1 and 100. Got {number}.")
    return number


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "AppDeployConfig",
    "ApplicationPackage",
    "ApplicationsConfig",
    "ConfigError",
    "DNSConfig",
    "Fail2banConfig",
    "FirewallConfig",
    "MonitoringConfig",
    "NginxConfig",
    "NodeConfig",
    "PM2Config",
    "PollingConfig",
    "PostgresConfig",
    "RedisConfig",
    "SSHConfig",
    "SystemConfig",
    "TLSConfig",
    "load_config",
]
