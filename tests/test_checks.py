"""Tests for the read-only facet checkers."""
from __future__ import annotations

from pathlib import Path

from conftest import FakeRunner

from provctl.config import AppConfig
from provctl.facets.checks import (
    check_applications,
    check_dns,
    check_firewall,
    check_nodejs,
    check_pm2,
    check_postgres,
    check_redis,
    check_ssh,
    check_system,
    nofile_limit,
    read_sshd_settings,
    swap_total_mb,
)
from provctl.facets.models import FacetContext, FacetStatus
from provctl.templates import MANAGED_MARKER


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_read_sshd_settings_first_keyword_wins(tmp_path: Path) -> None:
    """Keywords repeated later, or inside Match blocks, are ignored."""
    path = _write(
        tmp_path / "sshd_config",
        "# comment\nPort 2222\nPermitRootLogin no\nPort 22\n"
        "Match User backup\n    PasswordAuthentication yes\n",
    )

    settings = read_sshd_settings(path)

    assert settings.port == 2222
    assert settings.permit_root_login == "no"
    assert settings.password_authentication is None
    assert settings.hardened is False
    assert read_sshd_settings(tmp_path / "missing").port == 22


def test_check_ssh_statuses(context: FacetContext, config: AppConfig, runner: FakeRunner) -> None:
    """sshd presence, hardening and service state drive the status."""
    assert check_ssh(context).status is FacetStatus.UNCONFIGURED

    runner.binaries.add("sshd")
    _write(config.ssh.config_path, "Port 22\nPermitRootLogin yes\n")
    result = check_ssh(context)
    assert result.status is FacetStatus.PARTIAL
    assert "Root Login: yes" in result.detail

    _write(config.ssh.config_path, "Port 2222\nPermitRootLogin no\nPasswordAuthentication no\n")
    result = check_ssh(context)
    assert result.status is FacetStatus.CONFIGURED
    assert result.detail == "Port: 2222, Root Login: no, Password Auth: no"

    runner.on(["systemctl", "is-active"], (3, ""))
    assert check_ssh(context).status is FacetStatus.PARTIAL


def test_check_firewall_statuses(context: FacetContext, runner: FakeRunner) -> None:
    """Inactive ufw is partial; active ufw lists its open ports."""
    assert check_firewall(context).status is FacetStatus.UNCONFIGURED

    runner.binaries.add("ufw")
    runner.on(["ufw", "status"], (0, "Status: inactive\n"))
    assert check_firewall(context).status is FacetStatus.PARTIAL

    runner.on(
        ["ufw", "status"],
        (0, "Status: active\n\nTo Action From\n-- ------ ----\n80/tcp ALLOW Anywhere\n2222/tcp ALLOW Anywhere\n"),
    )
    result = check_firewall(context)
    assert result.status is FacetStatus.CONFIGURED
    assert result.detail == "Active, open ports: 2222/tcp,80/tcp"


def test_system_helpers(tmp_path: Path) -> None:
    """Swap and nofile values are read from meminfo and limits files."""
    meminfo = _write(tmp_path / "meminfo", "MemTotal: 4000000 kB\nSwapTotal: 2097148 kB\n")
    limits = _write(tmp_path / "limits.conf", "* soft nofile 65535\n* hard nofile 70000\n")

    assert swap_total_mb(meminfo) == 2047
    assert swap_total_mb(tmp_path / "absent") == 0
    assert nofile_limit(limits) == 65535
    assert nofile_limit(tmp_path / "absent") is None


def test_check_system_requires_swap_and_limits(context: FacetContext, config: AppConfig) -> None:
    """System is configured only with swap and a sufficient nofile limit."""
    _write(config.system.meminfo, "SwapTotal: 0 kB\n")
    assert check_system(context).status is FacetStatus.PARTIAL

    _write(config.system.meminfo, "SwapTotal: 2097148 kB\n")
    _write(config.system.limits_path, "* soft nofile 65535\n* hard nofile 65535\n")
    result = check_system(context)
    assert result.status is FacetStatus.CONFIGURED
    assert "Swap: 2047MB" in result.detail


def test_check_applications_partial(context: FacetContext, runner: FakeRunner) -> None:
    """Packages found on PATH or by dpkg count as installed."""
    assert check_applications(context).status is FacetStatus.UNCONFIGURED

    runner.binaries.update({"nginx", "psql"})
    runner.on(["dpkg-query", "-W", "-f=${Status}", "python3"], (0, "install ok installed"))
    result = check_applications(context)

    assert result.status is FacetStatus.PARTIAL
    assert result.detail == "3/5 installed: nginx, postgresql, python3"


def test_check_dns(context: FacetContext, config: AppConfig) -> None:
    """resolved.conf DNS= entries decide the DNS status."""
    assert check_dns(context).status is FacetStatus.UNCONFIGURED

    _write(config.dns.resolved_conf, "[Resolve]\n#DNS=\n")
    assert check_dns(context).status is FacetStatus.PARTIAL

    _write(config.dns.resolved_conf, "[Resolve]\nDNS=1.1.1.1 8.8.8.8\n")
    result = check_dns(context)
    assert result.status is FacetStatus.CONFIGURED
    assert result.detail == "Current DNS: 1.1.1.1 8.8.8.8"


def test_check_postgres(context: FacetContext, config: AppConfig, runner: FakeRunner) -> None:
    """The cluster must be online and carry a managed postgresql.conf."""
    assert check_postgres(context).status is FacetStatus.UNCONFIGURED

    runner.binaries.add("psql")
    assert check_postgres(context).detail == "Client installed, server missing"

    (config.postgres.lib_root / "16").mkdir(parents=True)
    runner.on(["pg_lsclusters"], (0, "16 main 5432 down postgres /var/lib/postgresql/16/main\n"))
    assert check_postgres(context).detail == "Cluster 16/main not online"

    runner.on(["pg_lsclusters"], (0, "16 main 5432 online postgres /var/lib/postgresql/16/main\n"))
    result = check_postgres(context)
    assert result.status is FacetStatus.PARTIAL
    assert result.detail.startswith("Running with distribution defaults")

    _write(config.postgres.config_dir("16") / "postgresql.conf", f"# {MANAGED_MARKER}\n")
    result = check_postgres(context)
    assert result.status is FacetStatus.CONFIGURED
    assert result.detail == "Version: 16, Port: 5432"


def test_check_redis_reads_port(context: FacetContext, config: AppConfig, runner: FakeRunner) -> None:
    """The port comes from redis.conf and a managed config is configured."""
    runner.binaries.add("redis-cli")
    runner.on(["redis-server", "--version"], (0, "Redis server v=7.0.15 sha=0"))
    _write(config.redis.config_path, f"# {MANAGED_MARKER}\nport 6380\n")

    result = check_redis(context)

    assert result.status is FacetStatus.CONFIGURED
    assert result.detail == "Version: 7.0.15, Port: 6380"


def test_check_nodejs(context: FacetContext, config: AppConfig, runner: FakeRunner) -> None:
    """nvm without node is partial; a running node is configured."""
    assert check_nodejs(context).status is FacetStatus.UNCONFIGURED

    config.node.nvm_dir.mkdir(parents=True)
    assert check_nodejs(context).status is FacetStatus.PARTIAL

    runner.on(["node", "--version"], (0, "v20.11.1"))
    runner.on(["npm", "--version"], (0, "10.2.4"))
    result = check_nodejs(context)
    assert result.status is FacetStatus.CONFIGURED
    assert result.detail == "Node v20.11.1, npm 10.2.4"


def test_check_pm2_requires_startup_unit(context: FacetContext, runner: FakeRunner) -> None:
    """PM2 without a startup unit is only partially configured."""
    assert check_pm2(context).status is FacetStatus.UNCONFIGURED

    runner.binaries.add("pm2")
    runner.on(["pm2", "--version"], (0, "5.3.1"))
    assert check_pm2(context).detail == "Version: 5.3.1, startup not configured"

    runner.on(["systemctl", "list-unit-files"], (0, "pm2-www-data.service enabled enabled\n"))
    result = check_pm2(context)
    assert result.status is FacetStatus.CONFIGURED
    assert result.detail == "Version: 5.3.1, startup configured"
