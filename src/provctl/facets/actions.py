"""Facet appliers.

Each applier follows the same shape: validate operator input, back up what it
is about to overwrite, mutate through the providers, then confirm the effect
with bounded polling. Appliers return an :class:`ActionReport`; the
orchestrator performs the final postcondition re-check.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from pathlib import Path

import yaml

from ..backups import atomic_write
from ..bootstrap import (
    AdminAccountSpec,
    apply_admin_account_plan,
    group_members,
    inspect_admin_account,
    install_authorized_key,
    plan_admin_account,
    read_authorized_keys,
)
from ..credentials import generate_secret
from ..deploy import resolve_app_port, site_context
from ..errors import ApplyFailure, PreconditionError, UserAbort, ValidationError
from ..polling import poll_until
from ..providers.certbot import CERTBOT_PACKAGES
from ..providers.systemd import SystemdError
from ..reporting import print_info, print_warning
from ..validators import (
    validate_domain,
    validate_email,
    validate_ip_list,
    validate_ssh_public_key,
    validate_username,
)
from .checks import (
    FAIL2BAN_UNIT,
    check_nodejs,
    check_postgres,
    check_redis,
    package_installed,
    pm2_startup_units,
    read_sshd_settings,
    swap_total_mb,
)
from .models import ActionReport, FacetContext, FacetStatus

ADMIN_PASSWORD_BYTES = 18
REDIS_PASSWORD_BYTES = 32
NETPLAN_MODE = 0o600


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _progress(context: FacetContext, message: str) -> None:
    context.logger.message(message)
    print_info(context.console, message)


def _ensure_packages(context: FacetContext, packages: list[str] | tuple[str, ...]) -> bool:
    missing = context.apt.missing(list(packages))
    if not missing:
        return False
    _progress(context, f"Installing {' '.join(missing)}")
    context.apt.install(missing)
    return True


def _tail_file(path: Path, lines: int) -> list[str]:
    if not path.is_file():
        return []
    return path.read_text(encoding="utf-8", errors="replace").splitlines()[-lines:]


def _wait_for(
    context: FacetContext,
    predicate: Callable[[], bool],
    *,
    description: str,
    unit: str | None = None,
    log_file: Path | None = None,
) -> int:
    polling = context.config.polling
    result = poll_until(
        predicate,
        attempts=polling.attempts,
        interval=polling.interval,
        backoff=polling.backoff,
        sleep=context.sleep,
    )
    if result.satisfied:
        return result.attempts
    raise ApplyFailure(
        f"{description} not observed after {result.attempts} checks.",
        diagnostics=_failure_log(context, unit=unit, log_file=log_file),
    )


def _failure_log(
    context: FacetContext,
    *,
    unit: str | None = None,
    log_file: Path | None = None,
) -> list[str]:
    lines = context.config.polling.log_tail_lines
    if log_file is not None:
        return _tail_file(log_file, lines)
    if unit is not None:
        return context.systemd.journal_tail(unit, lines)
    return []


def _restart_unit(
    context: FacetContext,
    unit: str,
    *,
    enable: bool = False,
    start_only: bool = False,
    log_file: Path | None = None,
) -> None:
    try:
        if enable:
            context.systemd.enable(unit)
        if start_only:
            context.systemd.start(unit)
        else:
            context.systemd.restart(unit)
    except SystemdError as exc:
        raise ApplyFailure(
            f"Service {unit} failed to start: {exc}",
            diagnostics=_failure_log(context, unit=unit, log_file=log_file),
        ) from exc


def _wait_for_unit(context: FacetContext, unit: str) -> int:
    return _wait_for(
        context,
        lambda: context.systemd.is_active(unit),
        description=f"Service {unit} active",
        unit=unit,
    )


# ---------------------------------------------------------------------------
# SSH
# ---------------------------------------------------------------------------


def apply_ssh(context: FacetContext) -> ActionReport:
    cfg = context.config.ssh
    notes: list[str] = []
    changed = False

    if context.runner.which("sshd") is None:
        changed |= _ensure_packages(context, ["openssh-server"])

    admins = group_members(cfg.group_file, cfg.admin_group)
    if admins:
        _require_admin_key(context, admins)
    else:
        username, bootstrap_notes = bootstrap_admin_access(context)
        admins = [username]
        notes.extend(bootstrap_notes)
        changed = True

    path = cfg.config_path
    existed = path.exists()
    rendered = context.templates.render_to_path(
        "ssh/sshd_config.j2",
        path,
        {
            "port": cfg.port,
            "max_auth_tries": cfg.max_auth_tries,
            "allow_users": sorted(set(admins)),
        },
        mode=0o644,
        backups=context.backups,
    )
    if rendered:
        validation = context.runner.run(["sshd", "-t", "-f", str(path)], check=False)
        if validation.returncode != 0:
            if not context.backups.restore(path) and not existed:
                path.unlink(missing_ok=True)
            raise ApplyFailure(
                "sshd rejected the rendered configuration; previous file restored.",
                diagnostics=(validation.stderr or validation.stdout or "").splitlines(),
            )
        _progress(context, f"Restarting {cfg.service} on port {cfg.port}")
        _restart_unit(context, cfg.service)
        changed = True
    elif not context.systemd.is_active(cfg.service):
        _restart_unit(context, cfg.service, start_only=True)
        changed = True

    _wait_for_unit(context, cfg.service)
    if rendered:
        notes.append(f"Reconnect with: ssh -p {cfg.port} {admins[0]}@{_public_address(context)}")
    summary = "SSH hardened." if changed else "SSH already hardened."
    return ActionReport(changed=changed, summary=summary, notes=tuple(notes))


def bootstrap_admin_access(context: FacetContext) -> tuple[str, list[str]]:
    """Create the first admin account and confirm key-based access.

    Returns the username and notes for the operator. Raises
    :class:`UserAbort` when the operator cannot confirm a working login, in
    which case ``sshd_config`` has not been touched.
    """
    cfg = context.config.ssh
    if not context.is_root:
        raise PreconditionError("Creating the first admin account requires root privileges.")

    print_warning(
        context.console,
        f"Group '{cfg.admin_group}' has no members; an admin account is needed "
        "before root login is disabled.",
    )
    username = validate_username(context.prompter.ask("New admin username"))
    key = validate_ssh_public_key(context.prompter.ask("SSH public key for the admin user"))

    spec = AdminAccountSpec(name=username, group=cfg.admin_group)
    status = inspect_admin_account(spec, context.runner, group_file=cfg.group_file)
    password = None if status.user_exists else generate_secret(ADMIN_PASSWORD_BYTES)
    plan = plan_admin_account(spec, status, password=password)
    for action in plan.actions:
        _progress(context, action.description)
    apply_admin_account_plan(plan, context.runner)

    notes: list[str] = []
    if plan.password:
        record = context.credentials.write("admin", {"username": username, "password": plan.password})
        notes.append(f"Admin credentials saved to {record}")

    home = inspect_admin_account(spec, context.runner, group_file=cfg.group_file).home
    home_dir = context.host_path(home or Path("/home") / username)
    install_authorized_key(home_dir, key, owner=username, runner=context.runner)

    current_port = read_sshd_settings(cfg.config_path).port
    context.console.print(
        "Test the new account from a separate terminal before continuing:\n"
        f"  ssh -p {current_port} {username}@{_public_address(context)}"
    )
    if not context.prompter.confirm(f"Can you log in as {username} from another session?"):
        raise UserAbort("SSH access was not confirmed; sshd_config left unchanged.")
    return username, notes


def _require_admin_key(context: FacetContext, admins: list[str]) -> None:
    cfg = context.config.ssh
    for name in admins:
        status = inspect_admin_account(
            AdminAccountSpec(name=name, group=cfg.admin_group),
            context.runner,
            group_file=cfg.group_file,
        )
        if status.home is not None and read_authorized_keys(context.host_path(status.home)):
            return
    raise PreconditionError(
        "No admin account has an authorized SSH key; add one before disabling password login.",
        diagnostics=[f"{cfg.admin_group} members: {', '.join(admins)}"],
    )


def _public_address(context: FacetContext) -> str:
    return context.public_ip() or "<server-ip>"


# ---------------------------------------------------------------------------
# Firewall / fail2ban
# ---------------------------------------------------------------------------


def apply_firewall(context: FacetContext) -> ActionReport:
    installed = _ensure_packages(context, ["ufw"])
    rules = [f"{context.config.ssh.port}/tcp"]
    current_port = read_sshd_settings(context.config.ssh.config_path).port
    if f"{current_port}/tcp" not in rules:
        # Keep the live SSH port open until sshd moves.
        rules.append(f"{current_port}/tcp")
    rules.extend(rule for rule in context.config.firewall.allow if rule not in rules)

    before = context.ufw.status()
    missing = [rule for rule in rules if rule not in before.allowed]
    if before.active and not missing and not installed:
        return ActionReport(changed=False, summary="Firewall already active with required rules.")

    context.ufw.set_defaults()
    context.ufw.allow(rules)
    context.ufw.enable()
    return ActionReport(
        changed=True,
        summary="Firewall enabled.",
        notes=(f"Allowed: {', '.join(rules)}",),
    )


def apply_fail2ban(context: FacetContext) -> ActionReport:
    cfg = context.config.fail2ban
    installed = _ensure_packages(context, ["fail2ban"])
    rendered = context.templates.render_to_path(
        "fail2ban/jail.local.j2",
        cfg.jail_path,
        {
            "port": context.config.ssh.port,
            "logpath": cfg.logpath,
            "maxretry": cfg.maxretry,
            "bantime": cfg.bantime,
            "findtime": cfg.findtime,
        },
        backups=context.backups,
    )
    if not installed and not rendered and context.systemd.is_active(FAIL2BAN_UNIT):
        return ActionReport(changed=False, summary="Fail2ban already protecting sshd.")
    _restart_unit(context, FAIL2BAN_UNIT, enable=True)
    _wait_for_unit(context, FAIL2BAN_UNIT)
    return ActionReport(changed=True, summary="Fail2ban configured.")


# ---------------------------------------------------------------------------
# System tuning / monitoring
# ---------------------------------------------------------------------------


def apply_system(context: FacetContext) -> ActionReport:
    cfg = context.config.system
    changed = False

    timezone = context.runner.output(["timedatectl", "show", "-p", "Timezone", "--value"])
    if timezone != cfg.timezone:
        context.runner.run(["timedatectl", "set-timezone", cfg.timezone])
        changed = True

    if swap_total_mb(cfg.meminfo) == 0:
        swapfile = str(cfg.swapfile)
        if not cfg.swapfile.exists():
            _progress(context, f"Creating {cfg.swap_size} swap file")
            context.runner.run(["fallocate", "-l", cfg.swap_size, swapfile])
            context.runner.run(["chmod", "600", swapfile])
            context.runner.run(["mkswap", swapfile])
        context.runner.run(["swapon", swapfile])
        changed = True

    host_swapfile = context.system_path(cfg.swapfile)
    fstab = cfg.fstab.read_text(encoding="utf-8") if cfg.fstab.exists() else ""
    if cfg.swapfile.exists() and not any(
        line.split()[:1] == [host_swapfile] for line in fstab.splitlines()
    ):
        separator = "" if not fstab or fstab.endswith("\n") else "\n"
        atomic_write(
            cfg.fstab,
            f"{fstab}{separator}{host_swapfile} none swap sw 0 0\n",
            backups=context.backups,
        )
        changed = True

    changed |= context.templates.render_to_path(
        "system/limits.conf.j2", cfg.limits_path, {"nofile": cfg.nofile}, backups=context.backups
    )
    if context.templates.render_to_path(
        "system/sysctl.conf.j2", cfg.sysctl_path, {}, backups=context.backups
    ):
        context.runner.run(["sysctl", "-p", str(cfg.sysctl_path)])
        changed = True

    summary = "System tuned." if changed else "System already tuned."
    return ActionReport(changed=changed, summary=summary)


def apply_monitoring(context: FacetContext) -> ActionReport:
    cfg = context.config.monitoring
    cfg.log_dir.mkdir(parents=True, exist_ok=True)
    log_dir = context.system_path(cfg.log_dir)
    changed = context.templates.render_to_path(
        "monitoring/system_monitor.sh.j2",
        cfg.script_path,
        {
            "log_dir": log_dir,
            "alert_email": cfg.alert_email,
            "cpu_threshold": cfg.cpu_threshold,
            "memory_threshold": cfg.memory_threshold,
            "disk_threshold": cfg.disk_threshold,
        },
        mode=0o755,
        backups=context.backups,
    )
    changed |= context.templates.render_to_path(
        "monitoring/system-monitor.service.j2",
        cfg.unit_path,
        {"script_path": context.system_path(cfg.script_path), "interval": cfg.interval},
        backups=context.backups,
    )
    changed |= context.templates.render_to_path(
        "monitoring/logrotate.j2", cfg.logrotate_path, {"log_dir": log_dir}, backups=context.backups
    )
    if not changed and context.systemd.is_active(cfg.service):
        return ActionReport(changed=False, summary="Monitoring already running.")
    context.systemd.daemon_reload()
    _restart_unit(context, cfg.service, enable=True)
    _wait_for_unit(context, cfg.service)
    return ActionReport(changed=True, summary="Monitoring service running.")


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


def parse_package_selection(answer: str, count: int) -> list[int]:
    """Return zero-based catalog indexes for *answer* (numbers or ``a``)."""
    tokens = answer.replace(",", " ").split()
    if not tokens:
        raise ValidationError("No applications selected.")
    if len(tokens) == 1 and tokens[0].lower() == "a":
        return list(range(count))
    indexes: list[int] = []
    for token in tokens:
        if not token.isdigit() or not 1 <= int(token) <= count:
            raise ValidationError(f"Invalid selection '{token}'; choose 1-{count} or 'a'.")
        index = int(token) - 1
        if index not in indexes:
            indexes.append(index)
    return indexes


def apply_applications(context: FacetContext) -> ActionReport:
    catalog = context.config.applications.packages
    for number, package in enumerate(catalog, start=1):
        marker = " [installed]" if package_installed(context, package) else ""
        context.console.print(f"  {number}) {package.package} ({package.label}){marker}", markup=False)
    answer = context.prompter.ask("Select applications (numbers separated by spaces, 'a' for all)")
    selected = [catalog[index] for index in parse_package_selection(answer, len(catalog))]

    missing = [package for package in selected if not package_installed(context, package)]
    if missing:
        _progress(context, f"Installing {' '.join(p.package for p in missing)}")
        context.apt.install([package.package for package in missing])
        still_missing = [p.package for p in missing if not package_installed(context, p)]
        if still_missing:
            raise ApplyFailure(f"Packages not installed: {', '.join(still_missing)}")

    satisfied = frozenset({FacetStatus.CONFIGURED})
    if len(selected) < len(catalog):
        satisfied = frozenset({FacetStatus.CONFIGURED, FacetStatus.PARTIAL})
    names = ", ".join(package.package for package in selected)
    summary = f"Installed {names}." if missing else f"Already installed: {names}."
    return ActionReport(changed=bool(missing), summary=summary, satisfied_by=satisfied)


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------


def apply_dns(context: FacetContext) -> ActionReport:
    cfg = context.config.dns
    answer = context.prompter.ask("DNS server IPs (space-separated, e.g. 8.8.8.8 8.8.4.4)")
    servers = validate_ip_list(answer.replace(",", " ").split())

    changed = context.templates.render_to_path(
        "dns/resolved.conf.j2",
        cfg.resolved_conf,
        {"servers": servers, "fallback": list(cfg.fallback)},
        backups=context.backups,
    )
    if changed or not context.systemd.is_active(cfg.service):
        _restart_unit(context, cfg.service)
        _wait_for_unit(context, cfg.service)
        changed = True

    notes: list[str] = []
    netplan_changed = _update_netplan(context, servers, notes)
    changed |= netplan_changed
    summary = f"DNS set to {' '.join(servers)}." if changed else "DNS already configured."
    return ActionReport(changed=changed, summary=summary, notes=tuple(notes))


def default_route_interface(context: FacetContext) -> str | None:
    """Return the interface carrying the IPv4 default route."""
    output = context.runner.output(["ip", "-o", "-4", "route", "show", "to", "default"])
    for line in (output or "").splitlines():
        parts = line.split()
        if "dev" in parts and parts.index("dev") + 1 < len(parts):
            return parts[parts.index("dev") + 1]
    return None


def merge_netplan_nameservers(document: object, interface: str, servers: list[str]) -> dict:
    """Return a copy of a netplan *document* with nameservers set on *interface*."""
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ValidationError("Netplan file does not contain a mapping.")
    merged = copy.deepcopy(document)
    network = merged.setdefault("network", {})
    network.setdefault("version", 2)
    ethernets = network.setdefault("ethernets", {})
    iface = ethernets.setdefault(interface, {"dhcp4": True})
    nameservers = iface.setdefault("nameservers", {})
    nameservers["addresses"] = list(servers)
    return merged


def _update_netplan(context: FacetContext, servers: list[str], notes: list[str]) -> bool:
    netplan_dir = context.config.dns.netplan_dir
    if not netplan_dir.is_dir():
        return False
    files = sorted(netplan_dir.glob("*.yaml"))
    if not files:
        return False
    interface = default_route_interface(context)
    if interface is None:
        notes.append("No default route found; netplan left unchanged.")
        return False
    path = files[0]
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ApplyFailure(f"Unable to parse {path}: {exc}") from exc
    merged = merge_netplan_nameservers(document, interface, servers)
    if merged == document:
        return False
    atomic_write(
        path,
        yaml.safe_dump(merged, sort_keys=False, default_flow_style=False),
        mode=NETPLAN_MODE,
        backups=context.backups,
    )
    context.runner.run(["netplan", "apply"])
    notes.append(f"Nameservers written to {path.name} for {interface}.")
    return True


# ---------------------------------------------------------------------------
# PostgreSQL / Redis
# ---------------------------------------------------------------------------


def apply_postgres(context: FacetContext) -> ActionReport:
    cfg = context.config.postgres
    if check_postgres(context).status is FacetStatus.CONFIGURED:
        return ActionReport(changed=False, summary="PostgreSQL already configured.")

    if not context.postgres.installed():
        _ensure_packages(context, ["postgresql", "postgresql-contrib"])
    version = context.postgres.server_major_version()
    if version is None:
        raise PreconditionError(f"No PostgreSQL server found under {cfg.lib_root}.")

    if context.postgres.cluster(version, cfg.cluster) is not None:
        confirmed = context.prompter.confirm(
            f"Drop existing cluster {version}/{cfg.cluster}? All its data will be lost.",
            default=False,
        )
        if not confirmed:
            raise UserAbort(f"Cluster {version}/{cfg.cluster} kept; PostgreSQL left unchanged.")
        _progress(context, f"Dropping cluster {version}/{cfg.cluster}")
        context.postgres.drop_cluster(version, cfg.cluster)

    _progress(context, f"Creating cluster {version}/{cfg.cluster} on port {cfg.port}")
    context.postgres.create_cluster(version, cfg.cluster, cfg.port)

    config_dir = cfg.config_dir(version)
    render_context = {
        "data_dir": context.system_path(cfg.data_dir(version)),
        "config_dir": context.system_path(config_dir),
        "version": version,
        "cluster": cfg.cluster,
        "port": cfg.port,
        "max_connections": cfg.max_connections,
        "shared_buffers": cfg.shared_buffers,
    }
    context.templates.render_to_path(
        "postgres/postgresql.conf.j2",
        config_dir / "postgresql.conf",
        render_context,
        backups=context.backups,
    )
    context.templates.render_to_path(
        "postgres/pg_hba.conf.j2",
        config_dir / "pg_hba.conf",
        {},
        mode=0o640,
        backups=context.backups,
    )
    context.runner.run(["chown", "-R", "postgres:postgres", str(config_dir)])
    context.runner.run(["chmod", "700", str(cfg.data_dir(version))])

    _restart_unit(context, cfg.service, enable=True, log_file=cfg.log_file(version))
    attempts = _wait_for(
        context,
        lambda: context.postgres.is_online(version, cfg.cluster),
        description=f"Cluster {version}/{cfg.cluster} online",
        log_file=cfg.log_file(version),
    )
    return ActionReport(
        changed=True,
        summary=f"PostgreSQL {version} cluster online on port {cfg.port}.",
        notes=(f"Cluster came online after {attempts} check(s).",),
    )


def apply_redis(context: FacetContext) -> ActionReport:
    cfg = context.config.redis
    if check_redis(context).status is FacetStatus.CONFIGURED:
        return ActionReport(changed=False, summary="Redis already configured.")

    if not context.redis.installed():
        _ensure_packages(context, ["redis-server"])

    password = generate_secret(REDIS_PASSWORD_BYTES)
    cfg.log_dir.mkdir(parents=True, exist_ok=True)
    context.templates.render_to_path(
        "redis/redis.conf.j2",
        cfg.config_path,
        {
            "port": cfg.port,
            "log_dir": context.system_path(cfg.log_dir),
            "password": password,
            "maxmemory": cfg.maxmemory,
        },
        mode=0o640,
        backups=context.backups,
    )
    context.runner.run(["chown", "redis:redis", str(cfg.config_path)])
    record = context.credentials.write("redis", {"port": str(cfg.port), "password": password})

    _restart_unit(context, cfg.service, enable=True)
    _wait_for_unit(context, cfg.service)
    return ActionReport(
        changed=True,
        summary=f"Redis running on port {cfg.port}.",
        notes=(f"Redis password saved to {record}",),
    )


# ---------------------------------------------------------------------------
# Node.js / PM2
# ---------------------------------------------------------------------------


def apply_nodejs(context: FacetContext) -> ActionReport:
    if check_nodejs(context).status is FacetStatus.CONFIGURED:
        return ActionReport(changed=False, summary="Node.js already installed.")

    _ensure_packages(context, ["curl", "git"])
    if not context.node.nvm_installed():
        _progress(context, f"Installing nvm {context.config.node.nvm_version}")
        context.node.install_nvm()
    context.node.ensure_shell_profile()
    _progress(context, "Installing the latest Node.js LTS release")
    node_path = context.node.install_lts()
    context.node.link_binaries(node_path)
    return ActionReport(changed=True, summary=f"Node.js installed from {node_path.parent}.")


def apply_pm2(context: FacetContext) -> ActionReport:
    cfg = context.config.pm2
    changed = False

    if not context.pm2.installed():
        node_dir = context.node.node_bin_dir()
        if node_dir is None:
            raise PreconditionError("Node.js is not linked into the system path.")
        _progress(context, "Installing PM2 globally")
        context.npm.install_global("pm2")
        context.node.link_binaries(node_dir / "node", ("pm2",))
        changed = True

    if not cfg.app_root.is_dir():
        cfg.app_root.mkdir(parents=True)
        changed = True
    context.runner.run(["chown", "-R", f"{cfg.user}:{cfg.user}", str(cfg.app_root)])

    if not pm2_startup_units(context):
        context.pm2.startup(user=cfg.user, home=Path(context.system_path(cfg.app_root)))
        changed = True

    ecosystem = cfg.app_root / "ecosystem.config.js"
    if context.templates.render_to_path(
        "pm2/ecosystem.config.js.j2",
        ecosystem,
        {
            "app_name": context.config.app.process_name,
            "cwd": context.system_path(cfg.app_root / "current"),
        },
        backups=context.backups,
    ):
        context.runner.run(["chown", f"{cfg.user}:{cfg.user}", str(ecosystem)])
        changed = True

    summary = "PM2 installed and configured." if changed else "PM2 already configured."
    return ActionReport(changed=changed, summary=summary)


# ---------------------------------------------------------------------------
# Domain & TLS
# ---------------------------------------------------------------------------


def apply_tls(context: FacetContext) -> ActionReport:
    if not context.nginx.installed():
        raise PreconditionError("nginx is not installed; install it from the applications menu first.")
    domain = validate_domain(context.prompter.ask("Domain name"))
    email = validate_email(context.prompter.ask("Contact email for Let's Encrypt"))

    port = resolve_app_port(context)
    if domain in context.tls_inspector.domains():
        if not _render_tls_site(context, domain, port):
            return ActionReport(changed=False, summary=f"Certificate for {domain} already installed.")
        return ActionReport(
            changed=True,
            summary=f"HTTPS restored for {domain}.",
            notes=(f"Proxying {domain} to localhost:{port}",),
        )

    if not context.certbot.installed():
        _ensure_packages(context, CERTBOT_PACKAGES)
    _render_tls_site(context, domain, port)

    _progress(context, f"Requesting a certificate for {domain}")
    context.certbot.issue(domain, email)
    if domain not in context.tls_inspector.domains():
        raise ApplyFailure(
            f"certbot finished but no certificate for {domain} was found.",
            diagnostics=[f"Expected {context.config.tls.live_dir / domain / 'fullchain.pem'}"],
        )
    # certbot edits the site in place; converge it back to the managed template.
    _render_tls_site(context, domain, port)
    return ActionReport(
        changed=True,
        summary=f"HTTPS enabled for {domain}.",
        notes=(f"Proxying {domain} to localhost:{port}",),
    )


def _render_tls_site(context: FacetContext, domain: str, port: int) -> bool:
    result = context.nginx.render_site(
        context.config.app.site_name,
        site_context(context, domain, port),
        backups=context.backups,
    )
    if result.validation_error:
        raise ApplyFailure(
            "nginx rejected the site configuration; previous configuration restored.",
            diagnostics=result.validation_error.splitlines(),
        )
    return result.changed


__all__ = [
    "apply_applications",
    "apply_dns",
    "apply_fail2ban",
    "apply_firewall",
    "apply_monitoring",
    "apply_nodejs",
    "apply_pm2",
    "apply_postgres",
    "apply_redis",
    "apply_ssh",
    "apply_system",
    "apply_tls",
    "bootstrap_admin_access",
    "default_route_interface",
    "merge_netplan_nameservers",
    "parse_package_selection",
]
