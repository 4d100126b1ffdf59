"""Deploy and update workflows for the PM2-managed web application."""
from __future__ import annotations

import shutil
from dataclasses import dataclass, field

from dotenv import dotenv_values, set_key

from .errors import ApplyFailure, PreconditionError, UserAbort
from .facets.models import FacetContext
from .network import http_reachable
from .polling import poll_until
from .providers.pm2 import process_port
from .reporting import print_info
from .tls import TLSConfigurationError
from .validators import validate_github_ssh_url, validate_port

DEFAULT_SERVER_NAME = "_"


@dataclass(slots=True)
class WorkflowReport:
    """Summary of a deploy or update run."""

    port: int
    reachable: bool
    branch: str | None = None
    repository: str | None = None
    recent_commits: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def resolve_app_port(context: FacetContext) -> int:
    """Return the port the application listens on.

    Live PM2 metadata wins, then ``PORT`` from the deployment ``.env``, then
    the configured default. A PM2 process that exists but does not reveal a
    port raises :class:`PreconditionError`.
    """
    app = context.config.app
    if context.pm2.installed():
        process = context.pm2.describe(app.process_name)
        if process is not None:
            port = process_port(process)
            if port is None:
                raise PreconditionError(
                    f"PM2 process '{app.process_name}' exists but its port cannot be determined.",
                    diagnostics=["Set PORT in the process environment or start it with -p <port>."],
                )
            return port
    env_file = app.directory / ".env"
    if env_file.is_file():
        value = dotenv_values(env_file).get("PORT")
        if value:
            return validate_port(value)
    return app.default_port


def site_context(context: FacetContext, server_name: str, port: int) -> dict[str, object]:
    """Return the nginx site template context for *server_name*.

    When Let's Encrypt holds a certificate for *server_name* the context
    includes the certificate paths, which renders the HTTPS listener and the
    HTTP redirect.
    """
    values: dict[str, object] = {"server_name": server_name, "upstream_port": port}
    if server_name in context.tls_inspector.domains():
        try:
            material = context.tls_inspector.material_for(server_name)
        except TLSConfigurationError as exc:
            raise PreconditionError(str(exc)) from exc
        letsencrypt = context.config.tls.live_dir.parent
        options = letsencrypt / "options-ssl-nginx.conf"
        dhparam = letsencrypt / "ssl-dhparams.pem"
        values["tls"] = {
            "certificate": context.system_path(material.certificate),
            "key": context.system_path(material.key),
            "options": context.system_path(options) if options.is_file() else None,
            "dhparam": context.system_path(dhparam) if dhparam.is_file() else None,
        }
    return values


def deploy_application(
    context: FacetContext,
    *,
    repo: str | None = None,
    port: int | str | None = None,
) -> WorkflowReport:
    """Clone, build and start the application behind nginx."""
    app = context.config.app
    repo_url = validate_github_ssh_url(
        repo if repo is not None else context.prompter.ask("GitHub repository SSH URL")
    )
    if port is None:
        port = context.prompter.ask("Application port", default=str(app.default_port))
    app_port = validate_port(port)
    _require_tools(context, ("git", "npm", "pm2", "nginx"))

    directory = app.directory
    if directory.exists() and any(directory.iterdir()):
        if not context.prompter.confirm(
            f"{directory} is not empty. Remove its contents and deploy again?", default=False
        ):
            raise UserAbort(f"Deployment cancelled; {directory} left untouched.")
        _progress(context, f"Cleaning {directory}")
        shutil.rmtree(directory)
    directory.parent.mkdir(parents=True, exist_ok=True)

    _progress(context, f"Cloning {repo_url}")
    context.git.clone(repo_url, directory)
    _progress(context, "Installing dependencies")
    context.npm.install(directory)

    env_file = directory / ".env"
    env_file.touch(exist_ok=True)
    set_key(str(env_file), "PORT", str(app_port), quote_mode="never")

    _progress(context, "Building the application")
    context.npm.build(directory)

    _progress(context, f"Starting '{app.process_name}' under PM2 on port {app_port}")
    context.pm2.delete(app.process_name)
    context.pm2.start_npm(app.process_name, cwd=directory, port=app_port)
    context.pm2.save()
    context.pm2.startup()

    _write_site(context, app_port)
    report = WorkflowReport(port=app_port, reachable=_verify(context, app_port), repository=repo_url)
    if not report.reachable:
        report.warnings.append(_unreachable_hint(context, app_port))
    return report


def update_application(context: FacetContext) -> WorkflowReport:
    """Pull, rebuild and restart the deployed application."""
    app = context.config.app
    directory = app.directory
    if not directory.is_dir():
        raise PreconditionError(
            f"Project directory not found at {directory}; deploy the application first."
        )
    if not (directory / ".git").exists():
        raise PreconditionError(f"{directory} is not a git repository; deploy the application first.")
    _require_tools(context, ("git", "npm", "pm2"))

    branch = context.git.current_branch(directory)
    _progress(context, f"Current branch: {branch}")
    if context.git.has_uncommitted_changes(directory):
        if not context.prompter.confirm(
            "You have uncommitted changes. Stash them before pulling?", default=False
        ):
            raise UserAbort("Update cancelled; commit or stash your changes manually.")
        _progress(context, "Stashing local changes")
        context.git.stash(directory)

    app_port = resolve_app_port(context)
    process = context.pm2.describe(app.process_name)

    _progress(context, f"Pulling {branch} from origin")
    context.git.pull(directory, branch)
    changed = context.git.changed_files_since_previous(directory)
    if any(path.endswith("package.json") for path in changed):
        _progress(context, "package.json changed; installing dependencies")
        context.npm.install(directory)
    else:
        _progress(context, "No package.json changes; skipping install")

    _progress(context, "Rebuilding the application")
    context.npm.build(directory)

    if process is not None:
        _progress(context, f"Restarting '{app.process_name}'")
        context.pm2.restart(app.process_name)
    else:
        _progress(context, f"Starting '{app.process_name}' on port {app_port}")
        context.pm2.start_npm(app.process_name, cwd=directory, port=app_port)
    context.pm2.save()
    context.pm2.startup()

    report = WorkflowReport(port=app_port, reachable=_verify(context, app_port), branch=branch)
    if report.reachable:
        report.recent_commits = context.git.recent_log(directory, 5)
    else:
        report.warnings.append(_unreachable_hint(context, app_port))
    return report


# ------------------------------------------------------------------
def _progress(context: FacetContext, message: str) -> None:
    context.logger.message(message)
    print_info(context.console, message)


def _require_tools(context: FacetContext, binaries: tuple[str, ...]) -> None:
    missing = [binary for binary in binaries if context.runner.which(binary) is None]
    if missing:
        raise PreconditionError(f"Required tools not found: {', '.join(missing)}.")


def _write_site(context: FacetContext, port: int) -> None:
    site = context.config.app.site_name
    server_name = context.nginx.server_name(site) or DEFAULT_SERVER_NAME
    _progress(context, f"Writing nginx site '{site}' for {server_name}")
    result = context.nginx.render_site(
        site,
        site_context(context, server_name, port),
        backups=context.backups,
    )
    if result.validation_error:
        raise ApplyFailure(
            "nginx rejected the site configuration; previous configuration restored.",
            diagnostics=result.validation_error.splitlines(),
        )


def _verify(context: FacetContext, port: int) -> bool:
    app = context.config.app
    url = f"http://localhost:{port}"
    _progress(context, f"Checking {url}")
    result = poll_until(
        lambda: http_reachable(url),
        attempts=app.http_attempts,
        interval=app.http_interval,
        sleep=context.sleep,
    )
    return result.satisfied


def _unreachable_hint(context: FacetContext, port: int) -> str:
    name = context.config.app.process_name
    return f"Application is not answering on port {port}. Check the logs with: pm2 logs {name}"


__all__ = [
    "DEFAULT_SERVER_NAME",
    "WorkflowReport",
    "deploy_application",
    "resolve_app_port",
    "site_context",
    "update_application",
]
