"""Tests for the deploy and update workflows."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import FakeRunner, ScriptedPrompter, issue_certificate

import provctl.deploy as deploy_module
from provctl.config import AppConfig
from provctl.deploy import deploy_application, resolve_app_port, update_application
from provctl.errors import PreconditionError, UserAbort, ValidationError
from provctl.facets.actions import apply_tls
from provctl.facets.checks import check_tls
from provctl.facets.models import FacetContext, FacetStatus

REPO = "git@github.com:acme/storefront.git"
TOOLS = ("git", "npm", "pm2", "nginx")


def _jlist(*processes: dict[str, object]) -> tuple[int, str]:
    return 0, json.dumps(list(processes))


def _clone_creates_directory(command: list[str]) -> tuple[int, str]:
    Path(command[-1]).mkdir(parents=True)
    return 0, "Cloning into 'nextjs'..."


@pytest.fixture
def reachable(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Pretend the application answers HTTP and record the probed URLs."""
    probed: list[str] = []

    def fake(url: str) -> bool:
        probed.append(url)
        return True

    monkeypatch.setattr(deploy_module, "http_reachable", fake)
    return probed


def test_port_prefers_pm2_metadata(context: FacetContext, config: AppConfig, runner: FakeRunner) -> None:
    """A running PM2 process decides the port over .env."""
    runner.binaries.add("pm2")
    runner.on(["pm2", "jlist"], _jlist({"name": "next", "pm2_env": {"env": {"PORT": "4000"}}}))
    config.app.directory.mkdir(parents=True)
    (config.app.directory / ".env").write_text("PORT=5000\n")

    assert resolve_app_port(context) == 4000


def test_port_falls_back_to_env_then_default(
    context: FacetContext,
    config: AppConfig,
    runner: FakeRunner,
) -> None:
    """Without a PM2 process, .env is used, then the configured default."""
    runner.binaries.add("pm2")
    runner.on(["pm2", "jlist"], _jlist())
    assert resolve_app_port(context) == 3000

    config.app.directory.mkdir(parents=True)
    (config.app.directory / ".env").write_text("NODE_ENV=production\nPORT=5000\n")
    assert resolve_app_port(context) == 5000


def test_port_unknown_for_running_process(context: FacetContext, runner: FakeRunner) -> None:
    """A PM2 process that hides its port is a precondition failure."""
    runner.binaries.add("pm2")
    runner.on(["pm2", "jlist"], _jlist({"name": "next", "pm2_env": {"args": ["start"]}}))

    with pytest.raises(PreconditionError, match="port cannot be determined"):
        resolve_app_port(context)


def test_deploy_clones_builds_and_proxies(
    context: FacetContext,
    config: AppConfig,
    runner: FakeRunner,
    reachable: list[str],
) -> None:
    """A full deploy writes PORT, starts PM2 and points nginx at the port."""
    runner.binaries.update(TOOLS)
    runner.on(["git", "clone"], _clone_creates_directory)

    report = deploy_application(context, repo=REPO, port="4000")

    directory = config.app.directory
    assert (directory / ".env").read_text().strip() == "PORT=4000"
    assert runner.ran("git", "clone", REPO, str(directory))
    assert runner.ran("npm", "install")
    assert runner.ran("npm", "run", "build")
    assert runner.ran("pm2", "start", "npm", "--name", "next", "--", "start", "--", "-p", "4000")
    assert runner.ran("pm2", "save")
    site = (config.nginx.sites_available / config.app.site_name).read_text()
    assert "proxy_pass http://localhost:4000;" in site
    assert "server_name _;" in site
    assert report.reachable is True
    assert report.warnings == []
    assert reachable == ["http://localhost:4000"]


def test_deploy_unreachable_app_is_a_warning(
    monkeypatch: pytest.MonkeyPatch,
    context: FacetContext,
    runner: FakeRunner,
) -> None:
    """An app that never answers still deploys, with a pm2 logs hint."""
    runner.binaries.update(TOOLS)
    runner.on(["git", "clone"], _clone_creates_directory)
    monkeypatch.setattr(deploy_module, "http_reachable", lambda url: False)

    report = deploy_application(context, repo=REPO, port=3000)

    assert report.reachable is False
    assert report.warnings == [
        "Application is not answering on port 3000. Check the logs with: pm2 logs next"
    ]


def test_deploy_validates_input_first(context: FacetContext, runner: FakeRunner) -> None:
    """Bad repository URLs are rejected before any command runs."""
    with pytest.raises(ValidationError, match="SSH format"):
        deploy_application(context, repo="https://github.com/acme/storefront", port="3000")

    assert runner.calls == []


def test_deploy_requires_tools(context: FacetContext, runner: FakeRunner) -> None:
    """Missing collaborators are reported together."""
    runner.binaries.update({"git", "npm"})

    with pytest.raises(PreconditionError, match="Required tools not found: pm2, nginx."):
        deploy_application(context, repo=REPO, port="3000")


def test_deploy_declining_wipe_aborts(
    context: FacetContext,
    config: AppConfig,
    runner: FakeRunner,
    prompter: ScriptedPrompter,
) -> None:
    """An occupied project directory is only removed after confirmation."""
    runner.binaries.update(TOOLS)
    config.app.directory.mkdir(parents=True)
    keep = config.app.directory / "package.json"
    keep.write_text("{}")
    prompter.confirms.append(False)

    with pytest.raises(UserAbort):
        deploy_application(context, repo=REPO, port="3000")

    assert keep.exists()
    assert not runner.ran("git", "clone")


def test_update_requires_git_checkout(context: FacetContext, config: AppConfig) -> None:
    """update refuses directories that are not git repositories."""
    with pytest.raises(PreconditionError, match="deploy the application first"):
        update_application(context)

    config.app.directory.mkdir(parents=True)
    with pytest.raises(PreconditionError, match="not a git repository"):
        update_application(context)


def _prepare_update(config: AppConfig, runner: FakeRunner, changed_files: str) -> None:
    (config.app.directory / ".git").mkdir(parents=True)
    runner.binaries.update(TOOLS)
    runner.on(["git", "rev-parse"], (0, "main\n"))
    runner.on(["git", "diff", "HEAD@{1}"], (0, changed_files))
    runner.on(["git", "log"], (0, "abc1234 Fix header\ndef5678 Add cart\n"))
    runner.on(["pm2", "jlist"], _jlist({"name": "next", "pm2_env": {"env": {"PORT": "3000"}}}))


def test_update_skips_install_without_package_changes(
    context: FacetContext,
    config: AppConfig,
    runner: FakeRunner,
    reachable: list[str],
) -> None:
    """Only source changes rebuild and restart the existing process."""
    _prepare_update(config, runner, "src/app/page.tsx\n")

    report = update_application(context)

    assert runner.ran("git", "pull", "origin", "main")
    assert not runner.ran("npm", "install")
    assert runner.ran("npm", "run", "build")
    assert runner.ran("pm2", "restart", "next", "--update-env")
    assert report.branch == "main"
    assert report.port == 3000
    assert report.recent_commits == ["abc1234 Fix header", "def5678 Add cart"]


def test_update_installs_when_package_json_changed(
    context: FacetContext,
    config: AppConfig,
    runner: FakeRunner,
    reachable: list[str],
) -> None:
    """A changed package.json triggers npm install."""
    _prepare_update(config, runner, "package.json\npackage-lock.json\n")

    update_application(context)

    assert runner.ran("npm", "install")


def test_update_declining_stash_aborts(
    context: FacetContext,
    config: AppConfig,
    runner: FakeRunner,
    prompter: ScriptedPrompter,
) -> None:
    """Uncommitted changes stop the update unless the operator stashes them."""
    _prepare_update(config, runner, "")
    runner.on(["git", "diff-index"], (1, ""))
    prompter.confirms.append(False)

    with pytest.raises(UserAbort):
        update_application(context)

    assert not runner.ran("git", "pull")
    assert not runner.ran("git", "stash")


def test_deploy_keeps_https_for_certified_domain(
    context: FacetContext,
    config: AppConfig,
    runner: FakeRunner,
    prompter: ScriptedPrompter,
    reachable: list[str],
) -> None:
    """Redeploying a site certbot already secured keeps the TLS listener."""
    runner.binaries.update(TOOLS)
    runner.on(["git", "clone"], _clone_creates_directory)
    runner.on(["pm2", "jlist"], _jlist({"name": "next", "pm2_env": {"env": {"PORT": "4000"}}}))
    issue_certificate(config.tls.live_dir, "app.example.com")
    site = config.nginx.sites_available / config.app.site_name
    site.parent.mkdir(parents=True)
    site.write_text(
        "server {\n"
        "    server_name app.example.com;\n"
        "    listen 443 ssl; # managed by Certbot\n"
        "    ssl_certificate /etc/letsencrypt/live/app.example.com/fullchain.pem; # managed by Certbot\n"
        "}\n"
    )

    deploy_application(context, repo=REPO, port="4000")

    content = site.read_text()
    assert "server_name app.example.com;" in content
    assert "listen 443 ssl;" in content
    assert "ssl_certificate /etc/letsencrypt/live/app.example.com/fullchain.pem;" in content
    assert "ssl_certificate_key /etc/letsencrypt/live/app.example.com/privkey.pem;" in content
    assert "return 301 https://$host$request_uri;" in content
    assert "proxy_pass http://localhost:4000;" in content
    assert check_tls(context).status is FacetStatus.CONFIGURED

    runner.calls.clear()
    prompter.answers.extend(["app.example.com", "ops@example.com"])
    assert apply_tls(context).changed is False
    assert not runner.ran("certbot")
