"""Tests for the nginx provider."""
from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeRunner

from provctl.backups import BackupManager
from provctl.providers.nginx import NginxProvider
from provctl.templates import TemplateEngine


@pytest.fixture
def provider(tmp_path: Path, runner: FakeRunner) -> NginxProvider:
    """Return an nginx provider bound to temporary directories."""
    return NginxProvider(
        templates=TemplateEngine.with_overrides(None),
        runner=runner,  # type: ignore[arg-type]
        sites_available=tmp_path / "sites-available",
        sites_enabled=tmp_path / "sites-enabled",
    )


def test_render_site_writes_enables_and_reloads(
    provider: NginxProvider,
    runner: FakeRunner,
) -> None:
    """A new site is written, symlinked, validated and reloaded."""
    result = provider.render_site("nextjs", {"server_name": "_", "upstream_port": 3000})

    site = provider.site_path("nextjs")
    assert result.changed is True
    assert "proxy_pass http://localhost:3000;" in site.read_text()
    assert provider.enabled_path("nextjs").resolve() == site.resolve()
    assert runner.calls == [["nginx", "-t"], ["nginx", "-s", "reload"]]


def test_render_site_unchanged_skips_validation(
    provider: NginxProvider,
    runner: FakeRunner,
) -> None:
    """Rendering identical content does not touch nginx."""
    context = {"server_name": "app.example.com", "upstream_port": 3000}
    provider.render_site("nextjs", context)
    runner.calls.clear()

    result = provider.render_site("nextjs", context)

    assert result.changed is False
    assert runner.calls == []


def test_render_site_rolls_back_on_validation_failure(
    provider: NginxProvider,
    runner: FakeRunner,
) -> None:
    """nginx -t failures restore the previous site content and skip reload."""
    provider.render_site("nextjs", {"server_name": "_", "upstream_port": 3000})
    previous = provider.site_path("nextjs").read_text()
    runner.on(["nginx", "-t"], (1, "nginx: [emerg] unexpected end of file"))
    runner.calls.clear()

    result = provider.render_site(
        "nextjs",
        {"server_name": "app.example.com", "upstream_port": 4000},
        backups=BackupManager(timestamp="t"),
    )

    assert result.changed is False
    assert result.validation_error is not None
    assert "unexpected end of file" in result.validation_error
    assert provider.site_path("nextjs").read_text() == previous
    assert ["nginx", "-s", "reload"] not in runner.calls


def test_render_site_removes_new_site_on_validation_failure(
    provider: NginxProvider,
    runner: FakeRunner,
) -> None:
    """A brand new site that fails validation is removed and disabled."""
    runner.on(["nginx", "-t"], (1, "bad"))

    result = provider.render_site("nextjs", {"server_name": "_", "upstream_port": 3000})

    assert result.validation_error is not None
    assert not provider.site_path("nextjs").exists()
    assert not provider.enabled_path("nextjs").is_symlink()


def test_server_name_reads_existing_site(provider: NginxProvider) -> None:
    """server_name returns the configured name, or None without a site."""
    assert provider.server_name("nextjs") is None

    provider.render_site("nextjs", {"server_name": "app.example.com", "upstream_port": 3000})

    assert provider.server_name("nextjs") == "app.example.com"


def test_enable_replaces_broken_symlink(provider: NginxProvider) -> None:
    """A dangling sites-enabled link is replaced with one to the site."""
    provider.site_path("nextjs").parent.mkdir(parents=True)
    provider.site_path("nextjs").write_text("server {}\n")
    enabled = provider.enabled_path("nextjs")
    enabled.parent.mkdir(parents=True)
    enabled.symlink_to(provider.sites_available / "gone")

    assert provider.enable("nextjs") is True
    assert enabled.resolve() == provider.site_path("nextjs").resolve()
    assert provider.enable("nextjs") is False
