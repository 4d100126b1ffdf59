"""Nginx provider for managing the application reverse-proxy site."""
from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..backups import BackupManager
from ..templates import TemplateEngine
from .command import CommandError, CommandRunner


class NginxError(RuntimeError):
    """Raised when nginx operations fail."""


@dataclass(slots=True)
class NginxRenderResult:
    """Outcome of rendering an nginx site configuration."""

    changed: bool
    validation: subprocess.CompletedProcess[str] | None = None
    reload: subprocess.CompletedProcess[str] | None = None
    validation_error: str | None = None


@dataclass(slots=True)
class NginxProvider:
    """Render, enable and reload nginx site configurations."""

    templates: TemplateEngine
    runner: CommandRunner
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    nginx_bin: str = "nginx"

    def installed(self) -> bool:
        """Return ``True`` when the nginx binary is available."""
        return self.runner.which(self.nginx_bin) is not None

    def site_path(self, site: str) -> Path:
        """Return the path to the nginx site configuration file."""
        return self.sites_available / site

    def enabled_path(self, site: str) -> Path:
        """Return the path of the symlink in sites-enabled for *site*."""
        return self.sites_enabled / site

    def render_site(
        self,
        site: str,
        context: Mapping[str, object],
        *,
        backups: BackupManager | None = None,
        reload_on_change: bool = True,
    ) -> NginxRenderResult:
        """Render the nginx site configuration for *site*.

        When a change is detected the new configuration is validated with
        ``nginx -t`` prior to reloading the service. Validation failures roll
        back to the previous configuration to keep nginx in a working state.
        """
        destination = self.site_path(site)
        destination.parent.mkdir(parents=True, exist_ok=True)

        previous: tuple[str, int] | None = None
        if destination.exists():
            previous = (
                destination.read_text(encoding="utf-8"),
                destination.stat().st_mode,
            )

        changed = self.templates.render_to_path(
            "nginx/site.conf.j2",
            destination,
            context,
            mode=0o644,
            backups=backups,
        )
        newly_enabled = self.enable(site)
        if not changed and not newly_enabled:
            return NginxRenderResult(changed=False)

        try:
            validation_result = self.test_config()
        except NginxError as exc:
            if previous is None:
                destination.unlink(missing_ok=True)
                self.disable(site)
            else:
                content, mode = previous
                destination.write_text(content, encoding="utf-8")
                destination.chmod(mode)
            return NginxRenderResult(changed=False, validation_error=str(exc))

        reload_result: subprocess.CompletedProcess[str] | None = None
        if reload_on_change:
            reload_result = self.reload()
        return NginxRenderResult(
            changed=True,
            validation=validation_result,
            reload=reload_result,
        )

    def enable(self, site: str) -> bool:
        """Enable the site via a sites-enabled symlink; return ``True`` when created."""
        source = self.site_path(site)
        target = self.enabled_path(site)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() or target.is_symlink():
            try:
                if target.resolve() == source.resolve():
                    return False
            except FileNotFoundError:
                # Broken symlink; replace it with a fresh one.
                pass
            target.unlink()
        target.symlink_to(source)
        return True

    def disable(self, site: str) -> None:
        """Disable the site by removing the symlink."""
        self.enabled_path(site).unlink(missing_ok=True)

    def server_name(self, site: str) -> str | None:
        """Return the ``server_name`` configured in *site*, if any."""
        path = self.site_path(site)
        if not path.exists():
            return None
        for line in path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if stripped.startswith("server_name"):
                return stripped[len("server_name") :].strip().rstrip(";").strip()
        return None

    def serves_tls(self, site: str) -> bool:
        """Return ``True`` when *site* declares an ``ssl_certificate``."""
        path = self.site_path(site)
        if not path.exists():
            return False
        return any(
            line.strip().startswith("ssl_certificate ")
            for line in path.read_text(encoding="utf-8").splitlines()
        )

    def test_config(self) -> subprocess.CompletedProcess[str]:
        """Run ``nginx -t`` to validate the configuration."""
        return self._run_nginx(["-t"])

    def reload(self) -> subprocess.CompletedProcess[str]:
        """Reload nginx to apply configuration changes."""
        return self._run_nginx(["-s", "reload"])

    # ------------------------------------------------------------------
    def _run_nginx(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        try:
            return self.runner.run([self.nginx_bin, *args])
        except CommandError as exc:
            raise NginxError(str(exc)) from exc


__all__ = ["NginxError", "NginxProvider", "NginxRenderResult"]
