"""Jinja2 template rendering for managed configuration files."""
from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError as JinjaTemplateError,
)

from .backups import BackupManager, atomic_write

MANAGED_MARKER = "Managed by provctl"


class TemplateError(RuntimeError):
    """Raised when a template cannot be located or rendered."""


class TemplateEngine:
    """Render packaged templates, letting an override directory shadow them."""

    def __init__(self, loader: BaseLoader) -> None:
        """Create the engine around *loader*."""
        self._env = Environment(
            loader=loader,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,  # noqa: S701 - renders config files, not HTML
        )
        self._env.globals["managed_marker"] = MANAGED_MARKER

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers templates found in *override_dir*."""
        loaders: list[BaseLoader] = []
        if override_dir is not None and Path(override_dir).is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("provctl", "templates"))
        return cls(ChoiceLoader(loaders))

    def render_to_string(self, name: str, context: Mapping[str, object]) -> str:
        """Render template *name* with *context*."""
        try:
            template = self._env.get_template(name)
            return template.render(**context)
        except JinjaTemplateError as exc:
            raise TemplateError(f"Failed to render template '{name}': {exc}") from exc

    def render_to_path(
        self,
        name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
        backups: BackupManager | None = None,
    ) -> bool:
        """Render *name* into *destination*; return ``True`` when the file changed."""
        content = self.render_to_string(name, context)
        return atomic_write(destination, content, mode=mode, backups=backups)


__all__ = ["MANAGED_MARKER", "TemplateEngine", "TemplateError"]
