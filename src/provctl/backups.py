"""Timestamped pre-mutation backups and atomic file writes."""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

RUN_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


class BackupError(RuntimeError):
    """Raised when a backup copy cannot be created or restored."""


def run_timestamp(moment: datetime | None = None) -> str:
    """Return the run timestamp used to suffix backup files."""
    return (moment or datetime.now()).strftime(RUN_TIMESTAMP_FORMAT)


@dataclass(slots=True)
class BackupManager:
    """Create ``<path>.backup.<timestamp>`` copies for a single run.

    All backups taken during one run share the same timestamp. Files are
    copied to disk at most once per run so the backup keeps the original
    pre-run content. The content preceding the most recent write is also held
    so :meth:`restore` rolls back only the last write.
    """

    timestamp: str = field(default_factory=run_timestamp)
    created: list[Path] = field(default_factory=list)
    _sources: dict[Path, Path] = field(default_factory=dict)
    _previous: dict[Path, bytes] = field(default_factory=dict)

    def backup_path(self, path: Path) -> Path:
        """Return the backup location for *path* in this run."""
        return path.with_name(f"{path.name}.backup.{self.timestamp}")

    def backup(self, path: Path) -> Path | None:
        """Copy *path* aside; return the backup path or ``None`` when absent."""
        if not path.exists():
            self._previous.pop(path, None)
            return None
        try:
            self._previous[path] = path.read_bytes()
        except OSError as exc:
            raise BackupError(f"Failed to read {path}: {exc}") from exc
        if path in self._sources:
            return self._sources[path]
        destination = self.backup_path(path)
        try:
            shutil.copy2(path, destination)
        except OSError as exc:
            raise BackupError(f"Failed to back up {path}: {exc}") from exc
        LOGGER.debug("Backed up %s to %s", path, destination)
        self._sources[path] = destination
        self.created.append(destination)
        return destination

    def restore(self, path: Path) -> bool:
        """Undo the last write to *path*; return ``True`` when restored."""
        content = self._previous.pop(path, None)
        if content is None:
            return False
        try:
            path.write_bytes(content)
        except OSError as exc:
            raise BackupError(f"Failed to restore {path}: {exc}") from exc
        LOGGER.info("Restored %s to its content before the last write", path)
        return True


def atomic_write(
    path: Path,
    content: str,
    *,
    mode: int = 0o644,
    backups: BackupManager | None = None,
) -> bool:
    """Write *content* to *path* atomically; return ``True`` when it changed.

    Unchanged content leaves the file (and its mtime) untouched. When
    *backups* is supplied an existing file is copied aside before it is
    replaced.
    """
    if path.exists():
        try:
            if path.read_text(encoding="utf-8") == content:
                if (path.stat().st_mode & 0o777) != mode:
                    os.chmod(path, mode)
                return False
        except UnicodeDecodeError:
            pass
    if backups is not None:
        backups.backup(path)

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return True


__all__ = ["BackupError", "BackupManager", "RUN_TIMESTAMP_FORMAT", "atomic_write", "run_timestamp"]
