"""Structured JSON-lines logging for provctl runs.

Every command records one ``operation`` line (steps plus final result) and
apply actions add timestamped ``message`` lines as they progress. All lines go
to a single append-only file, ``/var/log/server-setup.log`` by default. Write
failures disable the logger instead of aborting the run.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from . import __version__

LOGGER = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _json_safe(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Enum):
        return _json_safe(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


class OperationScope:
    """Collect steps and the final result for a single logged operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Bind the scope to *logger* and the command being executed."""
        self._logger = logger
        self.command = command
        self.op_id = uuid.uuid4().hex[:12]
        self._args = dict(args or {})
        self._target = dict(target or {})
        self._steps: list[dict[str, object]] = []
        self._result: dict[str, object] | None = None
        self._started = time.perf_counter()

    @property
    def status(self) -> str | None:
        """Return the recorded result status, if any."""
        if self._result is None:
            return None
        return str(self._result["status"])

    def add_step(self, name: str, *, status: str = "success", detail: object = None) -> None:
        """Record an intermediate step."""
        self._steps.append(
            {
                "name": name,
                "status": status,
                "detail": _json_safe(detail),
                "timestamp": _timestamp(),
            }
        )

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        backups: Sequence[object] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=None,
            backups=backups,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        backups: Sequence[object] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            backups=backups,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            changed=0,
            warnings=warnings,
            errors=list(errors) if errors is not None else [message],
            backups=None,
            context=context,
            rc=rc,
        )

    # ------------------------------------------------------------------
    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Sequence[str] | None,
        errors: Sequence[str] | None,
        backups: Sequence[object] | None,
        context: Mapping[str, object] | None,
        rc: int | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": _json_safe(list(warnings or [])),
            "errors": _json_safe(list(errors or [])),
            "backups": _json_safe(list(backups or [])),
            "context": _json_safe(dict(context or {})),
        }
        if rc is not None:
            result["rc"] = rc
        self._result = result

    def _record(self) -> dict[str, object]:
        result = self._result or {
            "status": "success",
            "message": "completed",
            "changed": 0,
            "warnings": [],
            "errors": [],
            "backups": [],
            "context": {},
        }
        return {
            "timestamp": _timestamp(),
            "kind": "operation",
            "op_id": self.op_id,
            "command": self.command,
            "args": _json_safe(self._args),
            "target": _json_safe(self._target),
            "context": {"provctl_version": __version__},
            "steps": list(self._steps),
            "result": result,
            "duration_ms": int((time.perf_counter() - self._started) * 1000),
        }


class StructuredLogger:
    """Append JSON lines describing provctl activity to a single log file."""

    def __init__(self, log_file: Path, *, mode: int = 0o640) -> None:
        """Prepare the log file, disabling the logger when it is unwritable."""
        self._log_path = Path(log_file)
        self._enabled = True
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            if not self._log_path.exists():
                self._log_path.touch(mode=mode)
                self._log_path.chmod(mode)
        except OSError as exc:
            LOGGER.warning("Structured log disabled; cannot prepare %s: %s", self._log_path, exc)
            self._enabled = False

    @property
    def path(self) -> Path:
        """Return the log file path."""
        return self._log_path

    @property
    def enabled(self) -> bool:
        """Return ``True`` while the log file is writable."""
        return self._enabled

    def message(
        self,
        text: str,
        *,
        level: str = "info",
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Append a timestamped free-form message."""
        LOGGER.log(_LEVELS.get(level, logging.INFO), text)
        record: dict[str, object] = {
            "timestamp": _timestamp(),
            "kind": "message",
            "level": level,
            "message": text,
        }
        if context:
            record["context"] = _json_safe(dict(context))
        self._write(record)

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it when the block exits."""
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except Exception as exc:
            if scope.status is None:
                scope.error(f"Unhandled exception: {exc}", errors=[repr(exc)])
            raise
        finally:
            self._write(scope._record())

    # ------------------------------------------------------------------
    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as exc:
            LOGGER.warning("Structured log disabled after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
