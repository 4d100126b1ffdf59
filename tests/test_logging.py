"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from provctl.logging import StructuredLogger


def _records(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_structured_logger_creates_file_with_mode(tmp_path: Path) -> None:
    """The log file is created 0640 on first use."""
    log_file = tmp_path / "var" / "log" / "server-setup.log"

    logger = StructuredLogger(log_file)

    assert logger.enabled is True
    assert log_file.exists()
    assert oct(log_file.stat().st_mode & 0o777) == "0o640"


def test_message_lines_are_timestamped(tmp_path: Path) -> None:
    """Progress messages are appended as JSON lines."""
    logger = StructuredLogger(tmp_path / "setup.log")

    logger.message("Installing ufw", context={"facet": "firewall"})
    logger.message("Firewall enabled")

    records = _records(logger.path)
    assert [record["message"] for record in records] == ["Installing ufw", "Firewall enabled"]
    assert records[0]["kind"] == "message"
    assert records[0]["context"] == {"facet": "firewall"}
    assert str(records[0]["timestamp"]).endswith("Z")


def test_operation_records_steps_and_result(tmp_path: Path) -> None:
    """Operations persist their steps and final result when the block exits."""
    logger = StructuredLogger(tmp_path / "setup.log")

    with logger.operation("apply ssh", target={"facet": "ssh"}) as op:
        op.add_step("apply", detail={"changed": True})
        op.success("SSH hardened.", changed=1, backups=[tmp_path / "sshd_config.backup.t"])

    (record,) = _records(logger.path)
    assert record["kind"] == "operation"
    assert record["command"] == "apply ssh"
    assert record["target"] == {"facet": "ssh"}
    assert record["steps"][0]["name"] == "apply"  # type: ignore[index]
    result = record["result"]
    assert result["status"] == "success"  # type: ignore[index]
    assert result["backups"] == [str(tmp_path / "sshd_config.backup.t")]  # type: ignore[index]


def test_unhandled_exception_is_recorded_and_reraised(tmp_path: Path) -> None:
    """An exception escaping the block is logged as an error and propagates."""
    logger = StructuredLogger(tmp_path / "setup.log")

    with pytest.raises(RuntimeError, match="boom"):
        with logger.operation("apply dns"):
            raise RuntimeError("boom")

    (record,) = _records(logger.path)
    assert record["result"]["status"] == "error"  # type: ignore[index]
    assert "boom" in record["result"]["message"]  # type: ignore[index]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when the log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir / "setup.log")
    assert logger.enabled is False

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)
    logger.message("still fine")


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "setup.log")

    original_open = Path.open

    def fail_open(self: Path, *args: object, **kwargs: object) -> object:
        if self == logger.path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_open)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger.enabled is False

    with logger.operation("demo-2") as op:
        op.success("done", changed=0)


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "setup.log")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("deploy", args={"path": Path("foo")}) as op:
        op.warning(
            "Deployed; application not reachable yet.",
            warnings=("note",),
            changed=1,
            context={"path": Path("/var/www"), "obj": Custom()},
        )

    (record,) = _records(logger.path)
    result = record["result"]
    assert result["status"] == "warning"  # type: ignore[index]
    assert result["warnings"] == ["note"]  # type: ignore[index]
    assert result["context"] == {"path": "/var/www", "obj": "<custom>"}  # type: ignore[index]


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors default to the message when no list is provided."""
    logger = StructuredLogger(tmp_path / "setup.log")

    with logger.operation("demo") as op:
        op.error("boom", errors=None, rc=1)

    (record,) = _records(logger.path)
    result = record["result"]
    assert result["status"] == "error"  # type: ignore[index]
    assert result["errors"] == ["boom"]  # type: ignore[index]
    assert result["rc"] == 1  # type: ignore[index]
