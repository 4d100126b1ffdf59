"""Tests for run backups and atomic writes."""
from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

from provctl.backups import BackupManager, atomic_write, run_timestamp
from provctl.credentials import CREDENTIAL_MODE, CredentialStore, generate_secret


def test_run_timestamp_format() -> None:
    """Timestamps are date_time with dashes, safe for filenames."""
    assert run_timestamp(datetime(2024, 5, 1, 13, 4, 5)) == "2024-05-01_13-04-05"


def test_atomic_write_backs_up_before_replacing(tmp_path: Path) -> None:
    """The backup holds the pre-mutation bytes and the file gets the new content."""
    target = tmp_path / "sshd_config"
    target.write_text("Port 22\n")
    backups = BackupManager(timestamp="2024-01-01_00-00-00")

    changed = atomic_write(target, "Port 2222\n", backups=backups)

    backup = tmp_path / "sshd_config.backup.2024-01-01_00-00-00"
    assert changed is True
    assert backup.read_text() == "Port 22\n"
    assert target.read_text() == "Port 2222\n"
    assert backups.created == [backup]


def test_atomic_write_unchanged_content_keeps_mtime(tmp_path: Path) -> None:
    """Identical content is not rewritten and no backup is taken."""
    target = tmp_path / "jail.local"
    target.write_text("[sshd]\n")
    os.utime(target, (1_000_000, 1_000_000))
    target.chmod(0o644)
    backups = BackupManager()

    changed = atomic_write(target, "[sshd]\n", backups=backups)

    assert changed is False
    assert target.stat().st_mtime == 1_000_000
    assert backups.created == []


def test_atomic_write_sets_mode_and_creates_parents(tmp_path: Path) -> None:
    """New files land with the requested mode."""
    target = tmp_path / "etc" / "netplan" / "50-cloud-init.yaml"

    assert atomic_write(target, "network: {}\n", mode=0o600) is True
    assert oct(target.stat().st_mode & 0o777) == "0o600"


def test_backup_is_taken_once_per_run(tmp_path: Path) -> None:
    """A second write in the same run keeps the original content in the backup."""
    target = tmp_path / "fstab"
    target.write_text("original\n")
    backups = BackupManager(timestamp="t")

    atomic_write(target, "first\n", backups=backups)
    atomic_write(target, "second\n", backups=backups)

    assert (tmp_path / "fstab.backup.t").read_text() == "original\n"
    assert len(backups.created) == 1


def test_restore_copies_backup_back(tmp_path: Path) -> None:
    """restore returns the file to its pre-run content."""
    target = tmp_path / "resolved.conf"
    target.write_text("old\n")
    backups = BackupManager(timestamp="t")
    atomic_write(target, "new\n", backups=backups)

    assert backups.restore(target) is True
    assert target.read_text() == "old\n"
    assert backups.restore(tmp_path / "never-written") is False


def test_restore_undoes_only_the_latest_write(tmp_path: Path) -> None:
    """A later failed write rolls back to the previous good content, not the pre-run file."""
    target = tmp_path / "sshd_config"
    target.write_text("Port 22\n")
    backups = BackupManager(timestamp="t")
    atomic_write(target, "Port 2222\n", backups=backups)
    atomic_write(target, "Port 2222\nBroken yes\n", backups=backups)

    assert backups.restore(target) is True
    assert target.read_text() == "Port 2222\n"
    assert (tmp_path / "sshd_config.backup.t").read_text() == "Port 22\n"
    assert backups.restore(target) is False


def test_restore_is_false_for_files_created_by_the_last_write(tmp_path: Path) -> None:
    """A file that did not exist before the write has nothing to restore."""
    target = tmp_path / "jail.local"
    backups = BackupManager(timestamp="t")

    atomic_write(target, "[sshd]\n", backups=backups)

    assert backups.restore(target) is False
    assert backups.created == []


def test_credential_store_writes_owner_only_record(tmp_path: Path) -> None:
    """Credential records are key/value lines with mode 0600."""
    store = CredentialStore(tmp_path)

    path = store.write("redis", {"port": "6379", "password": "s3cret"})

    assert path == tmp_path / ".redis_credentials"
    assert path.read_text() == "port: 6379\npassword: s3cret\n"
    assert path.stat().st_mode & 0o777 == CREDENTIAL_MODE


def test_generate_secret_is_random_base64() -> None:
    """Secrets differ between calls and encode the requested entropy."""
    first = generate_secret(32)
    second = generate_secret(32)

    assert first != second
    assert len(first) == 44
