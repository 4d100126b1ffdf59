"""Install SSH public keys into ``authorized_keys``."""
from __future__ import annotations

import logging
import os
from pathlib import Path

from ..providers.command import CommandRunner
from ..validators import SSH_KEY_TYPES

LOGGER = logging.getLogger(__name__)

SSH_DIR_MODE = 0o700
AUTHORIZED_KEYS_MODE = 0o600
SECURITY_KEY_TYPES = ("sk-ssh-ed25519@openssh.com", "sk-ecdsa-sha2-nistp256@openssh.com")


def authorized_keys_path(home: Path) -> Path:
    """Return ``~/.ssh/authorized_keys`` for *home*."""
    return home / ".ssh" / "authorized_keys"


def read_authorized_keys(home: Path) -> list[str]:
    """Return the key lines present under *home*; comments are skipped.

    Lines may carry an options prefix (``from="...",no-pty ssh-ed25519 ...``)
    and FIDO security-key types count as keys.
    """
    path = authorized_keys_path(home)
    if not path.is_file():
        return []
    keys = []
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#") and _has_key(stripped):
            keys.append(stripped)
    return keys


def install_authorized_key(
    home: Path,
    key: str,
    *,
    owner: str,
    runner: CommandRunner,
) -> bool:
    """Append *key* for *owner* unless already present; return ``True`` when written.

    The ``.ssh`` directory is forced to 0700 and the key file to 0600, and
    ownership is handed to *owner* on every call.
    """
    ssh_dir = home / ".ssh"
    ssh_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(ssh_dir, SSH_DIR_MODE)

    path = authorized_keys_path(home)
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    lines = [line.strip() for line in existing.splitlines()]
    changed = key.strip() not in lines
    if changed:
        with path.open("a", encoding="utf-8") as handle:
            if existing and not existing.endswith("\n"):
                handle.write("\n")
            handle.write(key.strip() + "\n")
        LOGGER.debug("Added key to %s", path)
    os.chmod(path, AUTHORIZED_KEYS_MODE)
    runner.run(["chown", "-R", f"{owner}:{owner}", str(ssh_dir)])
    return changed


# ------------------------------------------------------------------
def _has_key(line: str) -> bool:
    tokens = line.split()
    known = (*SSH_KEY_TYPES, *SECURITY_KEY_TYPES)
    return any(token in known for token in tokens[:-1])


__all__ = [
    "AUTHORIZED_KEYS_MODE",
    "SECURITY_KEY_TYPES",
    "SSH_DIR_MODE",
    "authorized_keys_path",
    "install_authorized_key",
    "read_authorized_keys",
]
