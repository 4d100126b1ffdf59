"""Write-once credential records with owner-only permissions."""
from __future__ import annotations

import logging
import secrets
from base64 import b64encode
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .backups import atomic_write

LOGGER = logging.getLogger(__name__)

CREDENTIAL_MODE = 0o600


def generate_secret(num_bytes: int) -> str:
    """Return *num_bytes* of randomness encoded as base64."""
    return b64encode(secrets.token_bytes(num_bytes)).decode("ascii")


@dataclass(slots=True)
class CredentialStore:
    """Persist generated secrets under the credentials directory."""

    root: Path

    def path_for(self, name: str) -> Path:
        """Return the record path for *name* (e.g. ``admin`` -> ``.admin_credentials``)."""
        return self.root / f".{name}_credentials"

    def write(self, name: str, values: Mapping[str, str]) -> Path:
        """Write ``key: value`` lines for *name* with mode 0600."""
        path = self.path_for(name)
        content = "".join(f"{key}: {value}\n" for key, value in values.items())
        atomic_write(path, content, mode=CREDENTIAL_MODE)
        LOGGER.debug("Credential record written to %s", path)
        return path


__all__ = ["CREDENTIAL_MODE", "CredentialStore", "generate_secret"]
