"""Syntactic validators for operator-supplied parameters.

Every validator returns the normalised value or raises
:class:`~provctl.errors.ValidationError`. Appliers call these before touching
the host so invalid input never results in a partial mutation.
"""
from __future__ import annotations

import ipaddress
import re
from collections.abc import Iterable

from .errors import ValidationError

GITHUB_SSH_URL_RE = re.compile(r"^git@github\.com:[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+\.git$")
USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SSH_KEY_TYPES = (
    "ssh-rsa",
    "ssh-ed25519",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
)
_DOMAIN_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_YES_RE = re.compile(r"^[Yy][Ee]?[Ss]?$")
_NO_RE = re.compile(r"^[Nn][Oo]?$")
RESERVED_USERNAMES = frozenset({"root", "daemon", "bin", "sys", "nobody", "www-data"})


def validate_ip(value: str) -> str:
    """Validate an IPv4 or IPv6 literal."""
    candidate = value.strip()
    if not candidate:
        raise ValidationError("IP address must be a non-empty string.")
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError as exc:
        raise ValidationError(f"Invalid IP address: {candidate}") from exc
    return str(address)


def validate_ip_list(values: Iterable[str]) -> list[str]:
    """Validate a collection of IP literals; at least one is required."""
    addresses = [validate_ip(value) for value in values if value.strip()]
    if not addresses:
        raise ValidationError("At least one DNS server address is required.")
    return addresses


def validate_domain(value: str) -> str:
    """Validate and normalise a domain/FQDN."""
    normalised = value.strip().lower().rstrip(".")
    if not normalised:
        raise ValidationError("Domain must be a non-empty string.")
    if len(normalised) > 253:
        raise ValidationError("Domain must be 253 characters or fewer.")
    if normalised.startswith("-") or normalised.endswith("-"):
        raise ValidationError("Domain cannot start or end with a hyphen.")
    if not re.fullmatch(r"[a-z0-9.-]+", normalised):
        raise ValidationError("Domain may contain letters, numbers, dots, and hyphens.")
    labels = normalised.split(".")
    if len(labels) < 2:
        raise ValidationError(f"Domain must contain at least one dot: {normalised}")
    for label in labels:
        if not _DOMAIN_LABEL_RE.fullmatch(label):
            raise ValidationError(f"Invalid domain label '{label}' in {normalised}")
    return normalised


def validate_port(value: str | int) -> int:
    """Validate a TCP port number in the range 1-65535."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid port: {value!r}")
    if isinstance(value, int):
        port = value
    else:
        text = value.strip()
        if not text.isdigit():
            raise ValidationError(f"Port must be a number between 1 and 65535. Got {text!r}.")
        port = int(text)
    if port < 1 or port > 65535:
        raise ValidationError(f"Port must be between 1 and 65535. Got {port}.")
    return port


def validate_github_ssh_url(value: str) -> str:
    """Validate a GitHub SSH clone URL (``git@github.com:owner/repo.git``)."""
    candidate = value.strip()
    if not GITHUB_SSH_URL_RE.fullmatch(candidate):
        raise ValidationError(
            "Invalid repository URL. Use the SSH format: git@github.com:username/repository.git"
        )
    return candidate


def validate_ssh_public_key(value: str) -> str:
    """Validate an OpenSSH public key line by its key-type prefix."""
    candidate = value.strip()
    if not candidate:
        raise ValidationError("SSH public key must be a non-empty string.")
    if "\n" in candidate:
        raise ValidationError("SSH public key must be a single line.")
    parts = candidate.split()
    if parts[0] not in SSH_KEY_TYPES or len(parts) < 2:
        allowed = ", ".join(SSH_KEY_TYPES)
        raise ValidationError(f"Invalid SSH public key format. Expected one of: {allowed}.")
    return candidate


def validate_username(value: str) -> str:
    """Validate a Unix login name for a new administrative account."""
    candidate = value.strip()
    if not USERNAME_RE.fullmatch(candidate):
        raise ValidationError(
            f"Invalid username {candidate!r}. Use lowercase letters, digits, '-' or '_'."
        )
    if candidate in RESERVED_USERNAMES:
        raise ValidationError(f"Username '{candidate}' is reserved.")
    return candidate


def validate_email(value: str) -> str:
    """Validate a contact email address shape."""
    candidate = value.strip()
    if not EMAIL_RE.fullmatch(candidate):
        raise ValidationError(f"Invalid email address: {candidate!r}")
    return candidate


def parse_yes_no(value: str) -> bool | None:
    """Return True/False for a yes/no answer, or None when it is neither."""
    answer = value.strip()
    if _YES_RE.fullmatch(answer):
        return True
    if _NO_RE.fullmatch(answer):
        return False
    return None


__all__ = [
    "SSH_KEY_TYPES",
    "parse_yes_no",
    "validate_domain",
    "validate_email",
    "validate_github_ssh_url",
    "validate_ip",
    "validate_ip_list",
    "validate_port",
    "validate_ssh_public_key",
    "validate_username",
]
