"""Error taxonomy shared by checkers, appliers and workflows."""
from __future__ import annotations

from collections.abc import Sequence


class ProvisioningError(RuntimeError):
    """Base class for classified provisioning failures."""

    category = "error"

    def __init__(self, message: str, *, diagnostics: Sequence[str] | None = None) -> None:
        """Store *message* and optional diagnostic lines (log tails, expected values)."""
        super().__init__(message)
        self.message = message
        self.diagnostics: tuple[str, ...] = tuple(diagnostics or ())


class ValidationError(ProvisioningError):
    """Raised when user-supplied input violates its syntactic contract."""

    category = "validation"


class PreconditionError(ProvisioningError):
    """Raised when a required collaborator, service or file is absent."""

    category = "precondition"


class ApplyFailure(ProvisioningError):
    """Raised when a mutation ran but its postcondition was never observed."""

    category = "apply"


class UserAbort(ProvisioningError):
    """Raised when the operator explicitly declines a safety confirmation."""

    category = "aborted"


__all__ = [
    "ApplyFailure",
    "PreconditionError",
    "ProvisioningError",
    "UserAbort",
    "ValidationError",
]
