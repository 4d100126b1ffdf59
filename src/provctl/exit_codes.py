"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI.

    Every failure class (validation, missing prerequisite, non-root
    invocation, unrecoverable apply failure) shares exit status 1.
    """

    OK = 0
    FAILURE = 1
