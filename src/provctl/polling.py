"""Bounded retry primitive used to confirm postconditions."""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class PollResult:
    """Outcome of a bounded poll."""

    satisfied: bool
    attempts: int
    waited: float


def poll_until(
    predicate: Callable[[], bool],
    *,
    attempts: int,
    interval: float,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Evaluate *predicate* up to *attempts* times, sleeping between tries.

    The delay starts at *interval* and is multiplied by *backoff* after every
    unsuccessful attempt. No sleep happens after the final attempt.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    delay = interval
    waited = 0.0
    for attempt in range(1, attempts + 1):
        if predicate():
            return PollResult(satisfied=True, attempts=attempt, waited=waited)
        if attempt < attempts:
            sleep(delay)
            waited += delay
            delay *= backoff
    return PollResult(satisfied=False, attempts=attempts, waited=waited)


__all__ = ["PollResult", "poll_until"]
