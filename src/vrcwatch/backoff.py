"""Reconnect delay policies.

Two policies are used by the connection supervisor:

* :class:`ExponentialBackoff` for transient failures: the delay doubles per
  attempt up to a ceiling and is then jittered by ±25 %, so a fleet of
  watchers does not hit the upstream in lock-step.
* :class:`FixedCooldown` for authentication failures, where retrying quickly
  is futile and only adds load upstream.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from vrcwatch._constants import AUTH_FAILURE_COOLDOWN, BACKOFF_CAP_EXPONENT, INITIAL_BACKOFF, MAX_BACKOFF

JITTER_LOW = 0.75
JITTER_HIGH = 1.25


class DelayPolicy(Protocol):
    """Anything that maps an attempt counter to a wait in seconds."""

    def compute_delay(self, attempt: int) -> float:
        ...


@dataclass(frozen=True)
class ExponentialBackoff:
    """Capped exponential backoff with multiplicative jitter.

    ``rand`` must return a float in ``[0, 1)``; it is mapped linearly onto
    the jitter range ``[0.75, 1.25]``. Inject a constant to make delays
    deterministic.
    """

    base: float = INITIAL_BACKOFF
    max_delay: float = MAX_BACKOFF
    cap_exponent: int = BACKOFF_CAP_EXPONENT
    rand: Callable[[], float] = field(default=random.random, compare=False)

    def unjittered(self, attempt: int) -> float:
        """Clamped exponential delay before jitter is applied."""
        if attempt < 0:
            raise ValueError(f"attempt must be non-negative, got {attempt}")
        exponential = self.base * 2 ** min(attempt, self.cap_exponent)
        return min(exponential, self.max_delay)

    def compute_delay(self, attempt: int) -> float:
        factor = JITTER_LOW + (JITTER_HIGH - JITTER_LOW) * self.rand()
        return self.unjittered(attempt) * factor


@dataclass(frozen=True)
class FixedCooldown:
    """Constant delay, independent of the attempt counter."""

    delay: float = AUTH_FAILURE_COOLDOWN

    def compute_delay(self, attempt: int) -> float:  # noqa: ARG002
        return self.delay
