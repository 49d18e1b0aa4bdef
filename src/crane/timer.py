"""Jittered backoff timer that paces reconciliation attempts."""

from __future__ import annotations

import math
import random
import time
from collections.abc import Callable

MIN_DELAY_MS = 2000
SCALE_MS = 3000
MAX_DELAY_MS = 20_000


def draw_delay_ms(rng: random.Random) -> int:
    """Sample a wait in milliseconds: 2s plus an exponential tail, capped at 20s."""
    x = rng.expovariate(1.0)
    return min(MIN_DELAY_MS + math.floor(x * SCALE_MS), MAX_DELAY_MS)


class BackoffTimer:
    """Single due-time, re-armed with a fresh random delay after every attempt.

    Starts due, so the first attempt runs immediately. Times are
    ``time.monotonic()`` seconds unless a different clock is injected.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock
        self.due_time = clock()

    def is_due(self) -> bool:
        return self._clock() >= self.due_time

    def reset(self) -> float:
        """Arm the timer for the next attempt and return the new due-time."""
        delay_ms = draw_delay_ms(self._rng)
        self.due_time = self._clock() + delay_ms / 1000
        return self.due_time

    def seconds_until_due(self) -> float:
        return max(0.0, self.due_time - self._clock())
