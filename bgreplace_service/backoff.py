"""Exponential backoff with proportional jitter between attempts."""

from __future__ import annotations

import math
import random
from typing import Callable

from .models import RetryPolicy

JITTER_RATIO = 0.3


class BackoffScheduler:
    def __init__(
        self,
        base_delay_ms: int = 5000,
        max_delay_ms: int = 30000,
        rng: Callable[[], float] = random.random,
    ):
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._rng = rng

    @classmethod
    def from_policy(cls, policy: RetryPolicy, rng: Callable[[], float] = random.random) -> "BackoffScheduler":
        return cls(policy.base_delay_ms, policy.max_delay_ms, rng=rng)

    def delay_ms(self, attempt: int) -> int:
        """
        Delay to wait after failed attempt number `attempt` (1-based).

        Grows as base * 2^(attempt-1), capped at max_delay_ms, plus up to 30%
        random jitter so concurrent callers do not retry in lockstep.
        """
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        # Result is clamped to max_delay_ms anyway; avoid building huge ints.
        exponent = min(attempt - 1, 64)
        exp_delay = min(self.base_delay_ms * 2**exponent, self.max_delay_ms)
        jitter = self._rng() * JITTER_RATIO * exp_delay
        return math.floor(exp_delay + jitter)
