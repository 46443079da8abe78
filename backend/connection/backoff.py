"""
Reconnect backoff policy.

Purpose:
- Centralize the reconnect rules (exponential, capped, bounded attempts)
- Keep the state machine free of arithmetic
- Allow deterministic decisions in tests

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable

from constants import (
    RECONNECT_BASE_DELAY_MS,
    RECONNECT_CAP_DELAY_MS,
    RECONNECT_MAX_ATTEMPTS,
)


# =============================================================================
# Decision
# =============================================================================

@dataclass(frozen=True)
class BackoffDecision:
    """
    Outcome of consulting the policy for one abnormal closure.

    give_up == True means the attempt budget is exhausted and the caller
    must transition to FAILED. delay_ms is meaningless in that case.
    """
    attempt: int
    delay_ms: int
    give_up: bool = False


# =============================================================================
# Policy
# =============================================================================

@dataclass(frozen=True)
class BackoffPolicy:
    """
    delay(attempt) = min(base_delay_ms * 2**attempt, cap_delay_ms)

    Semantics:
    - attempt == 1 is the first abnormal closure.
    - attempt > max_attempts gives up.
    - jitter_ratio scales the delay by a factor drawn uniformly from
      [1 - jitter_ratio, 1 + jitter_ratio]; the result stays <= cap.
    """
    base_delay_ms: int = RECONNECT_BASE_DELAY_MS
    cap_delay_ms: int = RECONNECT_CAP_DELAY_MS
    max_attempts: int = RECONNECT_MAX_ATTEMPTS
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.base_delay_ms <= 0 or self.cap_delay_ms <= 0:
            raise ValueError("backoff delays must be > 0")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if not 0.0 <= self.jitter_ratio < 1.0:
            raise ValueError("jitter_ratio must be in [0, 1)")

    def decide(
        self,
        attempt: int,
        *,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> BackoffDecision:
        """
        Map an attempt number to a delay or a give-up signal.

        rng is only consulted when jitter is enabled.
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")

        if attempt > self.max_attempts:
            return BackoffDecision(attempt=attempt, delay_ms=0, give_up=True)

        delay_ms = min(self.base_delay_ms * 2 ** attempt, self.cap_delay_ms)

        if self.jitter_ratio > 0.0:
            factor = rng(1.0 - self.jitter_ratio, 1.0 + self.jitter_ratio)
            delay_ms = min(int(delay_ms * factor), self.cap_delay_ms)

        return BackoffDecision(attempt=attempt, delay_ms=delay_ms)
