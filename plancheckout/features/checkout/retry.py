"""
Bounded retry policy for pending-plan persistence.

Deterministic delays; the caller owns the sleep so tests never block.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List


def exponential_backoff(base: float = 0.5, factor: float = 2.0, cap: float = 4.0) -> Callable[[int], float]:
    """Delay after failed attempt N (1-based): base * factor**(N-1), capped."""
    def _delay(attempt: int) -> float:
        return min(base * (factor ** (attempt - 1)), cap)
    return _delay


def linear_backoff(unit: float = 1.0) -> Callable[[int], float]:
    """Delay after failed attempt N (1-based): N * unit."""
    def _delay(attempt: int) -> float:
        return attempt * unit
    return _delay


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = exponential_backoff()

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after a failed attempt; 0 after the last one."""
        if attempt >= self.max_attempts:
            return 0.0
        return max(0.0, float(self.backoff(attempt)))

    def schedule(self) -> List[float]:
        """All inter-attempt delays, in order."""
        return [self.delay_after(n) for n in range(1, self.max_attempts)]


def policy_from_settings(cfg) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=cfg.PERSIST_MAX_ATTEMPTS,
        backoff=exponential_backoff(
            base=cfg.PERSIST_BACKOFF_BASE_SECONDS,
            cap=cfg.PERSIST_BACKOFF_MAX_SECONDS,
        ),
    )
