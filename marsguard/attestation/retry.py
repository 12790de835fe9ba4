"""Retry policy for transport failures talking to the registry."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts plus capped exponential backoff.

    ``delay(n)`` is the wait before attempt ``n + 1`` (n starts at 1):
    backoff_base * backoff_factor ** (n - 1), capped at max_backoff.
    """

    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    max_backoff: float = 8.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base < 0 or self.max_backoff < 0:
            raise ValueError("backoff must be non-negative")

    def delay(self, attempt: int) -> float:
        wait = self.backoff_base * (self.backoff_factor ** max(0, attempt - 1))
        return min(self.max_backoff, wait)


NO_RETRY = RetryPolicy(max_attempts=1, backoff_base=0.0)


__all__ = ["NO_RETRY", "RetryPolicy"]
