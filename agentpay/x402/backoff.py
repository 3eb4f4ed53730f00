"""
Backoff policies for the payment retry loop.

``next_delay(attempt)`` returns the number of seconds to wait before retry
number ``attempt + 1``. Attempt 0 is the settlement grace period between
submitting a payment and the first retry.
"""

from typing import Protocol


class BackoffPolicy(Protocol):
    """Delay schedule for retries."""

    def next_delay(self, attempt: int) -> float:
        ...


class FixedBackoff:
    """A grace period before the first retry, then a constant interval."""

    def __init__(self, initial_delay: float, retry_delay: float):
        self.initial_delay = initial_delay
        self.retry_delay = retry_delay

    def next_delay(self, attempt: int) -> float:
        return self.initial_delay if attempt == 0 else self.retry_delay

    def __repr__(self) -> str:
        return f"FixedBackoff(initial_delay={self.initial_delay}, retry_delay={self.retry_delay})"


class ExponentialBackoff:
    """``base_delay * factor ** attempt``, capped at ``max_delay``."""

    def __init__(self, base_delay: float, factor: float = 2.0, max_delay: float | None = None):
        self.base_delay = base_delay
        self.factor = factor
        self.max_delay = max_delay

    def next_delay(self, attempt: int) -> float:
        delay = self.base_delay * (self.factor ** attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def __repr__(self) -> str:
        return f"ExponentialBackoff(base_delay={self.base_delay}, factor={self.factor}, max_delay={self.max_delay})"


class NoBackoff:
    """Never waits."""

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def __repr__(self) -> str:
        return "NoBackoff()"
