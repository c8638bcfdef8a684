import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Delay schedule for a retried operation.

    Attempts are numbered from 1. After failed attempt ``n`` the caller waits
    ``delay_for(n)``: exponential (``base_delay * factor ** (n - 1)``) for the
    first ``fast_attempts`` failures, then ``long_delay`` for every failure
    after that. ``max_attempts=None`` retries forever.
    """

    base_delay: float = 2.0
    factor: float = 2.0
    fast_attempts: int = 3
    long_delay: float | None = 600.0
    max_attempts: int | None = None
    jitter: float = 0.0

    def delay_for(self, attempt: int) -> float:
        attempt = max(1, attempt)
        if self.long_delay is None or attempt <= self.fast_attempts:
            delay = self.base_delay * (self.factor ** (attempt - 1))
        else:
            delay = self.long_delay
        if self.jitter:
            delay += delay * random.uniform(-self.jitter, self.jitter)
        return max(0.0, delay)

    def should_retry(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt < self.max_attempts

    @classmethod
    def background(
        cls,
        base_delay: float = 2.0,
        fast_attempts: int = 3,
        long_delay: float = 600.0,
        jitter: float = 0.0,
    ) -> "RetryPolicy":
        return cls(
            base_delay=base_delay,
            factor=2.0,
            fast_attempts=fast_attempts,
            long_delay=long_delay,
            max_attempts=None,
            jitter=jitter,
        )

    @classmethod
    def bounded(cls, max_attempts: int = 3, base_delay: float = 2.0, jitter: float = 0.0) -> "RetryPolicy":
        return cls(
            base_delay=base_delay,
            factor=2.0,
            fast_attempts=max_attempts,
            long_delay=None,
            max_attempts=max_attempts,
            jitter=jitter,
        )

    @classmethod
    def fixed(cls, delay: float, max_attempts: int | None = None) -> "RetryPolicy":
        return cls(
            base_delay=delay,
            factor=1.0,
            fast_attempts=0,
            long_delay=None,
            max_attempts=max_attempts,
        )
