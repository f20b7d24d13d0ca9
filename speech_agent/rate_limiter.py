# speech_agent/rate_limiter.py

"""Minimum-interval limiter for backends with a strict requests-per-minute ceiling."""
import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def min_interval_for_rpm(max_rpm: int, buffer_ms: int = 150) -> float:
    """Spacing in seconds that keeps a caller under `max_rpm` requests per minute."""
    if max_rpm <= 0:
        raise ValueError(f"max_rpm must be positive, got {max_rpm}")
    return (math.ceil(60000 / max_rpm) + buffer_ms) / 1000.0


class RateLimiter:
    """Spaces consecutive calls at least `min_interval` seconds apart.

    One instance is meant to live for the whole process and be shared by
    every client of the limited backend. The read-then-stamp of
    `last_request_at` runs under an asyncio.Lock, so concurrent callers on
    the same event loop queue up instead of racing past the floor. Callers
    in other processes are not coordinated.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "rate-limiter",
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self.min_interval = min_interval
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

    @classmethod
    def from_rpm(cls, max_rpm: int, buffer_ms: int = 150, **kwargs) -> "RateLimiter":
        return cls(min_interval_for_rpm(max_rpm, buffer_ms), **kwargs)

    @property
    def last_request_at(self) -> Optional[float]:
        return self._last_request_at

    async def acquire(self) -> float:
        """Wait for the next free slot and claim it. Returns seconds waited."""
        async with self._lock:
            waited = 0.0
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                remaining = self.min_interval - elapsed
                if remaining > 0:
                    logger.debug(f"{self.name}: waiting {remaining:.3f}s before next request")
                    await self._sleep(remaining)
                    waited = remaining
            self._last_request_at = self._clock()
            return waited
