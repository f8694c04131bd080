"""
Provider-scoped rate limiting on top of pyrate-limiter.

Each provider gets one ``Limiter`` with a single ``Rate(capacity, window)``.
pyrate-limiter keeps a sliding log of admissions, so no rolling window of
``window_seconds`` ever holds more than ``capacity`` calls. Limiters are shared
by every job that talks to the provider.

Acquisition never blocks the event loop: the limiter is polled with
``try_acquire`` and the caller sleeps between attempts. If no slot frees up
within the wait ceiling, ``RateLimitError`` is raised so the retry policy can
back off.
"""

import asyncio
import time
from collections import deque
from functools import lru_cache

from pyrate_limiter import Duration, Limiter, Rate

from assessment_validator.core.config import Settings, get_settings
from assessment_validator.core.exceptions import RateLimitError
from assessment_validator.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.025


class TokenBucketLimiter:
    """
    Bounded-wait wrapper around a pyrate-limiter ``Limiter``.

    Attributes:
        name: Provider the limiter belongs to.
        capacity: Maximum admissions per rolling window.
        window_seconds: Length of the rolling window.
        wait_ceiling_seconds: Longest a caller may be suspended.
    """

    def __init__(
        self,
        name: str,
        capacity: int,
        window_seconds: float = 60.0,
        wait_ceiling_seconds: float = 30.0,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.name = name
        self.capacity = capacity
        self.window_seconds = window_seconds
        self.wait_ceiling_seconds = wait_ceiling_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._limiter = self._build_limiter()
        # Solo para estadisticas y el hint de retry_after; la admision la decide pyrate
        self._admissions: deque[float] = deque()
        self._admitted = 0
        self._rejected = 0

    def _build_limiter(self) -> Limiter:
        window_ms = max(1, round(self.window_seconds * int(Duration.SECOND)))
        return Limiter(Rate(self.capacity, window_ms), raise_when_fail=False, max_delay=None)

    def _forget_expired(self, now: float) -> None:
        while self._admissions and now - self._admissions[0] >= self.window_seconds:
            self._admissions.popleft()

    def _next_slot_in(self, now: float) -> float:
        self._forget_expired(now)
        if len(self._admissions) < self.capacity:
            return 0.0
        return self._admissions[0] + self.window_seconds - now

    def try_acquire(self) -> bool:
        """Take a slot if one is free, without waiting."""
        if not self._limiter.try_acquire(self.name, weight=1):
            return False
        self._admissions.append(time.monotonic())
        self._admitted += 1
        return True

    async def acquire(self) -> float:
        """
        Wait for a slot.

        Returns:
            Seconds spent waiting.

        Raises:
            RateLimitError: If no slot frees up within the wait ceiling.
        """
        started = time.monotonic()
        while True:
            if self.try_acquire():
                return time.monotonic() - started

            now = time.monotonic()
            waited = now - started
            next_slot = self._next_slot_in(now)
            if waited + next_slot > self.wait_ceiling_seconds or waited >= self.wait_ceiling_seconds:
                self._rejected += 1
                logger.warning(
                    f"Rate limit for '{self.name}': {self.capacity}/{self.window_seconds:.0f}s exhausted, "
                    f"next slot in {next_slot:.2f}s exceeds wait ceiling"
                )
                raise RateLimitError(
                    f"No slot available within {self.wait_ceiling_seconds:.1f}s",
                    provider=self.name,
                    retry_after=next_slot or self.poll_interval_seconds,
                )
            remaining = self.wait_ceiling_seconds - waited
            await asyncio.sleep(min(max(next_slot, self.poll_interval_seconds), remaining))

    def get_stats(self) -> dict:
        now = time.monotonic()
        self._forget_expired(now)
        return {
            "tokens_available": self.capacity - len(self._admissions),
            "capacity": self.capacity,
            "window_seconds": self.window_seconds,
            "total_admitted": self._admitted,
            "total_rejected": self._rejected,
        }

    def reset(self) -> None:
        self._limiter = self._build_limiter()
        self._admissions.clear()
        self._admitted = 0
        self._rejected = 0
        logger.info(f"Rate limit reset for provider: {self.name}")


class RateLimiterRegistry:
    """One limiter per provider name, created lazily from settings."""

    def __init__(self, config: Settings | None = None):
        self._config = config or get_settings()
        self._limiters: dict[str, TokenBucketLimiter] = {}

    def get(self, provider: str) -> TokenBucketLimiter:
        limiter = self._limiters.get(provider)
        if limiter is None:
            requests_per_minute, _ = self._config.provider_limits(provider)
            limiter = TokenBucketLimiter(
                name=provider,
                capacity=requests_per_minute,
                window_seconds=self._config.rate_limit_window_seconds,
                wait_ceiling_seconds=self._config.rate_limit_wait_ceiling_seconds,
            )
            self._limiters[provider] = limiter
        return limiter

    def register(self, limiter: TokenBucketLimiter) -> None:
        """Install a pre-built limiter (custom capacity or window) for its provider."""
        self._limiters[limiter.name] = limiter

    def get_stats(self) -> dict[str, dict]:
        return {name: limiter.get_stats() for name, limiter in self._limiters.items()}

    def reset(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset()


@lru_cache(maxsize=1)
def get_rate_limiter_registry() -> RateLimiterRegistry:
    """Process-wide registry so every job shares each provider's limiter."""
    return RateLimiterRegistry()
