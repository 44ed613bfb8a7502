"""
Per-platform rate limiting for respectful scraping.

Each platform gets one limiter enforcing two rules:
- a randomized delay since the previous request
- a sliding one-hour cap on the number of requests

Admission is serialized per limiter, so concurrent callers are served
strictly in arrival order. Different platforms never contend.

Example:
    >>> registry = RateLimiterRegistry()
    >>> limiter = registry.get(Platform.BIZBUYSELL)
    >>> await limiter.wait_for_slot()  # 3-7s since the last request
    >>> # Make request
"""

from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, Mapping, Optional

from src.domain.entities.enums import Platform
from src.utils.config import PlatformLimitConfig, ScraperConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

WINDOW_SECONDS = 3600.0
# Extra wait after the oldest request leaves the window
WINDOW_BUFFER_SECONDS = 0.1


@dataclass
class RateLimiterConfig:
    """
    Configuration for one platform's limiter.

    Attributes:
        min_delay: Minimum delay between requests in seconds.
        max_delay: Maximum delay between requests in seconds.
        max_requests_per_hour: Cap over the sliding window.
        window_seconds: Length of the sliding window.
    """
    min_delay: float = 3.0
    max_delay: float = 7.0
    max_requests_per_hour: int = 100
    window_seconds: float = WINDOW_SECONDS


PLATFORM_LIMITS: Dict[Platform, RateLimiterConfig] = {
    Platform.BIZBUYSELL: RateLimiterConfig(min_delay=3.0, max_delay=7.0, max_requests_per_hour=120),
    Platform.BIZQUEST: RateLimiterConfig(min_delay=3.0, max_delay=7.0, max_requests_per_hour=120),
    Platform.DEALSTREAM: RateLimiterConfig(min_delay=4.0, max_delay=8.0, max_requests_per_hour=80),
    Platform.TRANSWORLD: RateLimiterConfig(min_delay=3.0, max_delay=6.0, max_requests_per_hour=100),
    Platform.LOOPNET: RateLimiterConfig(min_delay=5.0, max_delay=10.0, max_requests_per_hour=60),
    Platform.BUSINESSBROKER: RateLimiterConfig(min_delay=3.0, max_delay=7.0, max_requests_per_hour=100),
}


class RateLimiter:
    """
    Sliding-window rate limiter with random jitter.

    Clock and sleep are injectable so the hourly cap can be tested
    without waiting an hour.

    Attributes:
        config: Rate limiter configuration.
        name: Label used in log messages.

    Example:
        >>> limiter = RateLimiter(RateLimiterConfig(max_requests_per_hour=2))
        >>> await limiter.wait_for_slot()
        >>> await limiter.wait_for_slot()
        >>> await limiter.wait_for_slot()  # sleeps until the first request is an hour old
    """

    def __init__(
        self,
        config: Optional[RateLimiterConfig] = None,
        name: str = "default",
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or RateLimiterConfig()
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()

        self._timestamps: Deque[float] = deque()
        self._last_request_time: Optional[float] = None
        self._lock = asyncio.Lock()

        logger.debug(
            f"RateLimiter[{name}] initialized: {self.config.min_delay}-{self.config.max_delay}s delay, "
            f"{self.config.max_requests_per_hour}/hour"
        )

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _get_random_delay(self) -> float:
        return self._rng.uniform(self.config.min_delay, self.config.max_delay)

    async def wait_for_slot(self) -> float:
        """
        Wait until the next request is allowed, then record it.

        Returns:
            Total seconds spent waiting.
        """
        async with self._lock:
            waited = 0.0
            now = self._clock()
            self._prune(now)

            if len(self._timestamps) >= self.config.max_requests_per_hour:
                wait = self._timestamps[0] + self.config.window_seconds - now + WINDOW_BUFFER_SECONDS
                if wait > 0:
                    logger.info(f"RateLimiter[{self.name}] hourly cap reached, waiting {wait:.1f}s")
                    await self._sleep(wait)
                    waited += wait
                now = self._clock()
                self._prune(now)

            if self._last_request_time is not None:
                delay = self._get_random_delay()
                elapsed = now - self._last_request_time
                if elapsed < delay:
                    remaining = delay - elapsed
                    logger.debug(f"RateLimiter[{self.name}] waiting {remaining:.2f}s")
                    await self._sleep(remaining)
                    waited += remaining
                    now = self._clock()

            self._timestamps.append(now)
            self._last_request_time = now
            return waited

    def get_request_count(self) -> int:
        """Requests recorded in the current window."""
        self._prune(self._clock())
        return len(self._timestamps)

    def get_remaining_capacity(self) -> int:
        """Requests still allowed in the current window."""
        return max(0, self.config.max_requests_per_hour - self.get_request_count())

    def reset(self) -> None:
        """Forget all recorded requests."""
        self._timestamps.clear()
        self._last_request_time = None


class RateLimiterRegistry:
    """
    One limiter per platform, created on first use.

    Built once by the pipeline root and shared by every task, so each
    platform has exactly one limiter per process.
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, PlatformLimitConfig]] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self._overrides = {key.upper(): value for key, value in (overrides or {}).items()}
        self._clock = clock
        self._sleep = sleep
        self._limiters: Dict[Platform, RateLimiter] = {}

    @classmethod
    def from_config(cls, config: ScraperConfig) -> "RateLimiterRegistry":
        return cls(overrides=config.platform_limits)

    def config_for(self, platform: Platform) -> RateLimiterConfig:
        override = self._overrides.get(platform.value)
        if override is not None:
            return RateLimiterConfig(
                min_delay=override.min_delay,
                max_delay=override.max_delay,
                max_requests_per_hour=override.max_requests_per_hour,
            )
        return PLATFORM_LIMITS.get(platform, RateLimiterConfig())

    def get(self, platform: Platform) -> RateLimiter:
        limiter = self._limiters.get(platform)
        if limiter is None:
            limiter = RateLimiter(
                self.config_for(platform),
                name=platform.value,
                clock=self._clock,
                sleep=self._sleep,
            )
            self._limiters[platform] = limiter
        return limiter

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Request count and remaining capacity for every limiter in use."""
        return {
            platform.value: {
                "request_count": limiter.get_request_count(),
                "remaining_capacity": limiter.get_remaining_capacity(),
            }
            for platform, limiter in self._limiters.items()
        }
