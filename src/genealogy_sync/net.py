"""Request pacing and circuit breaking for provider calls."""
from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from collections.abc import Awaitable, Callable

import structlog

from .models.provider import Provider, RateLimitWindow

logger = structlog.get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


def jittered_delay(window: RateLimitWindow, rng: random.Random | None = None) -> float:
    """Seconds to wait, uniform within the window, so requests have no fixed cadence."""
    lo, hi = window.bounds_seconds()
    return (rng or random).uniform(lo, hi)


class ProviderPacer:
    """Spaces consecutive requests to one provider by a jittered delay."""

    def __init__(self, window: RateLimitWindow, sleep: Sleeper | None = None, rng: random.Random | None = None) -> None:
        self.window = window
        self._sleep = sleep or asyncio.sleep
        self._rng = rng
        self._lock = asyncio.Lock()
        self._last_call: float | None = None

    async def wait(self) -> float:
        """Sleep until the next request may go out; returns the delay applied."""
        async with self._lock:
            delay = 0.0
            if self._last_call is not None:
                target = jittered_delay(self.window, self._rng)
                delay = max(0.0, target - (time.monotonic() - self._last_call))
                if delay > 0:
                    await self._sleep(delay)
            self._last_call = time.monotonic()
            return delay


class CircuitBreaker:
    """Stops calling a provider after repeated failures.

    ``max_failures`` failures inside ``window_seconds`` open the breaker; after
    ``cooldown_seconds`` one trial call is let through (half-open) and a
    success closes it again.
    """

    def __init__(
        self,
        max_failures: int = 5,
        window_seconds: float = 60.0,
        cooldown_seconds: float = 300.0,
        name: str = "provider",
    ) -> None:
        self.name = name
        self.max_failures = max_failures
        self.window_seconds = window_seconds
        self.cooldown_seconds = cooldown_seconds
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None

    @property
    def is_open(self) -> bool:
        return self._opened_at is not None

    def _prune(self, now: float) -> None:
        while self._failures and self._failures[0] < now - self.window_seconds:
            self._failures.popleft()

    def allow_call(self) -> bool:
        now = time.monotonic()
        if self._opened_at is not None:
            if now - self._opened_at < self.cooldown_seconds:
                return False
            logger.info("net.breaker_half_open", breaker=self.name)
            self._opened_at = None
            self._failures.clear()
        self._prune(now)
        return True

    def record_success(self) -> None:
        if self._opened_at is not None or self._failures:
            logger.debug("net.breaker_reset", breaker=self.name)
        self._failures.clear()
        self._opened_at = None

    def record_failure(self) -> None:
        now = time.monotonic()
        self._prune(now)
        self._failures.append(now)
        if len(self._failures) >= self.max_failures and self._opened_at is None:
            self._opened_at = now
            logger.warning(
                "net.breaker_open",
                breaker=self.name,
                failures=len(self._failures),
                cooldown_seconds=self.cooldown_seconds,
            )


class NetGuards:
    """Per-provider pacers and circuit breakers shared across fetchers."""

    def __init__(self) -> None:
        self._pacers: dict[Provider, ProviderPacer] = {}
        self._breakers: dict[Provider, CircuitBreaker] = {}

    def get_pacer(self, provider: Provider, window: RateLimitWindow) -> ProviderPacer:
        if provider not in self._pacers:
            self._pacers[provider] = ProviderPacer(window)
        return self._pacers[provider]

    def get_breaker(
        self,
        provider: Provider,
        max_failures: int = 5,
        window_seconds: float = 60.0,
        cooldown_seconds: float = 300.0,
    ) -> CircuitBreaker:
        if provider not in self._breakers:
            self._breakers[provider] = CircuitBreaker(
                max_failures, window_seconds, cooldown_seconds, name=Provider(provider).value
            )
        return self._breakers[provider]


GUARDS = NetGuards()
