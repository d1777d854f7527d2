"""Pacing and retry helpers for calls to external services."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from random import SystemRandom
from typing import TypeVar

logger = logging.getLogger("pipelines.rate_limit")

_T = TypeVar("_T")
SleepFn = Callable[[float], None]
ClockFn = Callable[[], float]


def exponential_backoff(
    *,
    max_attempts: int = 5,
    base_delay: float = 1.0,
    factor: float = 2.0,
    max_delay: float = 30.0,
    jitter: float = 0.25,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds) pairs for exponential backoff with jitter."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    if factor < 1:
        raise ValueError("factor must be >= 1")
    if max_delay < 0:
        raise ValueError("max_delay must be >= 0")
    if jitter < 0:
        raise ValueError("jitter must be >= 0")

    rng = SystemRandom()
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        jitter_offset = rng.uniform(0, delay * jitter) if jitter > 0 and delay > 0 else 0.0
        yield attempt, min(delay + jitter_offset, max_delay)
        delay = min(delay * factor, max_delay)


class RateLimiter:
    """Serializes calls to one dependency and spaces their start times.

    Only one caller holds the limiter at a time; a caller entering less than
    ``min_interval_seconds`` after the previous call started waits out the gap.
    """

    def __init__(
        self,
        min_interval_seconds: float,
        *,
        name: str = "default",
        clock: ClockFn | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")
        self.name = name
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._last_started: float | None = None

    def __enter__(self) -> "RateLimiter":
        self._lock.acquire()
        try:
            self._wait_turn()
        except BaseException:
            self._lock.release()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._lock.release()

    def call(self, func: Callable[[], _T]) -> _T:
        with self:
            return func()

    def _wait_turn(self) -> None:
        now = self._clock()
        if self._last_started is not None:
            remaining = self._last_started + self.min_interval_seconds - now
            if remaining > 0:
                self._sleep(remaining)
                now = self._clock()
        self._last_started = now


def call_with_retry(
    func: Callable[[], _T],
    *,
    retry_on: tuple[type[BaseException], ...],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    sleep: SleepFn | None = None,
    provider: str = "external",
) -> _T:
    """Invoke ``func`` and retry on transient errors with exponential backoff."""
    sleeper = sleep or time.sleep
    for attempt, delay in exponential_backoff(max_attempts=max_attempts, base_delay=base_delay):
        try:
            return func()
        except retry_on as exc:
            if attempt >= max_attempts:
                raise
            logger.warning(
                "provider.retry",
                extra={
                    "provider": provider,
                    "code": getattr(exc, "code", type(exc).__name__),
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_ms": round(delay * 1000, 2),
                },
            )
            sleeper(delay)
    raise RuntimeError(f"Unable to complete {provider} call after retries.")  # pragma: no cover
