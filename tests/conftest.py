"""Pytest configuration and fixtures."""

import asyncio
from typing import Any

import pytest

from governor.clock import Clock
from governor.errors.classifier import ErrorClassifier
from governor.executor import RateLimitedExecutor
from governor.quota.models import RateLimitConfig
from governor.quota.tracker import QuotaTracker
from governor.retry import RetryPolicy
from governor.throttle.queue import ThrottleQueue

START_MS = 1_700_000_000_000.0


class FakeClock(Clock):
    """Virtual clock: ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = START_MS) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, ms: float) -> None:
        self.current += ms

    async def sleep(self, ms: float) -> None:
        self.sleeps.append(ms)
        if ms > 0:
            self.current += ms
        await asyncio.sleep(0)


class FakeResponse:
    """Minimal response-like object with a status and headers."""

    def __init__(self, status_code: int, headers: dict[str, str] | None = None, body: Any = None):
        self.status_code = status_code
        self.headers = headers or {}
        self.body = body


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> QuotaTracker:
    """Tracker with a single roomy provider and the plain default as fallback."""
    return QuotaTracker(
        configs={"svc": RateLimitConfig(per_second=100, per_minute=1000)},
        clock=clock,
    )


@pytest.fixture
def queue(clock: FakeClock) -> ThrottleQueue:
    return ThrottleQueue(spacing_ms=2000, max_attempts=5, jitter_ms=0, clock=clock)


@pytest.fixture
def classifier(clock: FakeClock) -> ErrorClassifier:
    return ErrorClassifier(clock=clock, recent_limit=5)


@pytest.fixture
def executor(clock: FakeClock, tracker: QuotaTracker, classifier: ErrorClassifier) -> RateLimitedExecutor:
    """Executor without lane spacing or in-queue retries, with jitter-free retry policies."""
    return RateLimitedExecutor(
        tracker=tracker,
        queue=ThrottleQueue(spacing_ms=0, max_attempts=1, jitter_ms=0, clock=clock),
        classifier=classifier,
        retry_policies={},
        default_policy=RetryPolicy(
            max_retries=3,
            base_delay_ms=1000,
            max_delay_ms=30000,
            backoff_multiplier=2,
            jitter_enabled=False,
        ),
        clock=clock,
    )
