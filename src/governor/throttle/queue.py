"""
Serialized per-provider dispatch with minimum spacing.

Each provider key gets its own lane: tasks on a lane run one at a time in
submission order, and a lane waits until ``spacing_ms`` has passed since its
previous task completed before starting the next one. Lanes for different
keys never block each other.
"""

from __future__ import annotations

import asyncio
import logging
import random
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import httpx

from governor.clock import Clock
from governor.errors.models import UpstreamStatusError
from governor.headers import header_value, parse_retry_after

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)

# Nesting depth per lane key for the current context. A task scheduled from
# inside a lane queues on that lane's next-level lock instead of the one its
# caller holds.
_lane_depths: ContextVar[Mapping[str, int]] = ContextVar("lane_depths", default={})


def is_throttling_status(status: int) -> bool:
    return status == 429 or status >= 500


def _status_of(result: Any) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(result, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


@dataclass
class Lane:
    """FIFO execution state for one provider key, one lock per nesting level."""

    locks: list[asyncio.Lock] = field(default_factory=lambda: [asyncio.Lock()])
    last_completed_at: float | None = None
    spacing_ms: float | None = None
    # Last error a dispatch on this lane gave up on; enclosing dispatches re-raise it as is.
    exhausted: BaseException | None = None

    def lock_for(self, depth: int) -> asyncio.Lock:
        while len(self.locks) <= depth:
            self.locks.append(asyncio.Lock())
        return self.locks[depth]


class ThrottleQueue:
    """
    Serializes calls per provider key and retries throttled dispatches.

    ``schedule`` only provides ordering and spacing. ``dispatch`` adds a
    bounded retry loop that understands 429/5xx responses, Retry-After
    directives and network failures.
    """

    def __init__(
        self,
        spacing_ms: float = 2000.0,
        max_attempts: int = 5,
        max_delay_ms: float = 30000.0,
        jitter_ms: float = 500.0,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the queue.

        Args:
            spacing_ms: Minimum gap between a completion and the next start
            max_attempts: Total dispatch attempts per task, including the first
            max_delay_ms: Cap of the exponential fallback delay
            jitter_ms: Upper bound of the random delay added to every backoff
            clock: Time source
            rng: Random source for jitter
        """
        self._spacing_ms = spacing_ms
        self._max_attempts = max(1, max_attempts)
        self._max_delay_ms = max_delay_ms
        self._jitter_ms = jitter_ms
        self._clock = clock or Clock()
        self._rng = rng or random.Random()
        self._lanes: dict[str, Lane] = {}

    @property
    def spacing_ms(self) -> float:
        return self._spacing_ms

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def _lane(self, key: str) -> Lane:
        lane = self._lanes.get(key)
        if lane is None:
            lane = Lane()
            self._lanes[key] = lane
        return lane

    def set_spacing(self, key: str, spacing_ms: float | None) -> None:
        """Override the minimum spacing for one key (None restores the default)."""
        self._lane(key).spacing_ms = spacing_ms

    def spacing_for(self, key: str) -> float:
        lane = self._lanes.get(key)
        if lane is not None and lane.spacing_ms is not None:
            return lane.spacing_ms
        return self._spacing_ms

    def last_completed_at(self, key: str) -> float | None:
        lane = self._lanes.get(key)
        return lane.last_completed_at if lane else None

    def is_busy(self, key: str) -> bool:
        lane = self._lanes.get(key)
        return lane is not None and any(lock.locked() for lock in lane.locks)

    async def schedule(
        self,
        key: str,
        task: Callable[[], Awaitable[T]],
        label: str | None = None,
    ) -> T:
        """
        Run ``task`` on the lane for ``key``.

        A task scheduled from inside a task already running on the same lane
        does not wait for its caller. It queues on the lane's next nesting
        level instead, where it is still serialized with its siblings and
        spaced from the lane's previous completion.

        Args:
            key: Provider key selecting the lane
            task: Zero-argument coroutine function
            label: Description used in log messages

        Returns:
            Whatever ``task`` returns; its exceptions propagate unchanged
        """
        depths = _lane_depths.get()
        depth = depths.get(key, 0)
        lane = self._lane(key)
        async with lane.lock_for(depth):
            if lane.last_completed_at is not None:
                wait = lane.last_completed_at + self.spacing_for(key) - self._clock.now()
                if wait > 0:
                    logger.info(f"[{key}] Waiting {wait:.0f}ms before {label or 'request'}")
                    await self._clock.sleep(wait)

            token = _lane_depths.set({**depths, key: depth + 1})
            try:
                return await task()
            finally:
                _lane_depths.reset(token)
                lane.last_completed_at = self._clock.now()

    def backoff_delay(self, attempt: int, retry_after_ms: float | None = None) -> float:
        """
        Delay before the next attempt.

        Args:
            attempt: 1-based number of the attempt that just failed
            retry_after_ms: Upstream-supplied delay, preferred when present

        Returns:
            Delay in milliseconds including jitter
        """
        if retry_after_ms is not None:
            base = retry_after_ms
        else:
            base = min(self._max_delay_ms, self._spacing_ms * (2**attempt))
        jitter = int(self._rng.random() * self._jitter_ms) if self._jitter_ms > 0 else 0
        return base + jitter

    async def dispatch(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        label: str | None = None,
    ) -> T:
        """
        Schedule ``operation`` and retry it while upstream is throttling.

        A result whose status is 429 or 5xx is retried after the delay from
        its Retry-After header (or the exponential fallback). Network errors
        are retried with the fallback delay. Any other exception propagates
        at once, as does an error a nested dispatch on the same lane has
        already given up on.

        Raises:
            UpstreamStatusError: The last attempt still returned a throttling status
        """
        request_label = label or key
        lane = self._lane(key)

        async def run() -> T:
            last_error: BaseException | None = None
            for attempt in range(1, self._max_attempts + 1):
                final = attempt == self._max_attempts
                try:
                    result = await operation()
                except NETWORK_ERRORS as e:
                    if e is lane.exhausted:
                        raise
                    last_error = e
                    if final:
                        break
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        f"[{key}] Network error on {request_label}: {e}. "
                        f"Retrying in {delay:.0f}ms (attempt {attempt}/{self._max_attempts})"
                    )
                    await self._clock.sleep(delay)
                    continue

                status = _status_of(result)
                if status is None or not is_throttling_status(status):
                    return result

                retry_after = parse_retry_after(
                    header_value(result, "retry-after"), self._clock.now()
                )
                last_error = UpstreamStatusError(status, retry_after, result, request_label)
                if final:
                    break
                delay = self.backoff_delay(attempt, retry_after)
                logger.warning(
                    f"[{key}] {status} on {request_label}. "
                    f"Backing off {delay:.0f}ms (attempt {attempt}/{self._max_attempts})"
                )
                await self._clock.sleep(delay)

            logger.error(f"[{key}] {request_label} failed after {self._max_attempts} attempts")
            if last_error is None:
                raise RuntimeError("Unexpected retry loop exit")
            lane.exhausted = last_error
            raise last_error

        return await self.schedule(key, run, request_label)
