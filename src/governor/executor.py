"""
Rate-limited executor.

Public facade that composes the quota tracker, the throttle queue and the
error classifier:

    acquire quota -> dispatch on the provider lane -> record outcome
                  -> on failure classify and back off (execute_with_retry)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from governor.clock import Clock
from governor.config import Settings, get_settings
from governor.errors.classifier import ErrorClassifier
from governor.errors.models import ClassifiedError, NotConfiguredError
from governor.http.client import ThrottledHttpClient
from governor.quota.models import RateLimitConfig, RateLimitStatus
from governor.quota.tracker import DEFAULT_OPERATION, QuotaTracker, resource_key
from governor.retry import DEFAULT_RETRY_POLICY, RetryPolicy, policy_for
from governor.throttle.queue import ThrottleQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]

BATCH_OPERATION = "batch"


@dataclass
class BatchResult(Generic[T]):
    """Outcome of one operation in ``execute_batch``."""

    success: bool
    result: T | None = None
    error: Exception | None = None

    def to_dict(self) -> dict[str, Any]:
        error: Any = None
        if isinstance(self.error, ClassifiedError):
            error = self.error.to_dict()
        elif self.error is not None:
            error = str(self.error)
        return {"success": self.success, "result": self.result, "error": error}


class RateLimitedExecutor:
    """
    Runs provider calls under quota, spacing and retry governance.

    One instance is created by the process entry point and shared by every
    integration; it owns all quota and throttle state.
    """

    def __init__(
        self,
        tracker: QuotaTracker | None = None,
        queue: ThrottleQueue | None = None,
        classifier: ErrorClassifier | None = None,
        retry_policies: dict[str, RetryPolicy] | None = None,
        default_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            tracker: Quota tracker
            queue: Throttle queue
            classifier: Error classifier
            retry_policies: Per-provider retry policies (defaults to the built-in table)
            default_policy: Policy for providers without their own
            clock: Time source for backoff waits
            rng: Random source for backoff jitter
        """
        self._clock = clock or Clock()
        self._tracker = tracker or QuotaTracker(clock=self._clock)
        self._queue = queue or ThrottleQueue(clock=self._clock)
        self._classifier = classifier or ErrorClassifier(clock=self._clock)
        self._retry_policies: dict[str, RetryPolicy] | None = (
            dict(retry_policies) if retry_policies is not None else None
        )
        self._overrides: dict[str, RetryPolicy] = {}
        self._default_policy = default_policy
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, clock: Clock | None = None
    ) -> "RateLimitedExecutor":
        """Build an executor with all components configured from settings."""
        settings = settings or get_settings()
        clock = clock or Clock()
        return cls(
            tracker=QuotaTracker(
                clock=clock,
                burst_refill_interval_ms=settings.burst_refill_interval_ms,
                sweep_interval_seconds=settings.bucket_sweep_interval_seconds,
                idle_retention_seconds=settings.bucket_idle_retention_seconds,
            ),
            queue=ThrottleQueue(
                spacing_ms=settings.throttle_spacing_ms,
                max_attempts=settings.throttle_max_attempts,
                max_delay_ms=settings.throttle_max_delay_ms,
                jitter_ms=settings.throttle_jitter_ms,
                clock=clock,
            ),
            classifier=ErrorClassifier(clock=clock, recent_limit=settings.recent_errors_limit),
            clock=clock,
        )

    @property
    def tracker(self) -> QuotaTracker:
        return self._tracker

    @property
    def queue(self) -> ThrottleQueue:
        return self._queue

    @property
    def classifier(self) -> ErrorClassifier:
        return self._classifier

    def http_client(
        self,
        base_url: str | None = None,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> ThrottledHttpClient:
        """RapidAPI client from settings, dispatching on this executor's queue."""
        return ThrottledHttpClient.from_settings(
            self._queue, settings=settings, base_url=base_url, **kwargs
        )

    # --- execution ---

    async def execute(
        self,
        provider: str,
        fn: Operation[T],
        operation: str = DEFAULT_OPERATION,
    ) -> T:
        """
        Run one call under quota and spacing, without classified retries.

        Waits for quota admission, dispatches ``fn`` on the provider's lane
        (which retries network errors and 429/5xx results) and records the
        outcome. The final raw failure propagates unchanged.

        Args:
            provider: Provider name (quota config and lane)
            fn: Zero-argument coroutine function performing the call
            operation: Operation name (quota bucket)

        Returns:
            Result of ``fn``
        """
        status = await self._tracker.acquire(provider, operation)
        success = False
        try:
            result = await self._queue.dispatch(
                provider, fn, label=resource_key(provider, operation)
            )
            success = True
            return result
        finally:
            self._tracker.complete(status.entry, success)

    async def execute_with_retry(
        self,
        provider: str,
        fn: Operation[T],
        operation: str = DEFAULT_OPERATION,
        policy: RetryPolicy | dict[str, Any] | None = None,
    ) -> T:
        """
        Run a call with classification and exponential backoff.

        Args:
            provider: Provider name
            fn: Zero-argument coroutine function performing the call
            operation: Operation name
            policy: Full policy or partial override of the provider's policy

        Returns:
            Result of ``fn``

        Raises:
            ClassifiedError: Non-retryable failure, or the last failure once
                retries are exhausted
            NotConfiguredError: Missing configuration, raised before any call
        """
        effective = self.get_retry_policy(provider).merged(policy)
        total = effective.max_retries + 1
        attempt = 0

        while True:
            logger.debug(f"[{provider}] Executing {operation} (attempt {attempt + 1}/{total})")
            try:
                result = await self.execute(provider, fn, operation)
            except NotConfiguredError:
                raise
            except Exception as e:
                classified = self._classifier.handle(
                    provider, operation, e, {"attempt": attempt + 1}
                )
                if not classified.retryable or attempt >= effective.max_retries:
                    logger.error(
                        f"[{provider}] {operation} failed after {attempt + 1} attempt(s): "
                        f"{classified.kind.value}"
                    )
                    raise classified from e

                delay = max(
                    classified.retry_after_ms or 0,
                    effective.calculate_delay(attempt, self._rng),
                )
                logger.info(
                    f"[{provider}] {operation} failed ({classified.kind.value}), "
                    f"retrying in {delay:.0f}ms"
                )
                await self._clock.sleep(delay)
                attempt += 1
                continue

            if attempt > 0:
                logger.info(f"[{provider}] {operation} succeeded after {attempt} retries")
            return result

    async def execute_batch(
        self,
        provider: str,
        operations: Sequence[Operation[T]],
        concurrency: int = 1,
        operation: str = BATCH_OPERATION,
    ) -> list[BatchResult[T]]:
        """
        Run operations in chunks of ``concurrency``.

        Chunks run one after another; operations inside a chunk run
        concurrently through ``execute``. A failing operation does not stop
        the batch.

        Returns:
            One BatchResult per operation, in input order
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        results: list[BatchResult[T]] = []
        for start in range(0, len(operations), concurrency):
            chunk = operations[start : start + concurrency]
            outcomes = await asyncio.gather(
                *(self.execute(provider, fn, operation) for fn in chunk),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    results.append(BatchResult(success=False, error=outcome))
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results.append(BatchResult(success=True, result=outcome))
        return results

    async def execute_layered(
        self,
        providers: Sequence[str],
        fn: Operation[T],
        operation: str = DEFAULT_OPERATION,
    ) -> T:
        """
        Run a call under several providers' limits at once.

        The first provider is the outermost layer, e.g.
        ``["rapidapi-global", "instagram"]`` enforces the shared quota
        before the provider-specific one.
        """
        if not providers:
            raise ValueError("at least one provider is required")

        async def layer(index: int) -> T:
            if index == len(providers):
                return await fn()
            return await self.execute(providers[index], lambda: layer(index + 1), operation)

        return await layer(0)

    # --- administration ---

    async def check_rate_limit(
        self, provider: str, operation: str = DEFAULT_OPERATION
    ) -> RateLimitStatus:
        """Read-only admission check."""
        return await self._tracker.check_admission(provider, operation)

    async def get_status(self, provider: str, operation: str = DEFAULT_OPERATION) -> dict[str, Any]:
        return await self._tracker.get_status(provider, operation)

    async def get_all_status(self) -> list[dict[str, Any]]:
        return await self._tracker.get_all_status()

    def set_config(self, provider: str, **overrides: Any) -> RateLimitConfig:
        return self._tracker.set_config(provider, **overrides)

    def get_config(self, provider: str) -> RateLimitConfig:
        return self._tracker.get_config(provider)

    def reset(self, provider: str, operation: str | None = None) -> int:
        return self._tracker.reset(provider, operation)

    def get_retry_policy(self, provider: str) -> RetryPolicy:
        override = self._overrides.get(provider)
        if override is not None:
            return override
        return policy_for(provider, self._retry_policies, self._default_policy)

    def set_retry_policy(
        self, provider: str, policy: RetryPolicy | dict[str, Any]
    ) -> RetryPolicy:
        """Replace or partially override a provider's retry policy."""
        updated = self.get_retry_policy(provider).merged(policy)
        self._overrides[provider] = updated
        logger.info(f"Retry policy for {provider} set to {updated}")
        return updated

    def get_error_stats(self) -> dict[str, Any]:
        return self._classifier.get_error_stats()

    def clear_error_stats(self) -> None:
        self._classifier.clear_stats()

    # --- lifecycle ---

    async def start(self) -> None:
        await self._tracker.start()
        logger.info("Rate-limited executor started")

    async def close(self) -> None:
        await self._tracker.close()
        logger.info("Rate-limited executor closed")

    async def __aenter__(self) -> "RateLimitedExecutor":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
