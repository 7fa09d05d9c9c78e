"""
Multi-window quota tracking with burst tokens.

Each resource key (``provider:operation``) owns a bucket holding a log of
request timestamps and a refillable burst-token count. Admission checks
count log entries inside every configured trailing window.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from governor.clock import Clock
from governor.quota.models import (
    DAY_MS,
    DEFAULT_PROVIDER_CONFIGS,
    FALLBACK_PROVIDER,
    MINUTE_MS,
    Bucket,
    DenialReason,
    QuotaWindow,
    RateLimitConfig,
    RateLimitStatus,
    RequestEntry,
    WindowType,
)

logger = logging.getLogger(__name__)

DEFAULT_OPERATION = "default"
CLEANUP_INTERVAL_MS = MINUTE_MS
LOG_RETENTION_MS = DAY_MS


def resource_key(provider: str, operation: str = DEFAULT_OPERATION) -> str:
    return f"{provider}:{operation}"


class QuotaTracker:
    """
    Per-resource sliding-window quota tracker.

    All reads and writes of a bucket happen inside that bucket's lock, so
    two concurrent ``consume`` calls can never both take the last unit of
    capacity.
    """

    def __init__(
        self,
        configs: dict[str, RateLimitConfig] | None = None,
        clock: Clock | None = None,
        burst_refill_interval_ms: float = 1000.0,
        sweep_interval_seconds: float = 60.0,
        idle_retention_seconds: float = 300.0,
    ) -> None:
        """
        Initialize the tracker.

        Args:
            configs: Per-provider configs (defaults to the built-in table)
            clock: Time source
            burst_refill_interval_ms: One burst token is restored per interval
            sweep_interval_seconds: How often the background sweep runs
            idle_retention_seconds: Idle time after which empty buckets are dropped
        """
        self._configs: dict[str, RateLimitConfig] = dict(
            DEFAULT_PROVIDER_CONFIGS if configs is None else configs
        )
        self._clock = clock or Clock()
        self._refill_interval = burst_refill_interval_ms
        self._sweep_interval = sweep_interval_seconds
        self._idle_retention_ms = idle_retention_seconds * 1000
        self._buckets: dict[str, Bucket] = {}
        self._sweep_task: asyncio.Task | None = None

    # --- configuration ---

    def get_config(self, provider: str) -> RateLimitConfig:
        """Config for a provider, falling back to the global default."""
        config = self._configs.get(provider)
        if config is not None:
            return config
        return self._configs.get(FALLBACK_PROVIDER) or RateLimitConfig()

    def set_config(self, provider: str, **overrides: Any) -> RateLimitConfig:
        """
        Merge a partial override into a provider's config.

        Existing buckets are kept; only future checks see the new limits.
        """
        config = self.get_config(provider).merged(**overrides)
        self._configs[provider] = config
        logger.info(f"Rate limit config for {provider} set to {config}")
        return config

    @property
    def providers(self) -> list[str]:
        return sorted(self._configs)

    # --- bucket management ---

    def _bucket(self, key: str, config: RateLimitConfig, now: float) -> Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = Bucket(
                burst_tokens=config.burst_limit or 0,
                last_burst_refill=now,
                last_cleanup=now,
                last_activity=now,
            )
            self._buckets[key] = bucket
        return bucket

    def refill_burst(self, bucket: Bucket, config: RateLimitConfig, now: float) -> None:
        """Restore one token per whole elapsed refill interval, capped at the limit."""
        if not config.burst_limit:
            return
        if bucket.burst_tokens >= config.burst_limit:
            bucket.burst_tokens = config.burst_limit
            bucket.last_burst_refill = now
            return

        elapsed = now - bucket.last_burst_refill
        if elapsed < self._refill_interval:
            return

        intervals = int(elapsed // self._refill_interval)
        bucket.burst_tokens = min(config.burst_limit, bucket.burst_tokens + intervals)
        if bucket.burst_tokens >= config.burst_limit:
            bucket.last_burst_refill = now
        else:
            bucket.last_burst_refill += intervals * self._refill_interval

    def cleanup(self, bucket: Bucket, now: float) -> None:
        """Drop log entries older than a day, at most once per minute."""
        if now - bucket.last_cleanup < CLEANUP_INTERVAL_MS:
            return
        cutoff = now - LOG_RETENTION_MS
        bucket.request_log = [e for e in bucket.request_log if e.timestamp > cutoff]
        bucket.last_cleanup = now

    # --- admission ---

    def _quotas(
        self, bucket: Bucket, config: RateLimitConfig, now: float
    ) -> list[QuotaWindow]:
        """Compute the remaining capacity of every configured window."""
        result = []
        for window_type, duration, limit in config.windows():
            cutoff = now - duration
            counted = [e.timestamp for e in bucket.request_log if e.timestamp > cutoff]
            oldest = min(counted) if counted else None
            reset_time = oldest + duration if oldest is not None else now + duration
            window = QuotaWindow(
                window_type=window_type,
                limit=limit,
                remaining=max(0, limit - len(counted)),
                reset_time=reset_time,
            )
            result.append(window)
        return result

    def _evaluate(
        self, bucket: Bucket, config: RateLimitConfig, now: float
    ) -> RateLimitStatus:
        self.refill_burst(bucket, config, now)
        self.cleanup(bucket, now)

        quotas = self._quotas(bucket, config, now)
        uses_burst = bool(config.burst_limit)

        exhausted = [
            window
            for window in quotas
            if window.remaining <= 0
            and not (uses_burst and window.window_type == WindowType.SECOND)
        ]
        if exhausted:
            wait = max(window.reset_time - now for window in exhausted)
            names = ", ".join(window.window_type.value for window in exhausted)
            return RateLimitStatus(
                allowed=False,
                quotas=quotas,
                retry_after_ms=max(wait, config.retry_after_default_ms),
                reason=f"Rate limit exceeded for {names} window",
                denial=DenialReason.WINDOW_EXCEEDED,
            )

        if uses_burst and bucket.burst_tokens <= 0:
            next_refill = bucket.last_burst_refill + self._refill_interval
            return RateLimitStatus(
                allowed=False,
                quotas=quotas,
                retry_after_ms=max(next_refill - now, 1.0),
                reason="Burst limit exceeded",
                denial=DenialReason.BURST_EXHAUSTED,
            )

        return RateLimitStatus(allowed=True, quotas=quotas)

    def _append(self, bucket: Bucket, config: RateLimitConfig, entry: RequestEntry) -> None:
        bucket.request_log.append(entry)
        bucket.last_activity = entry.timestamp
        if config.burst_limit and bucket.burst_tokens > 0:
            bucket.burst_tokens -= 1

    async def check_admission(
        self, provider: str, operation: str = DEFAULT_OPERATION
    ) -> RateLimitStatus:
        """
        Decide whether a call is allowed now, without recording it.

        Args:
            provider: Provider name (selects the config)
            operation: Operation name (selects the bucket)

        Returns:
            RateLimitStatus with per-window quotas and, if denied, the wait
        """
        config = self.get_config(provider)
        key = resource_key(provider, operation)
        now = self._clock.now()
        bucket = self._bucket(key, config, now)
        async with bucket.lock:
            return self._evaluate(bucket, config, self._clock.now())

    async def consume(
        self, provider: str, operation: str = DEFAULT_OPERATION
    ) -> RateLimitStatus:
        """
        Check admission and, if allowed, reserve the slot atomically.

        The reserved entry is returned on the status so the caller can
        stamp its outcome with ``complete``.
        """
        config = self.get_config(provider)
        key = resource_key(provider, operation)
        bucket = self._bucket(key, config, self._clock.now())
        async with bucket.lock:
            now = self._clock.now()
            status = self._evaluate(bucket, config, now)
            if status.allowed:
                entry = RequestEntry(timestamp=now)
                self._append(bucket, config, entry)
                status.entry = entry
            return status

    async def acquire(
        self, provider: str, operation: str = DEFAULT_OPERATION
    ) -> RateLimitStatus:
        """Wait until a slot is available, then reserve it."""
        while True:
            status = await self.consume(provider, operation)
            if status.allowed:
                return status
            wait = max(status.retry_after_ms or 0, 1.0)
            logger.info(
                f"Waiting {wait:.0f}ms for {resource_key(provider, operation)} - {status.reason}"
            )
            await self._clock.sleep(wait)

    def complete(self, entry: RequestEntry | None, success: bool) -> None:
        """Stamp the outcome of a reserved request."""
        if entry is not None:
            entry.success = success

    async def record_request(
        self,
        provider: str,
        operation: str = DEFAULT_OPERATION,
        success: bool = True,
    ) -> None:
        """Append a completed request to the log and spend a burst token."""
        config = self.get_config(provider)
        key = resource_key(provider, operation)
        bucket = self._bucket(key, config, self._clock.now())
        async with bucket.lock:
            self._append(bucket, config, RequestEntry(timestamp=self._clock.now(), success=success))

    # --- introspection ---

    async def get_status(
        self, provider: str, operation: str = DEFAULT_OPERATION
    ) -> dict[str, Any]:
        """Admission decision plus request count, success rate and config."""
        config = self.get_config(provider)
        bucket = self._buckets.get(resource_key(provider, operation))
        if bucket is None:
            return {
                "provider": provider,
                "operation": operation,
                "status": RateLimitStatus(allowed=True).to_dict(),
                "request_count": 0,
                "success_rate": 1.0,
                "config": config.to_dict(),
            }

        status = await self.check_admission(provider, operation)
        finished = [e for e in bucket.request_log if e.success is not None]
        succeeded = sum(1 for e in finished if e.success)
        return {
            "provider": provider,
            "operation": operation,
            "status": status.to_dict(),
            "request_count": len(bucket.request_log),
            "success_rate": succeeded / len(finished) if finished else 1.0,
            "burst_tokens": bucket.burst_tokens,
            "config": config.to_dict(),
        }

    async def get_all_status(self) -> list[dict[str, Any]]:
        results = []
        for key in list(self._buckets):
            provider, _, operation = key.partition(":")
            results.append(await self.get_status(provider, operation))
        return results

    def reset(self, provider: str, operation: str | None = None) -> int:
        """
        Drop buckets for a provider.

        Args:
            provider: Provider name
            operation: Single operation to reset, or None for all of them

        Returns:
            Number of buckets removed
        """
        if operation is not None:
            keys = [resource_key(provider, operation)]
        else:
            keys = [k for k in self._buckets if k.partition(":")[0] == provider]
        removed = sum(1 for key in keys if self._buckets.pop(key, None) is not None)
        logger.info(f"Reset {removed} rate limit bucket(s) for {provider}")
        return removed

    # --- background sweep ---

    async def sweep(self) -> int:
        """Clean every bucket and remove empty ones idle past retention."""
        now = self._clock.now()
        removed = 0
        for key, bucket in list(self._buckets.items()):
            async with bucket.lock:
                self.cleanup(bucket, now)
                idle = now - bucket.last_activity
                if not bucket.request_log and idle > self._idle_retention_ms:
                    if self._buckets.get(key) is bucket:
                        del self._buckets[key]
                        removed += 1
        if removed:
            logger.debug(f"Swept {removed} idle rate limit buckets")
        return removed

    async def start(self) -> None:
        """Start the periodic sweep task."""
        if self._sweep_task is not None:
            return

        async def sweep_loop():
            while True:
                try:
                    await asyncio.sleep(self._sweep_interval)
                    await self.sweep()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(f"Rate limit sweep error: {e}")

        self._sweep_task = asyncio.create_task(sweep_loop())

    async def close(self) -> None:
        """Stop the sweep task and drop all buckets."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self._buckets.clear()

    def bucket_count(self) -> int:
        return len(self._buckets)
