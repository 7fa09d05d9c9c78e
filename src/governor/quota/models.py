"""
Quota data model.

Per-provider limit configuration, the per-key bucket state owned by the
tracker, and the read-only views produced at check time.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any

FALLBACK_PROVIDER = "rapidapi-global"

SECOND_MS = 1000.0
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


class WindowType(str, Enum):
    """Trailing time window over which requests are counted."""

    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"


class DenialReason(str, Enum):
    """Why an admission check was denied."""

    WINDOW_EXCEEDED = "window_exceeded"
    BURST_EXHAUSTED = "burst_exhausted"


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Rate limit configuration for one provider.

    ``per_second`` may be fractional (0.5 means one request every two
    seconds). A limit of 0 or None disables that window.
    """

    per_second: float = 1
    per_minute: int = 50
    per_hour: int | None = None
    per_day: int | None = None
    burst_limit: int | None = None
    retry_after_default_ms: float = 1000

    def merged(self, **overrides: Any) -> RateLimitConfig:
        """Return a copy with the given non-None fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown rate limit fields: {', '.join(sorted(unknown))}")
        values = asdict(self)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RateLimitConfig(**values)

    def windows(self) -> list[tuple[WindowType, float, int]]:
        """
        Active windows as ``(type, duration_ms, limit)``.

        A fractional per-second rate is expressed as a limit of one over a
        proportionally longer window.
        """
        result: list[tuple[WindowType, float, int]] = []
        if self.per_second and self.per_second > 0:
            if self.per_second >= 1:
                result.append((WindowType.SECOND, SECOND_MS, int(self.per_second)))
            else:
                result.append((WindowType.SECOND, SECOND_MS / self.per_second, 1))
        if self.per_minute:
            result.append((WindowType.MINUTE, MINUTE_MS, self.per_minute))
        if self.per_hour:
            result.append((WindowType.HOUR, HOUR_MS, self.per_hour))
        if self.per_day:
            result.append((WindowType.DAY, DAY_MS, self.per_day))
        return result

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_PROVIDER_CONFIGS: dict[str, RateLimitConfig] = {
    "rapidapi-global": RateLimitConfig(
        per_second=1,
        per_minute=50,
        per_hour=1000,
        per_day=10000,
        burst_limit=3,
        retry_after_default_ms=2000,
    ),
    "tiktok": RateLimitConfig(
        per_second=1,
        per_minute=30,
        per_hour=500,
        burst_limit=2,
        retry_after_default_ms=3000,
    ),
    "instagram": RateLimitConfig(
        per_second=0.5,
        per_minute=25,
        per_hour=300,
        burst_limit=2,
        retry_after_default_ms=4000,
    ),
    "youtube": RateLimitConfig(
        per_second=2,
        per_minute=100,
        per_hour=10000,
        burst_limit=5,
        retry_after_default_ms=1000,
    ),
    "apify": RateLimitConfig(
        per_second=0.1,
        per_minute=5,
        per_hour=100,
        burst_limit=1,
        retry_after_default_ms=10000,
    ),
}


def _to_datetime(ms: float) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


@dataclass
class QuotaWindow:
    """Read-only view of one window, computed at check time."""

    window_type: WindowType
    limit: int
    remaining: int
    reset_time: float
    """Epoch ms at which the oldest counted request leaves the window."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_type": self.window_type.value,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_time": _to_datetime(self.reset_time).isoformat(),
        }


@dataclass
class RequestEntry:
    """One logged request. ``success`` is None while the call is in flight."""

    timestamp: float
    success: bool | None = None


@dataclass
class RateLimitStatus:
    """Result of an admission check."""

    allowed: bool
    """Whether the request is allowed."""

    quotas: list[QuotaWindow] = field(default_factory=list)
    """Per-window remaining capacity."""

    retry_after_ms: float | None = None
    """Milliseconds to wait before trying again (if denied)."""

    reason: str | None = None
    """Human-readable denial reason."""

    denial: DenialReason | None = None

    entry: RequestEntry | None = field(default=None, repr=False, compare=False)
    """Entry reserved by ``QuotaTracker.consume`` when allowed."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "quotas": [q.to_dict() for q in self.quotas],
            "retry_after_ms": self.retry_after_ms,
            "reason": self.reason,
            "denial": self.denial.value if self.denial else None,
        }


@dataclass
class Bucket:
    """Mutable quota state for one resource key. Owned by the tracker."""

    burst_tokens: int
    last_burst_refill: float
    last_cleanup: float
    last_activity: float
    request_log: list[RequestEntry] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
