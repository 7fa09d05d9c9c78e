"""
Quota tracking for outbound provider calls.

Provides sliding-window request accounting over second, minute, hour and
day windows with a refillable burst-token bucket per resource key.
"""

from governor.quota.models import (
    DEFAULT_PROVIDER_CONFIGS,
    FALLBACK_PROVIDER,
    Bucket,
    DenialReason,
    QuotaWindow,
    RateLimitConfig,
    RateLimitStatus,
    RequestEntry,
    WindowType,
)
from governor.quota.tracker import QuotaTracker, resource_key

__all__ = [
    "DEFAULT_PROVIDER_CONFIGS",
    "FALLBACK_PROVIDER",
    "Bucket",
    "DenialReason",
    "QuotaTracker",
    "QuotaWindow",
    "RateLimitConfig",
    "RateLimitStatus",
    "RequestEntry",
    "WindowType",
    "resource_key",
]
