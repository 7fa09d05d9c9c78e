"""
Outbound-call governance.

Quota tracking, serialized throttled dispatch, failure classification and
retry orchestration for calls to external providers.
"""

__version__ = "0.1.0"

from governor.clock import Clock
from governor.errors import ClassifiedError, ErrorClassifier, ErrorKind, NotConfiguredError
from governor.executor import BatchResult, RateLimitedExecutor
from governor.quota import QuotaTracker, RateLimitConfig, RateLimitStatus
from governor.retry import RetryPolicy
from governor.throttle import ThrottleQueue, parse_retry_after

__all__ = [
    "BatchResult",
    "ClassifiedError",
    "Clock",
    "ErrorClassifier",
    "ErrorKind",
    "NotConfiguredError",
    "QuotaTracker",
    "RateLimitConfig",
    "RateLimitStatus",
    "RateLimitedExecutor",
    "RetryPolicy",
    "ThrottleQueue",
    "__version__",
    "parse_retry_after",
]
