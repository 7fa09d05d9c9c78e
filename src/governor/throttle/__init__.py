"""Serialized, spaced dispatch per provider key."""

from governor.headers import parse_retry_after
from governor.throttle.queue import NETWORK_ERRORS, Lane, ThrottleQueue, is_throttling_status

__all__ = [
    "NETWORK_ERRORS",
    "Lane",
    "ThrottleQueue",
    "is_throttling_status",
    "parse_retry_after",
]
