"""
Dataclasses for operations API responses.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class QuotaWindow:
    """Remaining capacity of one window."""

    window_type: str
    limit: int
    remaining: int
    reset_time: str

    @classmethod
    def from_dict(cls, data: dict) -> "QuotaWindow":
        return cls(
            window_type=data.get("window_type", ""),
            limit=data.get("limit", 0),
            remaining=data.get("remaining", 0),
            reset_time=data.get("reset_time", ""),
        )


@dataclass
class BucketStatus:
    """Quota state of one resource key."""

    provider: str
    operation: str
    allowed: bool
    request_count: int
    success_rate: float
    quotas: list[QuotaWindow] = field(default_factory=list)
    retry_after_ms: Optional[float] = None
    reason: Optional[str] = None
    burst_tokens: Optional[int] = None
    config: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "BucketStatus":
        status = data.get("status", {})
        return cls(
            provider=data.get("provider", ""),
            operation=data.get("operation", "default"),
            allowed=status.get("allowed", True),
            request_count=data.get("request_count", 0),
            success_rate=data.get("success_rate", 1.0),
            quotas=[QuotaWindow.from_dict(q) for q in status.get("quotas", [])],
            retry_after_ms=status.get("retry_after_ms"),
            reason=status.get("reason"),
            burst_tokens=data.get("burst_tokens"),
            config=data.get("config", {}),
        )


@dataclass
class ErrorStats:
    """Classified error counts."""

    total_errors: int
    errors_by_provider: dict[str, int]
    errors_by_kind: dict[str, int]
    recent_errors: list[dict]

    @classmethod
    def from_dict(cls, data: dict) -> "ErrorStats":
        return cls(
            total_errors=data.get("total_errors", 0),
            errors_by_provider=data.get("errors_by_provider", {}),
            errors_by_kind=data.get("errors_by_kind", {}),
            recent_errors=data.get("recent_errors", []),
        )
