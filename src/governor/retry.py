"""Retry policies with exponential backoff for provider calls."""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from governor.errors.rules import provider_family

JITTER_RATIO = 0.1


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        base_delay_ms: Delay before the first retry
        max_delay_ms: Upper bound of the exponential delay
        backoff_multiplier: Growth factor per retry
        jitter_enabled: Add up to 10% random extra delay
    """

    max_retries: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2.0
    jitter_enabled: bool = True

    def calculate_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """
        Backoff delay before a retry.

        Uses ``min(base_delay_ms * backoff_multiplier ** attempt, max_delay_ms)``
        plus optional jitter.

        Args:
            attempt: Retry number, 0 for the first retry
            rng: Random source for jitter

        Returns:
            Delay in milliseconds
        """
        delay = min(self.base_delay_ms * (self.backoff_multiplier**attempt), self.max_delay_ms)
        if self.jitter_enabled:
            delay += delay * JITTER_RATIO * (rng or random).random()
        return round(delay)

    def merged(self, overrides: RetryPolicy | dict[str, Any] | None) -> RetryPolicy:
        """Apply a full policy or a partial dict of fields on top of this one."""
        if overrides is None:
            return self
        if isinstance(overrides, RetryPolicy):
            return overrides
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown retry policy fields: {', '.join(sorted(unknown))}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_RETRY_POLICY = RetryPolicy()

DEFAULT_RETRY_POLICIES: dict[str, RetryPolicy] = {
    "rapidapi": RetryPolicy(
        max_retries=2, base_delay_ms=2000, max_delay_ms=60000, backoff_multiplier=3
    ),
    "apify": RetryPolicy(
        max_retries=1,
        base_delay_ms=5000,
        max_delay_ms=30000,
        backoff_multiplier=2,
        jitter_enabled=False,
    ),
    "tiktok": RetryPolicy(
        max_retries=3, base_delay_ms=3000, max_delay_ms=45000, backoff_multiplier=2.5
    ),
    "instagram": RetryPolicy(
        max_retries=2, base_delay_ms=4000, max_delay_ms=60000, backoff_multiplier=3
    ),
    "youtube": RetryPolicy(
        max_retries=3, base_delay_ms=1000, max_delay_ms=30000, backoff_multiplier=2
    ),
}


def policy_for(
    provider: str,
    policies: dict[str, RetryPolicy] | None = None,
    default: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> RetryPolicy:
    """Policy for a provider, by exact name first and then by family."""
    table = DEFAULT_RETRY_POLICIES if policies is None else policies
    return table.get(provider) or table.get(provider_family(provider)) or default
