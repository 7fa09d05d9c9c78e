"""
Governor API Client
HTTP client for the operations API.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from .models import BucketStatus, ErrorStats


class GovernorClient:
    """
    Python client for the outbound governor operations API.

    Example:
        ```python
        with GovernorClient() as client:
            for bucket in client.list_limits():
                print(bucket.provider, bucket.allowed)

            client.set_limit("instagram", per_minute=10)
            client.reset("instagram")
        ```
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API server URL (default: localhost:8000)
            timeout: Request timeout in seconds
            transport: Custom httpx transport
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> GovernorClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    # =========================================================================
    # Health
    # =========================================================================

    def health(self) -> dict:
        """Check API health status."""
        response = self._client.get("/health")
        response.raise_for_status()
        return response.json()

    def is_healthy(self) -> bool:
        """Quick health check returning boolean."""
        try:
            return self.health().get("status") == "healthy"
        except httpx.HTTPError:
            return False

    # =========================================================================
    # Limits
    # =========================================================================

    def list_limits(self) -> list[BucketStatus]:
        """Status of every live bucket."""
        response = self._client.get("/v1/limits")
        response.raise_for_status()
        return [BucketStatus.from_dict(b) for b in response.json().get("buckets", [])]

    def get_limit(self, provider: str, operation: str = "default") -> BucketStatus:
        """Status of one resource key."""
        response = self._client.get(f"/v1/limits/{provider}", params={"operation": operation})
        response.raise_for_status()
        return BucketStatus.from_dict(response.json())

    def set_limit(self, provider: str, **overrides: Any) -> dict:
        """
        Override part of a provider's rate limit config.

        Args:
            provider: Provider name
            **overrides: per_second, per_minute, per_hour, per_day,
                burst_limit, retry_after_default_ms

        Returns:
            The provider's resulting config
        """
        payload = {k: v for k, v in overrides.items() if v is not None}
        response = self._client.put(f"/v1/limits/{provider}", json=payload)
        response.raise_for_status()
        return response.json().get("config", {})

    def reset(self, provider: str, operation: Optional[str] = None) -> int:
        """Drop a provider's buckets; returns how many were removed."""
        params = {"operation": operation} if operation else None
        response = self._client.delete(f"/v1/limits/{provider}", params=params)
        response.raise_for_status()
        return response.json().get("removed", 0)

    # =========================================================================
    # Errors
    # =========================================================================

    def error_stats(self) -> ErrorStats:
        response = self._client.get("/v1/errors")
        response.raise_for_status()
        return ErrorStats.from_dict(response.json())

    def clear_errors(self) -> None:
        response = self._client.delete("/v1/errors")
        response.raise_for_status()
