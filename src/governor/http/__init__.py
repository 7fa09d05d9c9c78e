"""HTTP transport for provider calls."""

from governor.http.client import ThrottledHttpClient

__all__ = ["ThrottledHttpClient"]
