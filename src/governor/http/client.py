"""HTTP client whose requests go through the serialized throttle queue."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from governor.config import Settings, get_settings
from governor.errors.models import NotConfiguredError
from governor.throttle.queue import ThrottleQueue

logger = logging.getLogger(__name__)


class ThrottledHttpClient:
    """
    Async HTTP client bound to one provider lane.

    Every request is dispatched through ``ThrottleQueue.dispatch``, so it is
    spaced from the provider's previous request and retried on 429/5xx
    responses and network failures. A missing API key is reported before
    any network call.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(
        connect=10.0,
        read=30.0,
        write=10.0,
        pool=10.0,
    )

    def __init__(
        self,
        queue: ThrottleQueue,
        provider: str = "rapidapi-global",
        base_url: str | None = None,
        api_key: str | None = None,
        api_key_header: str = "X-RapidAPI-Key",
        require_api_key: bool = False,
        timeout: httpx.Timeout | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            queue: Throttle queue shared with other clients of the process
            provider: Lane key for all requests of this client
            base_url: Optional base URL for all requests
            api_key: Credential sent in ``api_key_header``
            api_key_header: Header carrying the credential
            require_api_key: Fail fast when no key is configured
            timeout: Request timeout configuration
            headers: Default headers for all requests
            transport: Custom httpx transport
        """
        self._queue = queue
        self._provider = provider
        self._base_url = base_url
        self._api_key = api_key
        self._require_api_key = require_api_key
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._default_headers = dict(headers or {})
        if api_key:
            self._default_headers[api_key_header] = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        queue: ThrottleQueue,
        settings: Settings | None = None,
        base_url: str | None = None,
        provider: str = "rapidapi-global",
        **kwargs: Any,
    ) -> "ThrottledHttpClient":
        """
        Build a RapidAPI client keyed with ``settings.rapidapi_key``.

        The key is required: without ``RAPIDAPI_KEY`` every request fails
        with NotConfiguredError before reaching the network.
        """
        settings = settings or get_settings()
        return cls(
            queue,
            provider=provider,
            base_url=base_url,
            api_key=settings.rapidapi_key,
            require_api_key=True,
            **kwargs,
        )

    @property
    def provider(self) -> str:
        return self._provider

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url or "",
                timeout=self._timeout,
                headers=self._default_headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        label: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make a throttled HTTP request.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            label: Description used in log messages
            **kwargs: Additional arguments for httpx

        Returns:
            httpx.Response (any status that is not 429/5xx)

        Raises:
            NotConfiguredError: The API key is required but missing
            UpstreamStatusError: Still throttled after all attempts
            httpx.TransportError: Network failure on the last attempt
        """
        if self._require_api_key and not self._api_key:
            raise NotConfiguredError(self._provider, "API key")

        client = await self._get_client()
        return await self._queue.dispatch(
            self._provider,
            lambda: client.request(method, url, **kwargs),
            label or f"{method} {url}",
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a GET request."""
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a POST request."""
        return await self.request("POST", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """Make a GET request and return JSON response."""
        response = await self.get(url, **kwargs)
        response.raise_for_status()
        return response.json()

    async def post_json(self, url: str, data: Any, **kwargs: Any) -> Any:
        """Make a POST request with JSON body and return JSON response."""
        response = await self.post(url, json=data, **kwargs)
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info(f"HTTP client for {self._provider} closed")

    async def __aenter__(self) -> "ThrottledHttpClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
