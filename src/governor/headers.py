"""Helpers for reading upstream retry directives."""

from __future__ import annotations

import math
from email.utils import parsedate_to_datetime
from typing import Any

# Numeric Retry-After values above this are already milliseconds.
MILLISECONDS_THRESHOLD = 1000


def parse_retry_after(value: Any, now_ms: float) -> float | None:
    """
    Convert a Retry-After directive into a delay in milliseconds.

    A number larger than 1000 is taken as milliseconds, anything smaller as
    seconds. An HTTP date becomes the distance from ``now_ms``.

    Args:
        value: Raw header value
        now_ms: Current time in epoch milliseconds

    Returns:
        Delay in milliseconds, or None when there is no usable delay
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    try:
        numeric = float(text)
    except ValueError:
        numeric = None

    if numeric is not None:
        if not math.isfinite(numeric) or numeric < 0:
            return None
        return numeric if numeric > MILLISECONDS_THRESHOLD else numeric * 1000

    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    diff = when.timestamp() * 1000 - now_ms
    return diff if diff > 0 else None


def header_value(source: Any, name: str) -> str | None:
    """
    Read a header from a response-like object.

    Accepts objects exposing ``headers`` (httpx, requests, aiohttp style)
    and plain mappings of headers.
    """
    headers = getattr(source, "headers", source)
    if headers is None:
        return None
    getter = getattr(headers, "get", None)
    if getter is None:
        return None
    value = getter(name)
    if value is None:
        value = getter(name.title())
    if value is None and isinstance(headers, dict):
        lowered = name.lower()
        for key, candidate in headers.items():
            if str(key).lower() == lowered:
                return candidate
    return value
