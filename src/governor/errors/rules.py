"""
Classification rule tables.

Rules are evaluated in order and the first match wins. Generic rules map
status codes and message phrases onto a kind; provider rules run after the
generic pass and may override its result.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from governor.errors.models import ErrorKind


@dataclass(frozen=True)
class FailureSignal:
    """A raw failure normalized into a message and optional status."""

    message: str
    status: int | None = None
    failure: Any = None

    @property
    def lower(self) -> str:
        return self.message.lower()


Predicate = Callable[[FailureSignal], bool]


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    predicate: Predicate
    kind: ErrorKind
    retryable: bool
    suggested_action: str | None = None

    def matches(self, signal: FailureSignal) -> bool:
        return self.predicate(signal)


def status_is(*codes: int) -> Predicate:
    return lambda s: s.status in codes


def status_between(low: int, high: int) -> Predicate:
    return lambda s: s.status is not None and low <= s.status <= high


def mentions(*phrases: str) -> Predicate:
    return lambda s: any(phrase in s.lower for phrase in phrases)


def mentions_status(pattern: str) -> Predicate:
    """
    Match a status code written into the message after an HTTP marker.

    ``HTTP 401``, ``HTTP/1.1 503`` and ``status code: 429`` match; a bare
    number such as ``item 503 removed`` does not.
    """
    regex = re.compile(
        rf"\b(?:http(?:/\d(?:\.\d)?)?|status(?:\s+code)?)[\s:=]*{pattern}\b",
        re.IGNORECASE,
    )
    return lambda s: regex.search(s.message) is not None


def raised(*types: type) -> Predicate:
    return lambda s: isinstance(s.failure, types)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda s: any(p(s) for p in predicates)


GENERIC_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        name="authentication",
        predicate=any_of(
            status_is(401),
            mentions("unauthorized", "invalid api key", "authentication failed"),
            mentions_status("401"),
        ),
        kind=ErrorKind.AUTHENTICATION,
        retryable=False,
        suggested_action="Check API credentials and permissions",
    ),
    ClassificationRule(
        name="rate_limit",
        predicate=any_of(
            status_is(429),
            mentions("rate limit", "too many requests", "throttled"),
            mentions_status("429"),
        ),
        kind=ErrorKind.RATE_LIMIT,
        retryable=True,
        suggested_action="Wait before retrying or implement backoff",
    ),
    ClassificationRule(
        name="quota_exceeded",
        predicate=mentions("quota exceeded", "usage limit", "limit exceeded"),
        kind=ErrorKind.QUOTA_EXCEEDED,
        retryable=False,
        suggested_action="Wait for quota reset or upgrade plan",
    ),
    ClassificationRule(
        name="not_found",
        predicate=any_of(
            status_is(404),
            mentions("not found", "does not exist"),
            mentions_status("404"),
        ),
        kind=ErrorKind.NOT_FOUND,
        retryable=False,
        suggested_action="Verify the resource exists and URL is correct",
    ),
    ClassificationRule(
        name="forbidden",
        predicate=any_of(
            status_is(403),
            mentions("forbidden", "access denied"),
            mentions_status("403"),
        ),
        kind=ErrorKind.FORBIDDEN,
        retryable=False,
        suggested_action="Check permissions and access rights",
    ),
    ClassificationRule(
        name="timeout",
        predicate=any_of(
            raised(TimeoutError, httpx.TimeoutException),
            status_is(408),
            mentions("timeout", "timed out"),
        ),
        kind=ErrorKind.TIMEOUT,
        retryable=True,
        suggested_action="Increase timeout or try again later",
    ),
    ClassificationRule(
        name="network",
        predicate=any_of(
            raised(httpx.TransportError, ConnectionError),
            mentions("network", "connection", "econnreset", "fetch failed"),
        ),
        kind=ErrorKind.NETWORK,
        retryable=True,
        suggested_action="Check network connectivity",
    ),
    ClassificationRule(
        name="server_error",
        predicate=any_of(
            status_between(500, 599),
            mentions("server error", "internal error", "bad gateway", "service unavailable"),
            mentions_status("5\\d\\d"),
        ),
        kind=ErrorKind.SERVER_ERROR,
        retryable=True,
        suggested_action="Server issue, try again later",
    ),
    ClassificationRule(
        name="parsing",
        predicate=any_of(
            raised(json.JSONDecodeError),
            mentions("failed to parse", "parse error", "unexpected token", "invalid json"),
        ),
        kind=ErrorKind.PARSING,
        retryable=False,
        suggested_action="Upstream response format changed; check the parser",
    ),
    ClassificationRule(
        name="validation",
        predicate=any_of(
            status_between(400, 499),
            mentions("invalid", "validation", "malformed", "bad request"),
        ),
        kind=ErrorKind.VALIDATION,
        retryable=False,
        suggested_action="Check request format and parameters",
    ),
)


PROVIDER_RULES: dict[str, tuple[ClassificationRule, ...]] = {
    "rapidapi": (
        ClassificationRule(
            name="rapidapi_subscription",
            predicate=mentions("subscription"),
            kind=ErrorKind.QUOTA_EXCEEDED,
            retryable=False,
            suggested_action="Check RapidAPI subscription status and limits",
        ),
        ClassificationRule(
            name="rapidapi_endpoint",
            predicate=mentions("endpoint"),
            kind=ErrorKind.NOT_FOUND,
            retryable=False,
            suggested_action="Verify API endpoint URL and service availability",
        ),
    ),
    "apify": (
        ClassificationRule(
            name="apify_actor",
            predicate=mentions("actor"),
            kind=ErrorKind.NOT_FOUND,
            retryable=False,
            suggested_action="Check actor ID and availability",
        ),
        ClassificationRule(
            name="apify_compute_units",
            predicate=mentions("compute units"),
            kind=ErrorKind.QUOTA_EXCEEDED,
            retryable=False,
            suggested_action="Check Apify compute units balance",
        ),
    ),
    "tiktok": (
        ClassificationRule(
            name="tiktok_unavailable_video",
            predicate=mentions("private", "deleted"),
            kind=ErrorKind.FORBIDDEN,
            retryable=False,
            suggested_action="Video may be private or deleted",
        ),
    ),
    "instagram": (
        ClassificationRule(
            name="instagram_login_required",
            predicate=mentions("login_required"),
            kind=ErrorKind.AUTHENTICATION,
            retryable=False,
            suggested_action="Instagram requires authentication for this content",
        ),
    ),
    "youtube": (
        ClassificationRule(
            name="youtube_video_not_found",
            predicate=mentions("videonotfound"),
            kind=ErrorKind.NOT_FOUND,
            retryable=False,
            suggested_action="Video may be private, deleted, or ID is incorrect",
        ),
        ClassificationRule(
            name="youtube_quota_exceeded",
            predicate=mentions("quotaexceeded"),
            kind=ErrorKind.QUOTA_EXCEEDED,
            retryable=False,
            suggested_action="YouTube API quota exceeded, wait for reset",
        ),
    ),
}


def provider_family(provider: str) -> str:
    """``rapidapi-global:search`` -> ``rapidapi``."""
    return provider.split(":", 1)[0].split("-", 1)[0].lower()


def first_match(
    rules: tuple[ClassificationRule, ...], signal: FailureSignal
) -> ClassificationRule | None:
    for rule in rules:
        if rule.matches(signal):
            return rule
    return None
