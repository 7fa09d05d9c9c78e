"""
Error classification for provider failures.

Normalizes heterogeneous failures (exceptions, httpx errors, response-like
objects, structured error payloads, strings) and maps them onto the
``ErrorKind`` taxonomy using the ordered rule tables in ``rules``.
"""

from __future__ import annotations

import logging
import re
from collections import Counter, deque
from collections.abc import Mapping
from typing import Any

import httpx

from governor.clock import Clock
from governor.errors.models import (
    RETRYABLE_BY_DEFAULT,
    ClassifiedError,
    ErrorKind,
    UpstreamStatusError,
)
from governor.errors.rules import (
    GENERIC_RULES,
    PROVIDER_RULES,
    ClassificationRule,
    FailureSignal,
    first_match,
    provider_family,
)
from governor.headers import header_value, parse_retry_after

logger = logging.getLogger(__name__)

RETRY_PHRASE = re.compile(r"retry[^\d]{0,20}(\d+)", re.IGNORECASE)


def _status_of(source: Any) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(source, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


class ErrorClassifier:
    """
    Maps raw failures to ``ClassifiedError`` records.

    Also keeps running counts per (provider, kind), the latest error per
    (provider, operation) and a bounded ring of recent errors. None of that
    bookkeeping affects classification.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        recent_limit: int = 50,
        generic_rules: tuple[ClassificationRule, ...] = GENERIC_RULES,
        provider_rules: dict[str, tuple[ClassificationRule, ...]] | None = None,
    ) -> None:
        self._clock = clock or Clock()
        self._generic_rules = generic_rules
        self._provider_rules = PROVIDER_RULES if provider_rules is None else provider_rules
        self._counts: Counter[tuple[str, ErrorKind]] = Counter()
        self._last_errors: dict[tuple[str, str], ClassifiedError] = {}
        self._recent: deque[ClassifiedError] = deque(maxlen=recent_limit)

    # --- normalization ---

    def _normalize(self, failure: Any) -> tuple[FailureSignal, int | str | None, float | None]:
        """Return the signal, an error code and a retry-after hint in ms."""
        now = self._clock.now()

        if isinstance(failure, ClassifiedError):
            failure = failure.original if failure.original is not None else failure.message

        if isinstance(failure, str):
            return FailureSignal(message=failure, failure=failure), None, None

        if isinstance(failure, UpstreamStatusError):
            signal = FailureSignal(str(failure), failure.status_code, failure)
            return signal, failure.status_code, failure.retry_after_ms

        if isinstance(failure, httpx.HTTPStatusError):
            response = failure.response
            status = response.status_code
            message = f"HTTP {status}: {response.reason_phrase or str(failure)}"
            retry_after = parse_retry_after(header_value(response, "retry-after"), now)
            return FailureSignal(message, status, failure), status, retry_after

        if isinstance(failure, BaseException):
            status = _status_of(failure)
            response = getattr(failure, "response", None)
            if status is None and response is not None:
                status = _status_of(response)
            retry_after = None
            if response is not None:
                retry_after = parse_retry_after(header_value(response, "retry-after"), now)
            message = str(failure) or type(failure).__name__
            code = getattr(failure, "code", None)
            if not isinstance(code, (int, str)):
                code = status
            return FailureSignal(message, status, failure), code, retry_after

        if isinstance(failure, Mapping):
            return self._normalize_mapping(failure, now)

        status = _status_of(failure)
        if status is not None:
            reason = getattr(failure, "reason_phrase", None) or getattr(failure, "status_text", "")
            message = f"HTTP {status}: {reason}".rstrip(": ")
            retry_after = parse_retry_after(header_value(failure, "retry-after"), now)
            return FailureSignal(message, status, failure), status, retry_after

        return FailureSignal(message=str(failure), failure=failure), None, None

    def _normalize_mapping(
        self, payload: Mapping[str, Any], now: float
    ) -> tuple[FailureSignal, int | str | None, float | None]:
        status = payload.get("status")
        status = status if isinstance(status, int) and not isinstance(status, bool) else None
        message = "Unknown error occurred"
        if status is not None:
            message = f"HTTP {status}: {payload.get('statusText', '')}".rstrip(": ")
        if payload.get("message"):
            message = str(payload["message"])
        elif payload.get("error"):
            message = str(payload["error"])
        code = payload.get("code", status)
        retry_after = parse_retry_after(header_value(payload.get("headers"), "retry-after"), now)
        return FailureSignal(message, status, payload), code, retry_after

    # --- classification ---

    def classify(
        self,
        provider: str,
        operation: str,
        failure: Any,
        context: dict[str, Any] | None = None,
    ) -> ClassifiedError:
        """
        Classify a raw failure.

        Args:
            provider: Provider the call went to
            operation: Logical operation name
            failure: Exception, response-like object, error payload or string
            context: Extra diagnostic data carried on the result

        Returns:
            ClassifiedError with kind, retryability and suggested action
        """
        signal, code, retry_after = self._normalize(failure)

        kind = ErrorKind.UNKNOWN
        retryable = RETRYABLE_BY_DEFAULT[ErrorKind.UNKNOWN]
        action = None
        rule = first_match(self._generic_rules, signal)
        if rule is not None:
            kind, retryable, action = rule.kind, rule.retryable, rule.suggested_action

        refinement = first_match(self._provider_rules.get(provider_family(provider), ()), signal)
        if refinement is not None:
            kind, retryable = refinement.kind, refinement.retryable
            action = refinement.suggested_action or action

        if kind == ErrorKind.RATE_LIMIT and retry_after is None:
            match = RETRY_PHRASE.search(signal.message)
            if match:
                retry_after = int(match.group(1)) * 1000.0
        if kind != ErrorKind.RATE_LIMIT and not isinstance(failure, UpstreamStatusError):
            retry_after = None

        classified = ClassifiedError(
            provider=provider,
            operation=operation,
            kind=kind,
            message=signal.message,
            retryable=retryable,
            code=code,
            retry_after_ms=retry_after,
            suggested_action=action,
            context=context,
            original=failure,
        )
        return classified

    def handle(
        self,
        provider: str,
        operation: str,
        failure: Any,
        context: dict[str, Any] | None = None,
    ) -> ClassifiedError:
        """Classify, log and track a failure."""
        classified = self.classify(provider, operation, failure, context)
        self._log(classified)
        self._track(classified)
        return classified

    def _log(self, error: ClassifiedError) -> None:
        retryable = "retryable" if error.retryable else "non-retryable"
        logger.warning(
            f"[{error.provider}] {error.operation} failed: {error.message} "
            f"({error.kind.value}, {retryable})"
        )
        if error.suggested_action:
            logger.info(f"[{error.provider}] Suggestion: {error.suggested_action}")

    def _track(self, error: ClassifiedError) -> None:
        self._counts[(error.provider, error.kind)] += 1
        self._last_errors[(error.provider, error.operation)] = error
        self._recent.append(error)

    # --- diagnostics ---

    def last_error(self, provider: str, operation: str) -> ClassifiedError | None:
        return self._last_errors.get((provider, operation))

    def get_error_stats(self, recent: int = 10) -> dict[str, Any]:
        """Totals per provider and per kind plus the most recent errors."""
        by_provider: Counter[str] = Counter()
        by_kind: Counter[str] = Counter()
        for (provider, kind), count in self._counts.items():
            by_provider[provider] += count
            by_kind[kind.value] += count

        return {
            "total_errors": sum(by_provider.values()),
            "errors_by_provider": dict(by_provider),
            "errors_by_kind": dict(by_kind),
            "recent_errors": [e.to_dict() for e in list(self._recent)[-recent:]],
        }

    def clear_stats(self) -> None:
        self._counts.clear()
        self._last_errors.clear()
        self._recent.clear()
        logger.info("Error tracking data cleared")
