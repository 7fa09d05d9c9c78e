"""Exceptions and the classified-failure record."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure taxonomy."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    PARSING = "parsing"
    UNKNOWN = "unknown"


RETRYABLE_BY_DEFAULT: dict[ErrorKind, bool] = {
    ErrorKind.AUTHENTICATION: False,
    ErrorKind.RATE_LIMIT: True,
    ErrorKind.QUOTA_EXCEEDED: False,
    ErrorKind.NOT_FOUND: False,
    ErrorKind.FORBIDDEN: False,
    ErrorKind.VALIDATION: False,
    ErrorKind.NETWORK: True,
    ErrorKind.TIMEOUT: True,
    ErrorKind.SERVER_ERROR: True,
    ErrorKind.PARSING: False,
    ErrorKind.UNKNOWN: True,
}


class GovernorError(Exception):
    """Base class for errors raised by the engine."""


class NotConfiguredError(GovernorError):
    """
    Raised before any call when a provider lacks required configuration.

    Never classified and never retried.
    """

    def __init__(self, provider: str, missing: str) -> None:
        self.provider = provider
        self.missing = missing
        super().__init__(f"{provider} is not configured: missing {missing}")


class UpstreamStatusError(GovernorError):
    """Raised when an upstream keeps answering with a throttling status."""

    def __init__(
        self,
        status_code: int,
        retry_after_ms: float | None = None,
        response: Any = None,
        label: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms
        self.response = response
        target = f" on {label}" if label else ""
        super().__init__(f"HTTP {status_code}{target}")


class ClassifiedError(GovernorError):
    """
    A provider failure mapped onto the taxonomy.

    Raised to callers in place of the raw failure, which stays available as
    ``original`` and ``__cause__``.
    """

    def __init__(
        self,
        provider: str,
        operation: str,
        kind: ErrorKind,
        message: str,
        retryable: bool,
        code: int | str | None = None,
        retry_after_ms: float | None = None,
        suggested_action: str | None = None,
        timestamp: datetime | None = None,
        context: dict[str, Any] | None = None,
        original: Any = None,
    ) -> None:
        self.provider = provider
        self.operation = operation
        self.kind = kind
        self.message = message
        self.retryable = retryable
        self.code = code
        self.retry_after_ms = retry_after_ms
        self.suggested_action = suggested_action
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.context = context
        self.original = original
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.provider}] {self.operation} failed ({self.kind.value}): {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "operation": self.operation,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "retry_after_ms": self.retry_after_ms,
            "suggested_action": self.suggested_action,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }
