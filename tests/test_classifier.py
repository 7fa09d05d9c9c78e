"""Tests for failure classification."""

import json

import httpx
import pytest

from governor.errors import ClassifiedError, ErrorClassifier, ErrorKind, UpstreamStatusError
from governor.errors.rules import provider_family

from tests.conftest import FakeResponse


class StatusError(Exception):
    """Exception carrying a status code, like many SDK errors do."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def http_status_error(status: int, headers: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.com/v1/items")
    response = httpx.Response(status, headers=headers, request=request)
    return httpx.HTTPStatusError(f"{status} error", request=request, response=response)


class TestStatusClassification:
    """Status codes map to a fixed kind and retryability."""

    @pytest.mark.parametrize(
        "status, kind, retryable",
        [
            (401, ErrorKind.AUTHENTICATION, False),
            (429, ErrorKind.RATE_LIMIT, True),
            (404, ErrorKind.NOT_FOUND, False),
            (500, ErrorKind.SERVER_ERROR, True),
            (403, ErrorKind.FORBIDDEN, False),
            (408, ErrorKind.TIMEOUT, True),
            (422, ErrorKind.VALIDATION, False),
        ],
    )
    def test_response_status(self, classifier: ErrorClassifier, status, kind, retryable) -> None:
        error = classifier.classify("svc", "op", FakeResponse(status))

        assert error.kind == kind
        assert error.retryable is retryable
        assert error.code == status

    @pytest.mark.parametrize("status, kind", [(401, ErrorKind.AUTHENTICATION), (503, ErrorKind.SERVER_ERROR)])
    def test_httpx_status_error(self, classifier: ErrorClassifier, status, kind) -> None:
        assert classifier.classify("svc", "op", http_status_error(status)).kind == kind

    def test_exception_with_status_code(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", StatusError("boom", 404))

        assert error.kind == ErrorKind.NOT_FOUND

    def test_upstream_status_error(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", UpstreamStatusError(429, retry_after_ms=2500))

        assert error.kind == ErrorKind.RATE_LIMIT
        assert error.retry_after_ms == 2500

    def test_status_payload(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", {"status": 403, "statusText": "Forbidden"})

        assert error.kind == ErrorKind.FORBIDDEN
        assert error.message == "HTTP 403: Forbidden"

    def test_error_payload(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", {"error": "Resource does not exist", "code": "E_MISSING"})

        assert error.kind == ErrorKind.NOT_FOUND
        assert error.code == "E_MISSING"


class TestMessageClassification:
    """Message phrases map onto kinds when no status is available."""

    @pytest.mark.parametrize(
        "message, kind, retryable",
        [
            ("Invalid API key provided", ErrorKind.AUTHENTICATION, False),
            ("Too many requests, slow down", ErrorKind.RATE_LIMIT, True),
            ("Monthly quota exceeded", ErrorKind.QUOTA_EXCEEDED, False),
            ("Access denied for this resource", ErrorKind.FORBIDDEN, False),
            ("Request timed out", ErrorKind.TIMEOUT, True),
            ("Connection refused", ErrorKind.NETWORK, True),
            ("Internal error while processing", ErrorKind.SERVER_ERROR, True),
            ("Malformed query string", ErrorKind.VALIDATION, False),
            ("Invalid JSON in response body", ErrorKind.PARSING, False),
            ("Something unexpected happened", ErrorKind.UNKNOWN, True),
        ],
    )
    def test_string_failures(self, classifier: ErrorClassifier, message, kind, retryable) -> None:
        error = classifier.classify("svc", "op", message)

        assert error.kind == kind
        assert error.retryable is retryable

    def test_status_in_message(self, classifier: ErrorClassifier) -> None:
        assert classifier.classify("svc", "op", RuntimeError("HTTP 401")).kind == ErrorKind.AUTHENTICATION

    @pytest.mark.parametrize(
        "message",
        ["upstream returned status 503", "HTTP/1.1 502", "Request failed with status code 504"],
    )
    def test_server_status_in_message(self, classifier: ErrorClassifier, message) -> None:
        assert classifier.classify("svc", "op", RuntimeError(message)).kind == ErrorKind.SERVER_ERROR

    def test_bare_number_is_not_a_status(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", ValueError("item 503 removed from cart"))

        assert error.kind == ErrorKind.UNKNOWN

    def test_rate_limit_wins_over_quota_for_429(self, classifier: ErrorClassifier) -> None:
        """A 429 for a daily quota is still treated as time-boxed."""
        error = classifier.classify("svc", "op", StatusError("daily quota exceeded", 429))

        assert error.kind == ErrorKind.RATE_LIMIT

    def test_exception_types(self, classifier: ErrorClassifier) -> None:
        assert classifier.classify("svc", "op", httpx.ReadTimeout("slow")).kind == ErrorKind.TIMEOUT
        assert classifier.classify("svc", "op", TimeoutError()).kind == ErrorKind.TIMEOUT
        assert classifier.classify("svc", "op", httpx.ConnectError("down")).kind == ErrorKind.NETWORK

    def test_json_decode_error_is_parsing(self, classifier: ErrorClassifier) -> None:
        with pytest.raises(json.JSONDecodeError) as exc_info:
            json.loads("{oops")

        error = classifier.classify("svc", "op", exc_info.value)

        assert error.kind == ErrorKind.PARSING
        assert error.retryable is False


class TestRetryAfter:
    """Retry hints extracted for rate limits."""

    def test_from_header(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", http_status_error(429, {"Retry-After": "7"}))

        assert error.retry_after_ms == 7000

    def test_from_message(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", "Rate limit exceeded, retry after 30 seconds")

        assert error.retry_after_ms == 30_000

    def test_not_set_for_other_kinds(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "op", "Not found, retry in 5")

        assert error.kind == ErrorKind.NOT_FOUND
        assert error.retry_after_ms is None


class TestProviderRefinement:
    """Provider rules run after the generic pass."""

    def test_subscription_becomes_quota_exceeded(self, classifier: ErrorClassifier) -> None:
        generic = classifier.classify("svc", "op", "Invalid subscription")
        refined = classifier.classify("rapidapi-global", "op", "Invalid subscription")

        assert generic.kind == ErrorKind.VALIDATION
        assert refined.kind == ErrorKind.QUOTA_EXCEEDED
        assert "RapidAPI subscription" in refined.suggested_action

    def test_private_video_is_forbidden(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("tiktok", "video", "This video is private")

        assert error.kind == ErrorKind.FORBIDDEN
        assert error.retryable is False
        assert error.suggested_action == "Video may be private or deleted"

    def test_instagram_login_required(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("instagram", "profile", {"message": "login_required"})

        assert error.kind == ErrorKind.AUTHENTICATION

    def test_youtube_rules(self, classifier: ErrorClassifier) -> None:
        assert classifier.classify("youtube", "op", "videoNotFound").kind == ErrorKind.NOT_FOUND
        assert classifier.classify("youtube", "op", "quotaExceeded").kind == ErrorKind.QUOTA_EXCEEDED

    def test_apify_actor(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("apify", "run", "Actor was not started")

        assert error.kind == ErrorKind.NOT_FOUND

    def test_provider_family(self) -> None:
        assert provider_family("rapidapi-global") == "rapidapi"
        assert provider_family("YouTube") == "youtube"


class TestTracking:
    """Diagnostics bookkeeping."""

    def test_handle_tracks_counts(self, classifier: ErrorClassifier) -> None:
        classifier.handle("tiktok", "video", FakeResponse(500))
        classifier.handle("tiktok", "video", FakeResponse(429))
        classifier.handle("youtube", "search", FakeResponse(500))

        stats = classifier.get_error_stats()

        assert stats["total_errors"] == 3
        assert stats["errors_by_provider"] == {"tiktok": 2, "youtube": 1}
        assert stats["errors_by_kind"] == {"server_error": 2, "rate_limit": 1}
        assert len(stats["recent_errors"]) == 3
        assert classifier.last_error("tiktok", "video").kind == ErrorKind.RATE_LIMIT

    def test_bookkeeping_does_not_change_output(self, classifier: ErrorClassifier) -> None:
        first = classifier.handle("svc", "op", "Connection reset")
        for _ in range(10):
            classifier.handle("svc", "op", "Connection reset")
        last = classifier.handle("svc", "op", "Connection reset")

        assert (first.kind, first.retryable, first.suggested_action) == (
            last.kind,
            last.retryable,
            last.suggested_action,
        )

    def test_recent_ring_is_bounded(self, classifier: ErrorClassifier) -> None:
        for i in range(8):
            classifier.handle("svc", f"op{i}", "boom")

        recent = classifier.get_error_stats()["recent_errors"]

        assert [e["operation"] for e in recent] == ["op3", "op4", "op5", "op6", "op7"]

    def test_classify_does_not_track(self, classifier: ErrorClassifier) -> None:
        classifier.classify("svc", "op", "boom")

        assert classifier.get_error_stats()["total_errors"] == 0

    def test_clear_stats(self, classifier: ErrorClassifier) -> None:
        classifier.handle("svc", "op", "boom")
        classifier.clear_stats()

        assert classifier.get_error_stats()["total_errors"] == 0
        assert classifier.last_error("svc", "op") is None


class TestClassifiedError:
    """The classified record itself."""

    def test_to_dict_and_str(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("svc", "search", FakeResponse(401), context={"attempt": 1})
        data = error.to_dict()

        assert data["kind"] == "authentication"
        assert data["retryable"] is False
        assert data["context"] == {"attempt": 1}
        assert "svc" in str(error) and "authentication" in str(error)

    def test_reclassifying_uses_original_failure(self, classifier: ErrorClassifier) -> None:
        original = classifier.classify("svc", "op", FakeResponse(404))
        again = classifier.classify("svc", "op", original)

        assert isinstance(again, ClassifiedError)
        assert again.kind == ErrorKind.NOT_FOUND
