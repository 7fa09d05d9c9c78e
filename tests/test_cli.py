"""Tests for the operations API client and CLI."""

import json
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from governor_client import BucketStatus, GovernorClient
from governor_client.cli import cli

BUCKET = {
    "provider": "instagram",
    "operation": "profile",
    "status": {
        "allowed": False,
        "quotas": [
            {"window_type": "second", "limit": 1, "remaining": 0, "reset_time": "2024-01-01T00:00:01+00:00"},
            {"window_type": "minute", "limit": 50, "remaining": 49, "reset_time": "2024-01-01T00:01:00+00:00"},
        ],
        "retry_after_ms": 1000,
        "reason": "Rate limit exceeded for second window",
    },
    "request_count": 1,
    "success_rate": 1.0,
    "config": {"per_second": 1, "per_minute": 50},
}

ERRORS = {
    "total_errors": 2,
    "errors_by_provider": {"instagram": 2},
    "errors_by_kind": {"rate_limit": 2},
    "recent_errors": [
        {
            "provider": "instagram",
            "operation": "profile",
            "kind": "rate_limit",
            "message": "HTTP 429 [throttled]",
            "suggested_action": "Wait before retrying or implement backoff",
        }
    ],
}


class FakeApi:
    """Records requests and answers like the operations API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/health":
            return httpx.Response(200, json={"status": "healthy", "version": "0.1.0"})
        if path == "/v1/limits":
            return httpx.Response(200, json={"buckets": [BUCKET], "count": 1})
        if path.startswith("/v1/limits/"):
            if request.method == "PUT":
                body = json.loads(request.content)
                return httpx.Response(200, json={"provider": "instagram", "config": {**BUCKET["config"], **body}})
            if request.method == "DELETE":
                return httpx.Response(
                    200,
                    json={"provider": "instagram", "operation": request.url.params.get("operation"), "removed": 2},
                )
            return httpx.Response(200, json=BUCKET)
        if path == "/v1/errors":
            if request.method == "DELETE":
                return httpx.Response(200, json={"cleared": True})
            return httpx.Response(200, json=ERRORS)
        return httpx.Response(404, json={"detail": "Not Found"})


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def client(api: FakeApi) -> GovernorClient:
    return GovernorClient(base_url="http://governor.test/", transport=httpx.MockTransport(api))


@pytest.fixture
def run(api: FakeApi):
    """Invoke the CLI against the fake API."""
    runner = CliRunner()

    def invoke(*args: str):
        with patch(
            "governor_client.cli.get_client",
            side_effect=lambda url: GovernorClient(base_url=url, transport=httpx.MockTransport(api)),
        ):
            return runner.invoke(cli, list(args), obj={})

    return invoke


class TestGovernorClient:
    """Tests for GovernorClient."""

    def test_health(self, client: GovernorClient) -> None:
        assert client.is_healthy() is True
        assert client.base_url == "http://governor.test"

    def test_unhealthy_on_http_error(self) -> None:
        client = GovernorClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))

        assert client.is_healthy() is False

    def test_list_limits(self, client: GovernorClient) -> None:
        buckets = client.list_limits()

        assert len(buckets) == 1
        bucket = buckets[0]
        assert isinstance(bucket, BucketStatus)
        assert bucket.allowed is False
        assert bucket.retry_after_ms == 1000
        assert [q.remaining for q in bucket.quotas] == [0, 49]

    def test_get_limit_sends_operation(self, client: GovernorClient, api: FakeApi) -> None:
        client.get_limit("instagram", "profile")

        assert api.requests[-1].url.params["operation"] == "profile"

    def test_set_limit_drops_empty_fields(self, client: GovernorClient, api: FakeApi) -> None:
        config = client.set_limit("instagram", per_minute=10, burst_limit=None)

        assert json.loads(api.requests[-1].content) == {"per_minute": 10}
        assert config["per_minute"] == 10

    def test_reset(self, client: GovernorClient) -> None:
        assert client.reset("instagram") == 2

    def test_error_stats(self, client: GovernorClient) -> None:
        stats = client.error_stats()

        assert stats.total_errors == 2
        assert stats.errors_by_kind == {"rate_limit": 2}


class TestCli:
    """Tests for the CLI commands."""

    def test_health(self, run) -> None:
        result = run("health")

        assert result.exit_code == 0
        assert "API is healthy" in result.output

    def test_limits_table(self, run) -> None:
        result = run("limits")

        assert result.exit_code == 0
        assert "instagram" in result.output
        assert "1000ms" in result.output

    def test_limits_json(self, run) -> None:
        result = run("limits", "--provider", "instagram", "--operation", "profile", "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data[0]["remaining"] == {"second": 0, "minute": 49}

    def test_set_limit(self, run, api: FakeApi) -> None:
        result = run("set-limit", "instagram", "--per-minute", "10")

        assert result.exit_code == 0
        assert json.loads(api.requests[-1].content) == {"per_minute": 10}

    def test_set_limit_without_fields(self, run, api: FakeApi) -> None:
        result = run("set-limit", "instagram")

        assert result.exit_code == 2
        assert api.requests == []

    def test_reset(self, run, api: FakeApi) -> None:
        result = run("reset", "instagram", "--operation", "profile")

        assert result.exit_code == 0
        assert "Removed 2 bucket(s) for instagram" in result.output
        assert api.requests[-1].url.params["operation"] == "profile"

    def test_errors(self, run) -> None:
        result = run("errors")

        assert result.exit_code == 0
        assert "rate_limit" in result.output
        assert "[throttled]" in result.output

    def test_errors_clear(self, run, api: FakeApi) -> None:
        result = run("errors", "--clear")

        assert result.exit_code == 0
        assert api.requests[-1].method == "DELETE"

    def test_server_error_exits_nonzero(self) -> None:
        runner = CliRunner()
        failing = httpx.MockTransport(lambda r: httpx.Response(500))

        with patch(
            "governor_client.cli.get_client",
            side_effect=lambda url: GovernorClient(base_url=url, transport=failing),
        ):
            result = runner.invoke(cli, ["limits"], obj={})

        assert result.exit_code == 1
        assert "Error" in result.output
