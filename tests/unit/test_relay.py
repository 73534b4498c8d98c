"""Tests for the credential-forwarding relay."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from llm_vetting.llm.anthropic import ANTHROPIC_URL, ANTHROPIC_VERSION
from llm_vetting.llm.openai import DEEPSEEK_URL, OPENAI_URL
from llm_vetting.relay import create_app

SSE_BODY = b'data: {"choices": [{"delta": {"content": "hi"}}]}\n\ndata: [DONE]\n\n'
REQUEST_BODY = {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "hi"}], "stream": True}


class Upstream:
    """Mock provider that records what the relay sends it."""

    def __init__(self, status: int = 200, content: bytes = SSE_BODY, fail: bool = False):
        self.status = status
        self.content = content
        self.fail = fail
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ConnectError("no route to host", request=request)
        return httpx.Response(self.status, content=self.content, headers={"content-type": "text/event-stream"})


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def client(upstream: Upstream) -> TestClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    return TestClient(create_app(client=http))


class TestRelay:
    """Tests for the relay endpoint."""

    def test_openai_forwarded_with_bearer(self, client: TestClient, upstream: Upstream):
        """Test that the neutral header becomes a bearer token."""
        response = client.post(
            "/api/relay/openai",
            headers={"x-user-api-key": "sk-user"},
            content=json.dumps(REQUEST_BODY),
        )

        assert response.status_code == 200
        assert response.content == SSE_BODY
        assert response.headers["cache-control"] == "no-cache"

        sent = upstream.requests[0]
        assert str(sent.url) == OPENAI_URL
        assert sent.headers["Authorization"] == "Bearer sk-user"
        assert "x-user-api-key" not in sent.headers
        assert json.loads(sent.content) == REQUEST_BODY

    def test_anthropic_headers(self, client: TestClient, upstream: Upstream):
        """Test that Anthropic gets its key and version headers."""
        client.post("/api/relay/anthropic", headers={"x-user-api-key": "sk-ant"}, content=b"{}")

        sent = upstream.requests[0]
        assert str(sent.url) == ANTHROPIC_URL
        assert sent.headers["x-api-key"] == "sk-ant"
        assert sent.headers["anthropic-version"] == ANTHROPIC_VERSION

    def test_deepseek_url(self, client: TestClient, upstream: Upstream):
        """Test DeepSeek routing."""
        client.post("/api/relay/deepseek", headers={"x-user-api-key": "k"}, content=b"{}")
        assert str(upstream.requests[0].url) == DEEPSEEK_URL

    def test_missing_key_header(self, client: TestClient, upstream: Upstream):
        """Test that requests without a key are rejected before forwarding."""
        response = client.post("/api/relay/openai", content=b"{}")

        assert response.status_code == 400
        assert response.text == "Missing x-user-api-key"
        assert upstream.requests == []

    @pytest.mark.parametrize("provider", ["mistral", "openai_compatible"])
    def test_unknown_provider(self, client: TestClient, provider: str):
        """Test that only fixed upstreams are relayed."""
        response = client.post(f"/api/relay/{provider}", headers={"x-user-api-key": "k"}, content=b"{}")
        assert response.status_code == 404

    def test_upstream_error_passed_through(self):
        """Test that upstream status and body are returned verbatim."""
        upstream = Upstream(status=429, content=b'{"error": "rate limited"}')
        http = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        client = TestClient(create_app(client=http))

        response = client.post("/api/relay/openai", headers={"x-user-api-key": "k"}, content=b"{}")

        assert response.status_code == 429
        assert response.content == b'{"error": "rate limited"}'

    def test_network_failure(self):
        """Test that an unreachable upstream yields a generic 500."""
        http = httpx.AsyncClient(transport=httpx.MockTransport(Upstream(fail=True)))
        client = TestClient(create_app(client=http))

        response = client.post("/api/relay/openai", headers={"x-user-api-key": "k"}, content=b"{}")

        assert response.status_code == 500
        assert response.text == "Internal server error"
