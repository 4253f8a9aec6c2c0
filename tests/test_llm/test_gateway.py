"""Tests for the completion gateway: availability, cost bounds, retries and stats."""

from __future__ import annotations

import httpx
import pytest

from import_mapper.config.settings import LLMConfig, RetryConfig
from import_mapper.llm.gateway import (
    ChatMessage,
    CompletionGateway,
    CompletionOptions,
    CompletionRequest,
    estimate_tokens,
)


def _config(**overrides) -> LLMConfig:
    values = {
        "api_key": "test-key",
        "base_url": "https://llm.test/api/v1/",
        "retry": RetryConfig(max_retries=2, backoff_base_ms=0),
    }
    values.update(overrides)
    return LLMConfig(**values)


def _gateway(handler, **overrides) -> CompletionGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionGateway(_config(**overrides), client=client)


def _request(content: str = "hello", max_tokens: int = 100) -> CompletionRequest:
    return CompletionRequest(
        messages=[ChatMessage(role="user", content=content)], max_tokens=max_tokens
    )


def _ok(content: str = "ok") -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        },
    )


class TestCostEstimates:
    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_calculate_cost(self):
        gateway = CompletionGateway(_config())
        assert gateway.calculate_cost(1_000_000, 1_000_000) == pytest.approx(0.75)

    def test_estimate_cost_uses_max_tokens(self):
        gateway = CompletionGateway(_config())
        cost = gateway.estimate_cost(_request("a" * 400, max_tokens=1000))
        assert cost == pytest.approx(100 * 0.15e-6 + 1000 * 0.6e-6)


class TestCreateCompletion:
    @pytest.mark.asyncio
    async def test_success_and_headers(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok("mapped")

        gateway = _gateway(handler)
        response = await gateway.create_completion(_request())

        assert response.success
        assert response.content == "mapped"
        assert response.usage.tokens == 15
        assert response.usage.cost == pytest.approx(10 * 0.15e-6 + 5 * 0.6e-6)
        request = seen[0]
        assert str(request.url) == "https://llm.test/api/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.headers["X-Title"] == "Import Mapper"

    @pytest.mark.asyncio
    async def test_unavailable_without_api_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        gateway = _gateway(handler, api_key="")
        assert not gateway.is_available
        response = await gateway.create_completion(_request())
        assert not response.success
        assert "not configured" in response.error

    @pytest.mark.asyncio
    async def test_cost_limit_rejects_before_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        gateway = _gateway(handler)
        response = await gateway.create_completion(
            _request(max_tokens=1500), CompletionOptions(cost_limit=0.0001)
        )
        assert not response.success
        assert response.error.startswith("Estimated cost $")
        assert "exceeds limit $0.000100" in response.error

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, json={"error": {"message": "busy"}})
            return _ok()

        response = await _gateway(handler).create_completion(_request())
        assert response.success
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, caplog):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        response = await _gateway(handler).create_completion(
            _request(), CompletionOptions(retries=1)
        )
        assert not response.success
        assert response.error.startswith("Failed after 2 attempts")
        assert len(calls) == 2
        events = [r for r in caplog.records if r.getMessage() == "import_mapper_error"]
        assert any(r.error_code == "LLM_REQUEST_FAILED" for r in events)

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": {"message": "bad model"}})

        response = await _gateway(handler).create_completion(_request())
        assert not response.success
        assert len(calls) == 1
        assert "HTTP 400: bad model" in response.error

    @pytest.mark.asyncio
    async def test_invalid_json_is_final(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"not json")

        response = await _gateway(handler).create_completion(_request())
        assert not response.success
        assert "Invalid JSON" in response.error

    @pytest.mark.asyncio
    async def test_model_override(self):
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(request.read())
            return _ok()

        gateway = _gateway(handler)
        await gateway.create_completion(_request())
        request = _request()
        request.model = "other/model"
        await gateway.create_completion(request)
        assert b'"openai/gpt-4o-mini"' in payloads[0]
        assert b'"other/model"' in payloads[1]


class TestUsageStats:
    @pytest.mark.asyncio
    async def test_stats_accumulate_and_reset(self):
        gateway = _gateway(lambda request: _ok())
        await gateway.create_completion(_request())
        await gateway.create_completion(_request())

        stats = gateway.stats
        assert stats.total_requests == 2
        assert stats.total_tokens == 30
        assert stats.prompt_tokens == 20
        assert stats.completion_tokens == 10
        assert stats.total_cost == pytest.approx(2 * (10 * 0.15e-6 + 5 * 0.6e-6))

        gateway.reset_stats()
        assert gateway.stats.total_requests == 0

    @pytest.mark.asyncio
    async def test_failures_do_not_count(self):
        gateway = _gateway(lambda request: httpx.Response(404))
        await gateway.create_completion(_request())
        assert gateway.stats.total_requests == 0
