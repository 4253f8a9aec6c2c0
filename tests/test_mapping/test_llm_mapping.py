"""Tests for model-assisted mapping against a mocked completion service."""

from __future__ import annotations

import json

import httpx
import pytest

from import_mapper.config.settings import LLMConfig, RetryConfig
from import_mapper.extraction.profiling import ExtractedFields, SourceField
from import_mapper.llm.gateway import CompletionGateway
from import_mapper.mapping.schema import SKU_SCHEMA
from import_mapper.mapping.strategies.base import CostBudget, MappingContext
from import_mapper.mapping.strategies.llm import (
    LLMMappingStrategy,
    build_system_prompt,
    build_user_prompt,
)

REPLY = {
    "mappings": [
        {"sourceField": "prod_title", "targetField": "name", "confidence": 95, "reasoning": "t"},
        {"sourceField": "ghost", "targetField": "sku", "confidence": 90},
        {"sourceField": "qty_x", "targetField": "unmapped", "confidence": 10},
        {"sourceField": "qty_x", "targetField": "stock", "confidence": 20},
        {"sourceField": "ref", "targetField": "sku", "confidence": 70},
    ]
}


def _gateway(handler, api_key: str = "test-key") -> CompletionGateway:
    config = LLMConfig(
        api_key=api_key,
        base_url="https://llm.test/api/v1",
        retry=RetryConfig(max_retries=0, backoff_base_ms=0),
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionGateway(config, client=client)


def _completion(content: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
    }


def _context(budget: float = 0.01) -> MappingContext:
    fields = [
        SourceField(name="prod_title", sample_values=["Widget Pro"]),
        SourceField(name="qty_x", data_type="number", sample_values=[3]),
        SourceField(name="ref", sample_values=["W-1"]),
    ]
    return MappingContext(
        extracted=ExtractedFields(
            fields=fields, sample_data=[{"prod_title": "Widget Pro", "qty_x": 3, "ref": "W-1"}]
        ),
        schema=SKU_SCHEMA,
        budget=CostBudget(budget),
    )


class TestPrompts:
    def test_system_prompt_lists_targets(self):
        prompt = build_system_prompt(SKU_SCHEMA)
        assert "- sku (string, required): Stock keeping unit code" in prompt
        assert '"sourceField"' in prompt

    def test_user_prompt_has_fields_and_samples(self):
        prompt = build_user_prompt(_context(), sample_rows=1)
        assert "prod_title (string" in prompt
        assert "Widget Pro" in prompt


class TestLLMMappingStrategy:
    @pytest.mark.asyncio
    async def test_filters_and_clamps_proposals(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=_completion("Sure:\n" + json.dumps(REPLY)))

        context = _context()
        strategy = LLMMappingStrategy(_gateway(handler), max_tokens=200)
        result = await strategy.propose(context)

        assert [(m.source_field, m.target_field) for m in result.mappings] == [
            ("prod_title", "name"),
            ("ref", "sku"),
        ]
        assert result.mappings[0].confidence == 89
        assert result.mappings[1].confidence == 70
        assert all(m.strategy == "llm" for m in result.mappings)
        assert [m.metadata.score for m in result.mappings] == [89, 70]
        assert result.cost == pytest.approx(100 * 0.15e-6 + 50 * 0.6e-6)
        assert context.budget.spent == pytest.approx(result.cost)
        assert requests[0]["max_tokens"] == 200
        assert requests[0]["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_unavailable_gateway_makes_no_call(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        strategy = LLMMappingStrategy(_gateway(handler, api_key=""))
        result = await strategy.propose(_context())
        assert result.mappings == []

    @pytest.mark.asyncio
    async def test_exhausted_budget_is_skipped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        strategy = LLMMappingStrategy(_gateway(handler), max_tokens=200)
        result = await strategy.propose(_context(budget=0))
        assert result.mappings == []
        assert result.cost == 0

    @pytest.mark.asyncio
    async def test_malformed_reply(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_completion("I cannot help with that."))

        strategy = LLMMappingStrategy(_gateway(handler), max_tokens=200)
        result = await strategy.propose(_context())
        assert result.mappings == []
        assert result.cost > 0

    @pytest.mark.asyncio
    async def test_service_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        strategy = LLMMappingStrategy(_gateway(handler), max_tokens=200)
        result = await strategy.propose(_context())
        assert result.mappings == []
