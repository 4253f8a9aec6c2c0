"""Tests for the exact, fuzzy, semantic and historical mapping strategies."""

from __future__ import annotations

import pytest

from import_mapper.extraction.profiling import ExtractedFields, SourceField
from import_mapper.learning.cache import LearningCache
from import_mapper.learning.store import InMemoryPatternStore
from import_mapper.mapping.schema import SKU_SCHEMA
from import_mapper.mapping.strategies.base import CostBudget, MappingContext
from import_mapper.mapping.strategies.historical import HistoricalMatchStrategy
from import_mapper.mapping.strategies.lexical import ExactMatchStrategy, FuzzyMatchStrategy
from import_mapper.mapping.strategies.semantic import SemanticMatchStrategy


def _context(*fields: SourceField) -> MappingContext:
    return MappingContext(
        extracted=ExtractedFields(fields=list(fields)),
        schema=SKU_SCHEMA,
        budget=CostBudget(0.001),
    )


def _field(name: str, samples: list | None = None, data_type: str = "string", nulls: float = 0):
    return SourceField(
        name=name,
        data_type=data_type,
        sample_values=samples or [],
        null_percentage=nulls,
    )


class TestExactMatch:
    @pytest.mark.asyncio
    async def test_case_insensitive(self):
        result = await ExactMatchStrategy().propose(_context(_field("SKU"), _field("Price")))
        assert [(m.source_field, m.target_field) for m in result.mappings] == [
            ("SKU", "sku"),
            ("Price", "price"),
        ]
        assert all(m.confidence == 95 for m in result.mappings)
        assert all(m.metadata.score == 95 for m in result.mappings)
        assert result.confidence == 95

    @pytest.mark.asyncio
    async def test_product_name_is_not_exact(self):
        result = await ExactMatchStrategy().propose(_context(_field("product_name")))
        assert result.mappings == []
        assert result.confidence == 0


class TestFuzzyMatch:
    @pytest.mark.asyncio
    async def test_close_spelling(self):
        result = await FuzzyMatchStrategy().propose(_context(_field("prise")))
        assert len(result.mappings) == 1
        mapping = result.mappings[0]
        assert mapping.target_field == "price"
        assert mapping.confidence == 68
        assert mapping.metadata.score == 68
        assert mapping.metadata.similarity_score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_below_threshold(self):
        result = await FuzzyMatchStrategy().propose(_context(_field("warehouse")))
        assert result.mappings == []


class TestSemanticMatch:
    @pytest.mark.asyncio
    async def test_product_name(self):
        result = await SemanticMatchStrategy().propose(
            _context(_field("product_name", ["Widget Pro", "Gadget Max"]))
        )
        mapping = result.mappings[0]
        assert mapping.target_field == "name"
        assert 60 <= mapping.confidence <= 79
        assert mapping.metadata.score == mapping.confidence
        assert mapping.metadata.pattern_match

    @pytest.mark.asyncio
    async def test_name_match_without_content_or_completeness(self):
        result = await SemanticMatchStrategy().propose(
            _context(_field("stock_qty", ["lots"], nulls=50))
        )
        mapping = result.mappings[0]
        assert mapping.target_field == "stock"
        assert mapping.confidence == 75

    @pytest.mark.asyncio
    async def test_content_only_fallback(self):
        result = await SemanticMatchStrategy().propose(
            _context(_field("label", ["Deluxe Widget"]))
        )
        mapping = result.mappings[0]
        assert mapping.target_field == "name"
        assert mapping.confidence == 75
        assert not mapping.metadata.pattern_match

    @pytest.mark.asyncio
    async def test_rules_for_missing_targets_are_skipped(self):
        context = _context(_field("product_name", ["Widget Pro"]))
        context.schema = {"sku": SKU_SCHEMA["sku"]}
        result = await SemanticMatchStrategy().propose(context)
        assert result.mappings == []


class TestHistoricalMatch:
    @pytest.mark.asyncio
    async def test_matches_learned_patterns(self):
        cache = LearningCache(InMemoryPatternStore())
        await cache.learn_from_mapping("Product Title", "name", 90, "semantic")
        strategy = HistoricalMatchStrategy(cache)
        result = await strategy.propose(_context(_field("product_titles")))
        mapping = result.mappings[0]
        assert mapping.target_field == "name"
        assert mapping.strategy == "historical"
        assert mapping.confidence == 60
        assert mapping.metadata.historical_usage == 1
        assert mapping.metadata.score == 60

    @pytest.mark.asyncio
    async def test_empty_cache(self):
        strategy = HistoricalMatchStrategy(LearningCache(InMemoryPatternStore()))
        result = await strategy.propose(_context(_field("product_titles")))
        assert result.mappings == []

    @pytest.mark.asyncio
    async def test_cache_read_failure_yields_no_mappings(self):
        class _FailingStore(InMemoryPatternStore):
            def list_patterns(self):
                raise OSError("disk gone")

        strategy = HistoricalMatchStrategy(LearningCache(_FailingStore()))
        result = await strategy.propose(_context(_field("product_titles")))
        assert result.mappings == []
