"""Tests for the adaptive extraction orchestrator."""

from __future__ import annotations

import time

import pytest

from import_mapper.config.settings import ExtractionConfig
from import_mapper.extraction.extractor import (
    EMERGENCY_CONFIDENCE,
    EMERGENCY_STRATEGY,
    AdaptiveExtractor,
)
from import_mapper.extraction.models import DataPatterns, ParseResult, PreAnalysis
from import_mapper.extraction.strategies.base import BaseStrategy

PRODUCTS_CSV = b"name,price,stock\nWidget,9.99,10\nGadget,19.50,3\nDoohickey,4.25,7\n"


class _BrokenStrategy(BaseStrategy):
    name = "broken"
    priority = 200

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        raise RuntimeError("boom")


class _SlowStrategy(BaseStrategy):
    name = "slow"
    priority = 200

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        time.sleep(0.3)
        return self.failure_result("too slow")


class _CustomStrategy(BaseStrategy):
    name = "custom"
    priority = 90

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        return self.failure_result("not mine")


def _sequential() -> ExtractionConfig:
    return ExtractionConfig(enable_parallel_execution=False)


class TestExtractCsv:
    @pytest.mark.asyncio
    async def test_well_formed_csv(self):
        result = await AdaptiveExtractor().extract_csv(PRODUCTS_CSV, "products.csv")
        assert result.success
        assert 70 <= result.confidence <= 100
        assert result.report is not None
        assert result.report.score == result.confidence

    @pytest.mark.asyncio
    async def test_sequential_prefers_standard(self):
        result = await AdaptiveExtractor(_sequential()).extract_csv(PRODUCTS_CSV)
        assert result.strategy_name == "standard"
        assert result.rows[0] == {"name": "Widget", "price": 9.99, "stock": 10}
        assert result.metadata.parse_time_ms >= 0

    @pytest.mark.asyncio
    async def test_semicolon_file(self):
        data = b"name;price;stock\nWidget;9.99;10\nGadget;19.50;3\n"
        result = await AdaptiveExtractor(_sequential()).extract_csv(data)
        assert result.success
        assert result.strategy_name == "alternative-delimiters"
        assert result.metadata.delimiter == ";"

    @pytest.mark.asyncio
    async def test_emergency_fallback_when_strategies_fail(self):
        extractor = AdaptiveExtractor(strategies=[_BrokenStrategy()])
        result = await extractor.extract_csv(b"a,b\n1,2\n", "broken.csv")
        assert result.success
        assert result.confidence == EMERGENCY_CONFIDENCE
        assert result.strategy_name == EMERGENCY_STRATEGY
        assert result.rows[0] == {"column_1": "a", "column_2": "b"}
        assert len(result.rows) == 2

    @pytest.mark.asyncio
    async def test_empty_input_fails_without_raising(self):
        result = await AdaptiveExtractor().extract_csv(b"")
        assert not result.success
        assert result.confidence == 0
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_timeout(self):
        extractor = AdaptiveExtractor(
            ExtractionConfig(timeout_ms=50),
            strategies=[_SlowStrategy()],
        )
        result = await extractor.extract_csv(PRODUCTS_CSV)
        assert not result.success
        assert result.strategy_name == "timeout"
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_broken_strategy_is_logged(self, caplog):
        extractor = AdaptiveExtractor(strategies=[_BrokenStrategy()])
        await extractor.extract_csv(b"a,b\n1,2\n")
        events = [r for r in caplog.records if r.getMessage() == "import_mapper_error"]
        assert any(r.error_code == "PARSE_STRATEGY_FAILED" for r in events)

    @pytest.mark.asyncio
    async def test_stats(self):
        extractor = AdaptiveExtractor(_sequential())
        await extractor.extract_csv(PRODUCTS_CSV)
        await extractor.extract_csv(b"")
        stats = extractor.get_extraction_stats()
        assert stats.total_extractions == 2
        assert stats.successful_extractions == 1
        assert stats.success_rate == 50
        assert stats.strategy_usage["standard"] == 1


class TestStrategySelection:
    def test_selection_from_pre_analysis(self):
        analysis = PreAnalysis(
            detected_delimiters=[",", ";"],
            has_quotes=True,
            data_patterns=DataPatterns(has_text_headers=True, has_numeric_data=True),
        )
        names = [s.name for s in AdaptiveExtractor().select_strategies(analysis)]
        assert names == ["standard", "alternative-delimiters", "complex-fields", "dirty-recovery"]

    def test_numeric_data_without_headers(self):
        analysis = PreAnalysis(
            detected_delimiters=[","],
            data_patterns=DataPatterns(has_numeric_data=True),
        )
        names = [s.name for s in AdaptiveExtractor().select_strategies(analysis)]
        assert names == ["standard", "numeric-headerless", "dirty-recovery"]

    def test_max_strategies_keeps_dirty_recovery_last(self):
        analysis = PreAnalysis(detected_delimiters=[",", ";"], has_quotes=True)
        extractor = AdaptiveExtractor(ExtractionConfig(max_strategies=2))
        names = [s.name for s in extractor.select_strategies(analysis)]
        assert names == ["standard", "dirty-recovery"]


class TestRegisterStrategy:
    def test_registered_strategy_is_ordered_by_priority(self):
        extractor = AdaptiveExtractor()
        extractor.register_strategy(_CustomStrategy())
        names = [s.name for s in extractor.strategies]
        assert names.index("custom") == names.index("standard") + 1

    def test_register_replaces_same_name(self):
        extractor = AdaptiveExtractor()
        extractor.register_strategy(_CustomStrategy())
        extractor.register_strategy(_CustomStrategy())
        assert [s.name for s in extractor.strategies].count("custom") == 1

    def test_custom_strategy_is_selected_before_dirty_recovery(self):
        extractor = AdaptiveExtractor()
        extractor.register_strategy(_CustomStrategy())
        names = [s.name for s in extractor.select_strategies(PreAnalysis())]
        assert names == ["standard", "custom", "dirty-recovery"]
