"""Composition root for the import-mapping engine.

Builds each component once from an EngineConfig and exposes the public
entry points: extraction, mapping, suggestions and the combined
``process_file`` flow.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from import_mapper.config.settings import EngineConfig
from import_mapper.extraction.extractor import AdaptiveExtractor
from import_mapper.extraction.models import ExtractionStats, ParseResult
from import_mapper.extraction.profiling import ExtractedFields, profile_fields
from import_mapper.learning.cache import LearningCache
from import_mapper.learning.models import LearningStatistics, LearningSuggestion
from import_mapper.learning.store import InMemoryPatternStore, JsonPatternStore, PatternStore
from import_mapper.llm.gateway import CompletionGateway
from import_mapper.mapping.engine import MultiStrategyMapper
from import_mapper.mapping.models import MappingResult, StrategyStatistics
from import_mapper.mapping.schema import TargetSchema

logger = logging.getLogger(__name__)


class ImportAnalysis(BaseModel):
    """Everything learned about one uploaded file."""

    success: bool
    parse_result: ParseResult
    fields: ExtractedFields | None = None
    mapping: MappingResult | None = None
    error: str | None = None


class ImportMappingService:
    def __init__(
        self,
        config: EngineConfig,
        extractor: AdaptiveExtractor,
        mapper: MultiStrategyMapper,
        learning: LearningCache,
        gateway: CompletionGateway | None = None,
    ) -> None:
        self.config = config
        self.extractor = extractor
        self.mapper = mapper
        self.learning = learning
        self.gateway = gateway

    @classmethod
    def from_config(
        cls,
        config: EngineConfig | None = None,
        store: PatternStore | None = None,
        gateway: CompletionGateway | None = None,
        schema: TargetSchema | None = None,
    ) -> ImportMappingService:
        config = config or EngineConfig()
        if store is None:
            store_path = config.learning.store_path
            store = JsonPatternStore(store_path) if store_path else InMemoryPatternStore()
        learning = LearningCache(store, config.learning)
        gateway = gateway or CompletionGateway(config.llm)
        if not gateway.is_available:
            logger.info("No LLM API key configured; model-assisted mapping disabled")
        extractor = AdaptiveExtractor(config.extraction)
        mapper = MultiStrategyMapper(
            config.mapping, schema=schema, learning=learning, gateway=gateway
        )
        return cls(config, extractor, mapper, learning, gateway)

    async def extract_csv(self, data: bytes, file_name: str = "") -> ParseResult:
        return await self.extractor.extract_csv(data, file_name)

    async def extract_file(self, data: bytes, file_name: str = "") -> ParseResult:
        return await self.extractor.extract_file(data, file_name)

    def profile(self, result: ParseResult, file_name: str = "") -> ExtractedFields:
        return profile_fields(
            result,
            file_name=file_name,
            file_type=result.metadata.file_type,
            sample_rows=self.config.extraction.profile_sample_rows,
        )

    async def generate_mappings(self, extracted: ExtractedFields) -> MappingResult:
        return await self.mapper.generate_mappings(extracted)

    async def get_suggestions(self, source_fields: list[str]) -> list[LearningSuggestion]:
        return await self.learning.get_suggestions(source_fields)

    async def process_file(self, data: bytes, file_name: str = "") -> ImportAnalysis:
        """Extract, profile and map one CSV, JSON or XLSX file."""
        parse_result = await self.extract_file(data, file_name)
        if not parse_result.success or not parse_result.rows:
            return ImportAnalysis(
                success=False,
                parse_result=parse_result,
                error=parse_result.error or "No rows could be extracted",
            )
        fields = self.profile(parse_result, file_name)
        mapping = await self.generate_mappings(fields)
        return ImportAnalysis(
            success=mapping.success,
            parse_result=parse_result,
            fields=fields,
            mapping=mapping,
            error=mapping.error,
        )

    def get_extraction_stats(self) -> ExtractionStats:
        return self.extractor.get_extraction_stats()

    async def get_strategy_statistics(self) -> dict[str, StrategyStatistics]:
        return await self.mapper.get_strategy_statistics()

    async def get_learning_statistics(self) -> LearningStatistics:
        return await self.learning.get_statistics()

    async def clean_old_patterns(self, days_old: int | None = None) -> int:
        return await self.learning.clean_old_patterns(days_old)

    async def warm_cache(self) -> int:
        return len(await self.learning.warm_cache())

    async def aclose(self) -> None:
        await self.mapper.drain_learning()
        if self.gateway is not None:
            await self.gateway.aclose()
