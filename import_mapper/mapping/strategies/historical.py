"""Matching against patterns remembered by the learning cache."""

from __future__ import annotations

import logging
import time

from import_mapper.learning.cache import LearningCache
from import_mapper.mapping.models import FieldMapping, MappingMetadata, StrategyResult
from import_mapper.mapping.similarity import (
    levenshtein_similarity,
    normalize_field_name,
    round_half_up,
)
from import_mapper.mapping.strategies.base import MappingContext, build_result
from import_mapper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class HistoricalMatchStrategy:
    name = "historical"

    def __init__(
        self,
        cache: LearningCache,
        threshold: float = 0.6,
        max_confidence: int = 65,
        pool_size: int = 100,
    ) -> None:
        self._cache = cache
        self._threshold = threshold
        self._max_confidence = max_confidence
        self._pool_size = pool_size

    async def propose(self, context: MappingContext) -> StrategyResult:
        start = time.perf_counter()
        try:
            patterns = await self._cache.top_patterns(self._pool_size)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.CACHE_READ_FAILED,
                message=str(exc),
                suppressed=True,
                strategy=self.name,
            )
            return build_result(self.name, [], (time.perf_counter() - start) * 1000)

        patterns = [pattern for pattern in patterns if pattern.target_field in context.schema]
        mappings = []
        for source in context.source_fields:
            normalized = normalize_field_name(source.name)
            best, best_similarity = None, 0.0
            for pattern in patterns:
                similarity = levenshtein_similarity(normalized, pattern.source_pattern)
                if similarity > best_similarity:
                    best, best_similarity = pattern, similarity
            if best is None or best_similarity <= self._threshold:
                continue
            confidence = round_half_up(best_similarity * self._max_confidence)
            mappings.append(
                FieldMapping(
                    source_field=source.name,
                    target_field=best.target_field,
                    confidence=confidence,
                    strategy="historical",
                    reasoning=(
                        f"Matches learned pattern '{best.source_pattern}' "
                        f"used {best.usage_count} times"
                    ),
                    metadata=MappingMetadata(
                        data_type_match=context.type_match(source, best.target_field),
                        similarity_score=best_similarity,
                        historical_usage=best.usage_count,
                        score=confidence,
                    ),
                )
            )
        return build_result(self.name, mappings, (time.perf_counter() - start) * 1000)
