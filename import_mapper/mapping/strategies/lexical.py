"""Name-based strategies: exact and fuzzy matching against schema keys."""

from __future__ import annotations

import time

from import_mapper.mapping.models import FieldMapping, MappingMetadata, StrategyResult
from import_mapper.mapping.similarity import levenshtein_similarity, round_half_up
from import_mapper.mapping.strategies.base import MappingContext, build_result

EXACT_CONFIDENCE = 95


class ExactMatchStrategy:
    name = "exact"

    async def propose(self, context: MappingContext) -> StrategyResult:
        start = time.perf_counter()
        targets = {target.lower(): target for target in context.schema}
        mappings = []
        for source in context.source_fields:
            target = targets.get(source.name.lower())
            if target is None:
                continue
            mappings.append(
                FieldMapping(
                    source_field=source.name,
                    target_field=target,
                    confidence=EXACT_CONFIDENCE,
                    strategy="exact",
                    reasoning="Exact field name match",
                    metadata=MappingMetadata(
                        data_type_match=context.type_match(source, target),
                        similarity_score=1.0,
                        score=EXACT_CONFIDENCE,
                    ),
                )
            )
        return build_result(self.name, mappings, (time.perf_counter() - start) * 1000)


class FuzzyMatchStrategy:
    """Levenshtein similarity on lowercased names; the best target above threshold wins."""

    name = "fuzzy"

    def __init__(self, threshold: float = 0.7, max_confidence: int = 85) -> None:
        self._threshold = threshold
        self._max_confidence = max_confidence

    async def propose(self, context: MappingContext) -> StrategyResult:
        start = time.perf_counter()
        mappings = []
        for source in context.source_fields:
            name = source.name.lower()
            best_target, best_similarity = None, 0.0
            for target in context.schema:
                similarity = levenshtein_similarity(name, target.lower())
                if similarity > best_similarity:
                    best_target, best_similarity = target, similarity
            if best_target is None or best_similarity <= self._threshold:
                continue
            confidence = round_half_up(best_similarity * self._max_confidence)
            mappings.append(
                FieldMapping(
                    source_field=source.name,
                    target_field=best_target,
                    confidence=confidence,
                    strategy="fuzzy",
                    reasoning=f"Fuzzy match ({round_half_up(best_similarity * 100)}% similar)",
                    metadata=MappingMetadata(
                        data_type_match=context.type_match(source, best_target),
                        similarity_score=best_similarity,
                        score=confidence,
                    ),
                )
            )
        return build_result(self.name, mappings, (time.perf_counter() - start) * 1000)
