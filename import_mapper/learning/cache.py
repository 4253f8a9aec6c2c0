"""Learning cache: remembers accepted mappings and turns them into suggestions.

Every accepted mapping is folded into a pattern keyed by the normalized
source-field name. Patterns that have been reused often and reliably are
offered back as suggestions for new files, by exact, fuzzy (character-set
Jaccard) or partial (word substring) match.

Writes are best effort: a failing store is logged and never surfaces to the
mapping caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

from import_mapper.config.settings import LearningConfig
from import_mapper.learning.models import (
    HistoricalData,
    LearningInsight,
    LearningStatistics,
    LearningSuggestion,
    MappingPattern,
    PatternMetadata,
)
from import_mapper.learning.store import CacheWriteError, PatternStore
from import_mapper.mapping.similarity import jaccard_similarity, normalize_field_name, round_half_up
from import_mapper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

VARIATION_PREFIXES: tuple[str, ...] = ("product_", "item_", "sku_", "field_")
VARIATION_SUFFIXES: tuple[str, ...] = ("_name", "_id", "_value", "_field")
ABBREVIATIONS: dict[str, str] = {
    "desc": "description",
    "qty": "quantity",
    "amt": "amount",
    "num": "number",
    "img": "image",
    "url": "link",
    "wt": "weight",
    "ht": "height",
    "wd": "width",
}

FUZZY_THRESHOLD = 0.7
FUZZY_DISCOUNT = 0.8
PARTIAL_DISCOUNT = 0.6
PARTIAL_MIN_CONFIDENCE = 50
RECENT_USE_DAYS = 7
HIGH_CONFIDENCE_RATE = 80


def generate_field_variations(normalized: str) -> list[str]:
    """Alternate spellings of a normalized name: affixes stripped, abbreviations expanded."""
    variations: list[str] = []
    for prefix in VARIATION_PREFIXES:
        if normalized.startswith(prefix):
            variations.append(normalized[len(prefix) :])
    for suffix in VARIATION_SUFFIXES:
        if normalized.endswith(suffix):
            variations.append(normalized[: -len(suffix)])
    words = normalized.split("_")
    if any(word in ABBREVIATIONS for word in words):
        variations.append("_".join(ABBREVIATIONS.get(word, word) for word in words))

    unique: list[str] = []
    for variation in variations:
        variation = variation.strip("_")
        if variation and variation != normalized and variation not in unique:
            unique.append(variation)
    return unique


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LearningCache:
    """Pattern memory backed by a PatternStore."""

    def __init__(self, store: PatternStore, config: LearningConfig | None = None) -> None:
        self._store = store
        self._config = config or LearningConfig()
        self._lock = asyncio.Lock()
        self._warm: dict[str, MappingPattern] = {}

    @property
    def store(self) -> PatternStore:
        return self._store

    async def learn_from_mapping(
        self,
        source_field: str,
        target_field: str,
        confidence: int,
        strategy: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an accepted mapping. Storage failures are logged, never raised."""
        normalized = normalize_field_name(source_field)
        if not normalized:
            return
        confidence = max(0, min(100, int(confidence)))
        try:
            async with self._lock:
                self._upsert(normalized, target_field, confidence, strategy, metadata or {})
                self._store_variations(normalized, target_field, confidence, strategy)
        except CacheWriteError as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.CACHE_WRITE_FAILED,
                message=str(exc),
                suppressed=True,
                strategy=strategy,
                details={"source_pattern": normalized, "target_field": target_field},
            )
            return
        logger.debug("Learned %s -> %s (%d, %s)", normalized, target_field, confidence, strategy)

    async def get_suggestions(self, source_fields: list[str]) -> list[LearningSuggestion]:
        """Suggestions for each field that has any; fields without matches are omitted."""
        suggestions = []
        for source_field in source_fields:
            suggestion = await self.get_suggestions_for_field(source_field)
            if suggestion.suggestions:
                suggestions.append(suggestion)
        return suggestions

    async def get_suggestions_for_field(self, source_field: str) -> LearningSuggestion:
        normalized = normalize_field_name(source_field)
        qualifying = self._qualifying_patterns()
        insights: list[LearningInsight] = []

        exact = self._warm.get(normalized) or self._store.get(normalized)
        if exact is not None and self._qualifies(exact):
            insights.append(
                self._insight(
                    exact,
                    min(95, round_half_up(exact.success_rate)),
                    f"Exact match with {exact.usage_count} previous uses",
                )
            )

        if not insights:
            insights.extend(self._fuzzy_insights(normalized, qualifying))

        if not insights:
            insights.extend(self._partial_insights(normalized, qualifying))

        insights.sort(key=lambda insight: insight.predicted_confidence, reverse=True)
        insights = insights[: self._config.max_suggestions]
        return LearningSuggestion(
            source_field=source_field,
            suggestions=insights,
            confidence=max((insight.predicted_confidence for insight in insights), default=0),
        )

    async def top_patterns(self, limit: int = 100) -> list[MappingPattern]:
        """Most used patterns, most recently used first among equals."""
        patterns = sorted(
            self._store.list_patterns(),
            key=lambda pattern: (pattern.usage_count, pattern.last_used_at),
            reverse=True,
        )
        return patterns[:limit]

    async def recent_patterns(self, limit: int = 100) -> list[MappingPattern]:
        patterns = sorted(
            self._store.list_patterns(), key=lambda pattern: pattern.last_used_at, reverse=True
        )
        return patterns[:limit]

    async def warm_cache(self) -> list[MappingPattern]:
        """Read-only prefetch of heavily used patterns."""
        warm = [
            pattern
            for pattern in await self.top_patterns(self._config.cache_warm_limit)
            if pattern.usage_count > self._config.cache_warm_threshold
        ]
        self._warm = {pattern.source_pattern: pattern for pattern in warm}
        logger.info("Warmed learning cache with %d patterns", len(warm))
        return warm

    async def clean_old_patterns(self, days_old: int | None = None) -> int:
        """Delete patterns unused for ``days_old`` days that were also rarely used."""
        cutoff = _now() - timedelta(
            days=self._config.retention_days if days_old is None else days_old
        )
        async with self._lock:
            stale = [
                pattern.source_pattern
                for pattern in self._store.list_patterns()
                if pattern.last_used_at < cutoff
                and pattern.usage_count < self._config.min_usage_for_pattern
            ]
            try:
                removed = self._store.delete(stale) if stale else 0
            except CacheWriteError as exc:
                emit_structured_error(
                    logger,
                    code=ErrorCode.CACHE_WRITE_FAILED,
                    message=str(exc),
                    suppressed=True,
                )
                return 0
        for source_pattern in stale:
            self._warm.pop(source_pattern, None)
        logger.info("Cleaned %d stale learning patterns", removed)
        return removed

    async def get_statistics(self) -> LearningStatistics:
        patterns = self._store.list_patterns()
        if not patterns:
            return LearningStatistics()
        recent_cutoff = _now() - timedelta(days=RECENT_USE_DAYS)
        return LearningStatistics(
            total_patterns=len(patterns),
            avg_usage=sum(pattern.usage_count for pattern in patterns) / len(patterns),
            avg_success_rate=sum(pattern.success_rate for pattern in patterns) / len(patterns),
            high_confidence_patterns=sum(
                1 for pattern in patterns if pattern.success_rate > HIGH_CONFIDENCE_RATE
            ),
            recently_used=sum(1 for pattern in patterns if pattern.last_used_at > recent_cutoff),
            strategies=dict(Counter(pattern.strategy for pattern in patterns)),
        )

    # --- Internals ---

    def _upsert(
        self,
        normalized: str,
        target_field: str,
        confidence: int,
        strategy: str,
        metadata: dict[str, Any],
    ) -> None:
        now = _now()
        existing = self._store.get(normalized)
        if existing is None:
            pattern = MappingPattern(
                source_pattern=normalized,
                target_field=target_field,
                confidence=confidence,
                strategy=strategy,
                usage_count=1,
                success_rate=confidence,
                metadata=PatternMetadata(
                    **{**metadata, "strategies": [strategy], "first_seen_at": now}
                ),
                last_used_at=now,
                created_at=now,
            )
        else:
            count = existing.usage_count
            history = (existing.metadata.strategies + [strategy])[
                -self._config.strategy_history_limit :
            ]
            pattern = existing.model_copy(
                update={
                    "usage_count": count + 1,
                    "success_rate": min(
                        100.0, (existing.success_rate * count + confidence) / (count + 1)
                    ),
                    "confidence": max(existing.confidence, confidence),
                    "last_used_at": now,
                    "metadata": existing.metadata.model_copy(update={"strategies": history}),
                }
            )
        self._store.put(pattern)
        if normalized in self._warm:
            self._warm[normalized] = pattern

    def _store_variations(
        self, normalized: str, target_field: str, confidence: int, strategy: str
    ) -> None:
        factor = self._config.variation_factor
        now = _now()
        for variation in generate_field_variations(normalized):
            if self._store.get(variation) is not None:
                continue
            self._store.put(
                MappingPattern(
                    source_pattern=variation,
                    target_field=target_field,
                    confidence=round_half_up(confidence * factor),
                    strategy=f"{strategy}_variation",
                    usage_count=1,
                    success_rate=confidence * factor,
                    metadata=PatternMetadata(
                        strategies=[f"{strategy}_variation"],
                        is_variation=True,
                        original_pattern=normalized,
                        first_seen_at=now,
                    ),
                    last_used_at=now,
                    created_at=now,
                )
            )

    def _qualifies(self, pattern: MappingPattern) -> bool:
        return (
            pattern.usage_count > self._config.min_usage_for_pattern
            and pattern.success_rate > self._config.min_success_rate
        )

    def _qualifying_patterns(self) -> list[MappingPattern]:
        patterns = [pattern for pattern in self._store.list_patterns() if self._qualifies(pattern)]
        return sorted(patterns, key=lambda pattern: pattern.usage_count, reverse=True)

    def _fuzzy_insights(
        self, normalized: str, qualifying: list[MappingPattern]
    ) -> list[LearningInsight]:
        scored = []
        for pattern in qualifying:
            if pattern.source_pattern == normalized:
                continue
            similarity = jaccard_similarity(normalized, pattern.source_pattern)
            if similarity <= FUZZY_THRESHOLD:
                continue
            adjusted = round_half_up(pattern.success_rate * similarity * FUZZY_DISCOUNT)
            if adjusted > self._config.min_success_rate:
                scored.append(
                    self._insight(
                        pattern,
                        adjusted,
                        f"Similar to '{pattern.source_pattern}' "
                        f"({round_half_up(similarity * 100)}% character overlap)",
                    )
                )
        scored.sort(key=lambda insight: insight.predicted_confidence, reverse=True)
        return scored[:2]

    def _partial_insights(
        self, normalized: str, qualifying: list[MappingPattern]
    ) -> list[LearningInsight]:
        insights: list[LearningInsight] = []
        seen: set[str] = set()
        for word in (word for word in normalized.split("_") if len(word) > 2):
            matches = [pattern for pattern in qualifying if word in pattern.source_pattern][:3]
            for pattern in matches:
                if pattern.source_pattern in seen:
                    continue
                adjusted = round_half_up(pattern.success_rate * PARTIAL_DISCOUNT)
                if adjusted > PARTIAL_MIN_CONFIDENCE:
                    seen.add(pattern.source_pattern)
                    insights.append(
                        self._insight(
                            pattern,
                            adjusted,
                            f"Partial match on '{word}' with '{pattern.source_pattern}'",
                        )
                    )
        insights.sort(key=lambda insight: insight.predicted_confidence, reverse=True)
        return insights[:2]

    @staticmethod
    def _insight(pattern: MappingPattern, predicted: int, reasoning: str) -> LearningInsight:
        strategies = pattern.metadata.strategies or [pattern.strategy]
        return LearningInsight(
            pattern=pattern.source_pattern,
            target_field=pattern.target_field,
            predicted_confidence=max(0, min(100, predicted)),
            reasoning=reasoning,
            historical_data=HistoricalData(
                total_usage=pattern.usage_count,
                success_rate=pattern.success_rate,
                avg_confidence=pattern.confidence,
                most_common_strategy=Counter(strategies).most_common(1)[0][0],
            ),
        )
