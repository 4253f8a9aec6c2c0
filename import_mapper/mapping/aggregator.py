"""Fuse per-strategy candidates into one mapping per source field."""

from __future__ import annotations

import logging

from import_mapper.mapping.models import (
    STRATEGY_PRIORITY,
    AggregatedMappings,
    FieldMapping,
    StrategyResult,
    mean_confidence,
)

logger = logging.getLogger(__name__)


def _rank(mapping: FieldMapping) -> tuple[int, int]:
    return mapping.confidence, STRATEGY_PRIORITY.get(mapping.strategy, 0)


class MappingAggregator:
    """Pick the strongest candidate per source field.

    Candidates are ordered by confidence, then strategy priority. The winner
    is accepted only at or above ``min_confidence``. Unless duplicates are
    allowed, each target field is claimed once: winners are ranked by
    (confidence, priority, source order) and later claimants of an already
    taken target are demoted to unmapped.
    """

    def __init__(self, min_confidence: int = 60, allow_duplicate_targets: bool = False) -> None:
        self.min_confidence = min_confidence
        self.allow_duplicate_targets = allow_duplicate_targets

    def aggregate(
        self,
        results: list[StrategyResult],
        source_fields: list[str],
        schema_keys: set[str] | None = None,
    ) -> AggregatedMappings:
        candidates: dict[str, list[FieldMapping]] = {name: [] for name in source_fields}
        for result in results:
            for mapping in result.mappings:
                if mapping.source_field not in candidates:
                    continue
                if schema_keys is not None and mapping.target_field not in schema_keys:
                    continue
                candidates[mapping.source_field].append(mapping)

        winners: list[tuple[int, FieldMapping]] = []
        unmapped: set[str] = set()
        for order, name in enumerate(source_fields):
            options = sorted(candidates[name], key=_rank, reverse=True)
            if options and options[0].confidence >= self.min_confidence:
                winners.append((order, options[0]))
            else:
                unmapped.add(name)

        accepted: list[tuple[int, FieldMapping]] = []
        if self.allow_duplicate_targets:
            accepted = winners
        else:
            claimed: set[str] = set()
            ranked = sorted(winners, key=lambda item: (*_rank(item[1]), -item[0]), reverse=True)
            for order, mapping in ranked:
                if mapping.target_field in claimed:
                    logger.debug(
                        "Target %s already claimed; demoting %s",
                        mapping.target_field,
                        mapping.source_field,
                    )
                    unmapped.add(mapping.source_field)
                    continue
                claimed.add(mapping.target_field)
                accepted.append((order, mapping))

        mappings = [mapping for _, mapping in sorted(accepted, key=lambda item: item[0])]
        return AggregatedMappings(
            mappings=mappings,
            unmapped_fields=[name for name in source_fields if name in unmapped],
            confidence=mean_confidence(mappings),
        )
