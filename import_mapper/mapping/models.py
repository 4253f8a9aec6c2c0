"""Field mapping data models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from import_mapper.mapping.similarity import round_half_up

MappingStrategyName = Literal["exact", "fuzzy", "semantic", "historical", "llm"]

# Tie-break order when two candidates for a field have equal confidence.
STRATEGY_PRIORITY: dict[str, int] = {
    "exact": 5,
    "fuzzy": 4,
    "semantic": 3,
    "historical": 2,
    "llm": 1,
}


class MappingMetadata(BaseModel):
    data_type_match: bool = False
    similarity_score: float | None = None
    pattern_match: bool | None = None
    historical_usage: int | None = None
    transformation_required: str | None = None
    score: int | None = None


class FieldMapping(BaseModel):
    """One proposed source-to-target column assignment."""

    source_field: str
    target_field: str
    confidence: int = Field(ge=0, le=100)
    strategy: MappingStrategyName
    reasoning: str = ""
    metadata: MappingMetadata = Field(default_factory=MappingMetadata)


class StrategyResult(BaseModel):
    strategy: MappingStrategyName
    mappings: list[FieldMapping] = Field(default_factory=list)
    confidence: int = Field(ge=0, le=100, default=0)
    processing_time_ms: float = 0
    cost: float = 0


class AggregatedMappings(BaseModel):
    mappings: list[FieldMapping] = Field(default_factory=list)
    unmapped_fields: list[str] = Field(default_factory=list)
    confidence: int = Field(ge=0, le=100, default=0)


class MappingResult(BaseModel):
    """Final mapping set for one import."""

    success: bool
    mappings: list[FieldMapping] = Field(default_factory=list)
    unmapped_fields: list[str] = Field(default_factory=list)
    confidence: int = Field(ge=0, le=100, default=0)
    processing_time_ms: float = 0
    strategies_used: list[MappingStrategyName] = Field(default_factory=list)
    cost: float = 0
    error: str | None = None


class StrategyStatistics(BaseModel):
    count: int = 0
    avg_confidence: float = 0
    total_usage: int = 0


def mean_confidence(mappings: list[FieldMapping]) -> int:
    if not mappings:
        return 0
    return round_half_up(sum(mapping.confidence for mapping in mappings) / len(mappings))
