"""Learning cache data models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatternMetadata(BaseModel):
    model_config = {"extra": "allow"}

    strategies: list[str] = Field(default_factory=list)
    is_variation: bool = False
    original_pattern: str | None = None
    first_seen_at: datetime | None = None


class MappingPattern(BaseModel):
    """A learned association between a normalized source name and a target field."""

    source_pattern: str
    target_field: str
    confidence: int = Field(ge=0, le=100)
    strategy: str
    usage_count: int = Field(ge=0, default=1)
    success_rate: float = Field(ge=0, le=100)
    metadata: PatternMetadata = Field(default_factory=PatternMetadata)
    last_used_at: datetime = Field(default_factory=_utcnow)
    created_at: datetime = Field(default_factory=_utcnow)


class HistoricalData(BaseModel):
    total_usage: int
    success_rate: float
    avg_confidence: float
    most_common_strategy: str


class LearningInsight(BaseModel):
    pattern: str
    target_field: str
    predicted_confidence: int = Field(ge=0, le=100)
    reasoning: str
    historical_data: HistoricalData


class LearningSuggestion(BaseModel):
    source_field: str
    suggestions: list[LearningInsight] = Field(default_factory=list)
    confidence: int = Field(ge=0, le=100, default=0)


class LearningStatistics(BaseModel):
    total_patterns: int = 0
    avg_usage: float = 0
    avg_success_rate: float = 0
    high_confidence_patterns: int = 0
    recently_used: int = 0
    strategies: dict[str, int] = Field(default_factory=dict)
