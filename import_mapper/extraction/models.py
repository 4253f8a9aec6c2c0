"""Extraction data models: pre-analysis, parse results and confidence reports."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class DataPatterns(BaseModel):
    """Gross content patterns observed in the sample."""

    has_text_headers: bool = False
    has_numeric_data: bool = False
    has_date_data: bool = False
    has_quoted_fields: bool = False
    has_empty_fields: bool = False


class PreAnalysis(BaseModel):
    """Structural hints sniffed from the head of a buffer."""

    sample_lines: list[str] = Field(default_factory=list)
    detected_delimiters: list[str] = Field(default_factory=list)
    encoding: str = "utf8"
    line_endings: Literal["crlf", "lf", "cr"] = "lf"
    estimated_column_count: int = 0
    has_quotes: bool = False
    has_escapes: bool = False
    data_patterns: DataPatterns = Field(default_factory=DataPatterns)


class ConfidenceMetrics(BaseModel):
    structural_consistency: float = Field(ge=0, le=100, default=0)
    data_completeness: float = Field(ge=0, le=100, default=0)
    type_consistency: float = Field(ge=0, le=100, default=0)
    delimiter_reliability: float = Field(ge=0, le=100, default=0)
    header_quality: float = Field(ge=0, le=100, default=0)
    data_variety: float = Field(ge=0, le=100, default=0)
    parse_efficiency: float = Field(ge=0, le=100, default=0)
    error_rate: float = Field(ge=0, le=100, default=0)


class ConfidenceReport(BaseModel):
    """Weighted score plus the reasoning that produced it."""

    model_config = {"frozen": True}

    score: int = Field(ge=0, le=100)
    metrics: ConfidenceMetrics
    factors: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


FileType = Literal["csv", "json", "xlsx"]


class ParseMetadata(BaseModel):
    delimiter: str = ","
    has_headers: bool = False
    total_records: int = 0
    encoding: str = "utf8"
    parse_time_ms: float = 0
    quality_score: float = Field(ge=0, le=100, default=0)
    issues: list[str] = Field(default_factory=list)
    file_type: FileType = "csv"


class ParseResult(BaseModel):
    """Outcome of one extraction attempt.

    Strategies produce unscored results (confidence 0); the orchestrator
    attaches the confidence and report, after which the result is never
    mutated.
    """

    model_config = {"frozen": True}

    success: bool
    rows: list[dict[str, Any]] = Field(default_factory=list)
    confidence: int = Field(ge=0, le=100, default=0)
    strategy_name: str
    metadata: ParseMetadata = Field(default_factory=ParseMetadata)
    error: str | None = None
    report: ConfidenceReport | None = None

    @property
    def column_names(self) -> list[str]:
        """Column names in first-seen order across all rows."""
        names: dict[str, None] = {}
        for row in self.rows:
            for key in row:
                names.setdefault(key, None)
        return list(names)


class ExtractionStats(BaseModel):
    total_extractions: int = 0
    successful_extractions: int = 0
    success_rate: float = 0
    average_confidence: float = 0
    average_processing_time_ms: float = 0
    strategy_usage: dict[str, int] = Field(default_factory=dict)
