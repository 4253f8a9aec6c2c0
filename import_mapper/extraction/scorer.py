"""Confidence scorer: eight weighted metrics over a parsed row set.

The score is a pure function of the rows, the parse metadata and the measured
parse time. Each metric is in [0, 100]; the weighted sum is rounded and
clamped. Factors, issues and recommendations explain the score to callers.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Any

from import_mapper.extraction.models import ConfidenceMetrics, ConfidenceReport, ParseMetadata

WEIGHTS: dict[str, float] = {
    "structural_consistency": 0.25,
    "data_completeness": 0.20,
    "type_consistency": 0.15,
    "delimiter_reliability": 0.15,
    "header_quality": 0.10,
    "data_variety": 0.05,
    "parse_efficiency": 0.05,
    "error_rate": 0.05,
}

DELIMITER_SCORES: dict[str, float] = {
    ",": 90,
    ";": 85,
    "\t": 80,
    "|": 75,
    ":": 60,
}

VARIETY_SAMPLE_ROWS = 20

_INTEGER_STRING = re.compile(r"^\d+$")
_DECIMAL_STRING = re.compile(r"^\d+\.\d+$")
_DATE_STRING = re.compile(r"^\d{4}-\d{2}-\d{2}")
_GENERIC_HEADER = re.compile(r"^(column_\d+|field_\d+|col\d+)$", re.IGNORECASE)
_LETTER = re.compile(r"[A-Za-z]")


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def infer_value_type(value: Any) -> str:
    if value is None:
        return "null"
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        if value == "":
            return "empty"
        if _INTEGER_STRING.match(value):
            return "integer_string"
        if _DECIMAL_STRING.match(value):
            return "decimal_string"
        if _DATE_STRING.match(value):
            return "date_string"
        return "string"
    return type(value).__name__


class ConfidenceScorer:
    """Computes the 8-factor confidence score for a parse result."""

    def calculate_confidence(
        self,
        rows: list[dict[str, Any]],
        metadata: ParseMetadata,
        parse_time_ms: float = 0,
    ) -> ConfidenceReport:
        if not rows:
            return self.create_failure_result("No data to analyze")

        metrics = ConfidenceMetrics(
            structural_consistency=self.structural_consistency(rows),
            data_completeness=self.data_completeness(rows),
            type_consistency=self.type_consistency(rows),
            delimiter_reliability=self.delimiter_reliability(metadata),
            header_quality=self.header_quality(rows, metadata),
            data_variety=self.data_variety(rows),
            parse_efficiency=self.parse_efficiency(len(rows), parse_time_ms),
            error_rate=self.error_rate(metadata.issues),
        )
        weighted = sum(getattr(metrics, name) * weight for name, weight in WEIGHTS.items())
        score = int(round(_clamp(weighted)))

        return ConfidenceReport(
            score=score,
            metrics=metrics,
            factors=self._factors(metrics),
            issues=self._issues(metrics),
            recommendations=self._recommendations(metrics),
        )

    def create_failure_result(self, reason: str) -> ConfidenceReport:
        return ConfidenceReport(
            score=0,
            metrics=ConfidenceMetrics(),
            factors=[],
            issues=[reason],
            recommendations=[
                "Try alternative parsing strategies",
                "Verify file format and encoding",
            ],
        )

    # --- Metrics ---

    def structural_consistency(self, rows: list[dict[str, Any]]) -> float:
        expected_keys = set(rows[0])
        expected_count = len(expected_keys)

        consistent_rows = sum(1 for row in rows if len(row) == expected_count)
        column_consistency = consistent_rows / len(rows) * 100

        later_rows = rows[1:]
        if later_rows and expected_keys:
            shared = sum(len(expected_keys & set(row)) / expected_count for row in later_rows)
            key_consistency = shared / len(later_rows) * 100
        else:
            key_consistency = 100.0

        return _clamp(column_consistency * 0.7 + key_consistency * 0.3)

    def data_completeness(self, rows: list[dict[str, Any]]) -> float:
        keys = list(rows[0])
        total = len(rows) * len(keys)
        if total == 0:
            return 0.0
        filled = sum(1 for row in rows for key in keys if not _is_missing(row.get(key)))
        return _clamp(filled / total * 100)

    def type_consistency(self, rows: list[dict[str, Any]]) -> float:
        keys = list(rows[0])
        if not keys:
            return 0.0
        total = 0.0
        for key in keys:
            values = [row.get(key) for row in rows if not _is_missing(row.get(key))]
            if not values:
                continue
            counts = Counter(infer_value_type(value) for value in values)
            total += counts.most_common(1)[0][1] / len(values) * 100
        return _clamp(total / len(keys))

    def delimiter_reliability(self, metadata: ParseMetadata) -> float:
        if not metadata.delimiter:
            return 50.0
        score = DELIMITER_SCORES.get(metadata.delimiter, 50.0)
        if metadata.quality_score:
            score = min(95.0, score + (metadata.quality_score - 50) * 0.1)
        return _clamp(score)

    def header_quality(self, rows: list[dict[str, Any]], metadata: ParseMetadata) -> float:
        headers = list(rows[0])
        if not metadata.has_headers or not headers:
            return 0.0
        non_generic = sum(1 for header in headers if not _GENERIC_HEADER.match(header))
        descriptive = sum(
            1 for header in headers if len(header) > 3 and _LETTER.search(header)
        )
        score = 30 + non_generic / len(headers) * 40 + descriptive / len(headers) * 30
        return _clamp(score)

    def data_variety(self, rows: list[dict[str, Any]]) -> float:
        keys = list(rows[0])
        if not keys:
            return 0.0
        sample = rows[:VARIETY_SAMPLE_ROWS]
        total = 0.0
        for key in keys:
            values = [row.get(key) for row in sample if not _is_missing(row.get(key))]
            if not values:
                continue
            ratio = len({repr(value) for value in values}) / len(values)
            if ratio < 0.2:
                total += ratio * 500
            elif ratio > 0.8:
                total += 100 - (ratio - 0.8) * 500
            else:
                total += 100
        return _clamp(total / len(keys))

    def parse_efficiency(self, record_count: int, parse_time_ms: float) -> float:
        if record_count == 0:
            return 0.0
        per_record = parse_time_ms / record_count
        if per_record < 1:
            return 95.0
        if per_record < 5:
            return 85.0
        if per_record < 20:
            return 70.0
        if per_record < 50:
            return 50.0
        return 30.0

    def error_rate(self, issues: list[str]) -> float:
        if not issues:
            return 100.0
        penalty = len(issues) * (100 / max(10, len(issues) * 2))
        return _clamp(100 - penalty)

    # --- Explanations ---

    @staticmethod
    def _factors(metrics: ConfidenceMetrics) -> list[str]:
        factors = []
        if metrics.structural_consistency > 90:
            factors.append("Excellent structural consistency")
        if metrics.data_completeness > 85:
            factors.append("High data completeness")
        if metrics.type_consistency > 80:
            factors.append("Consistent data types")
        if metrics.delimiter_reliability > 85:
            factors.append("Reliable delimiter detected")
        if metrics.header_quality > 75:
            factors.append("Good header quality")
        if metrics.data_variety > 60:
            factors.append("Appropriate data variety")
        if metrics.parse_efficiency > 80:
            factors.append("Efficient parsing")
        if metrics.error_rate > 95:
            factors.append("Minimal parsing errors")
        return factors

    @staticmethod
    def _issues(metrics: ConfidenceMetrics) -> list[str]:
        issues = []
        if metrics.structural_consistency < 70:
            issues.append("Inconsistent row structure")
        if metrics.data_completeness < 60:
            issues.append("Low data completeness")
        if metrics.type_consistency < 60:
            issues.append("Inconsistent data types")
        if metrics.delimiter_reliability < 60:
            issues.append("Unreliable delimiter detection")
        if metrics.header_quality < 50:
            issues.append("Poor header quality")
        if metrics.data_variety < 30:
            issues.append("Low data variety")
        if metrics.parse_efficiency < 50:
            issues.append("Slow parsing performance")
        if metrics.error_rate < 80:
            issues.append("High parsing error rate")
        return issues

    @staticmethod
    def _recommendations(metrics: ConfidenceMetrics) -> list[str]:
        recommendations = []
        if metrics.structural_consistency < 70:
            recommendations.append("Check for inconsistent delimiters or malformed rows")
        if metrics.data_completeness < 60:
            recommendations.append("Review data for missing values")
        if metrics.type_consistency < 60:
            recommendations.append("Normalize value formats within each column")
        if metrics.header_quality < 50:
            recommendations.append("Ensure the first row contains descriptive column names")
        if metrics.delimiter_reliability < 60:
            recommendations.append("Use a standard delimiter such as a comma or semicolon")
        if metrics.error_rate < 80:
            recommendations.append("Try alternative parsing strategies")
        if not recommendations:
            recommendations.append("Data quality is good - no specific recommendations")
        return recommendations
