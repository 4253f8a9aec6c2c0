"""Parsing for headerless, mostly numeric data dumps."""

from __future__ import annotations

import csv

from import_mapper.extraction.models import ParseResult
from import_mapper.extraction.pre_analyzer import split_lines
from import_mapper.extraction.strategies.base import BaseStrategy, is_numeric_text

NUMERIC_DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|")
MIN_NUMERIC_RATIO = 0.6


def _numeric_share(cells: list[str]) -> float:
    if not cells:
        return 0.0
    return sum(1 for cell in cells if is_numeric_text(cell.strip("\"' "))) / len(cells)


def detect_numeric_delimiter(text: str) -> str:
    """Pick the delimiter that splits the head of the file into the most numeric cells."""
    lines = [line for line in split_lines(text)[:10] if line.strip()]
    best, best_score = ",", 0.0
    for delimiter in NUMERIC_DELIMITERS:
        score = 0.0
        for line in lines:
            cells = line.split(delimiter)
            if len(cells) > 1:
                score += _numeric_share(cells) * len(cells)
        if score > best_score:
            best, best_score = delimiter, score
    return best


class NumericHeaderlessStrategy(BaseStrategy):
    name = "numeric-headerless"
    priority = 60

    def can_handle(self, data: bytes) -> bool:
        sample = data[:1024].decode("utf-8", errors="replace")
        lines = [line for line in split_lines(sample)[:5] if line.strip()]
        if len(lines) < 2:
            return False
        delimiter = detect_numeric_delimiter(sample)
        numeric_lines = sum(
            1 for line in lines if _numeric_share(line.split(delimiter)) >= MIN_NUMERIC_RATIO
        )
        return numeric_lines >= 2

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        text, encoding = self.decode(data)
        delimiter = detect_numeric_delimiter(text)
        try:
            records = self.read_records(text, delimiter, quotechar='"', skipinitialspace=True)
        except csv.Error as exc:
            return self.failure_result(f"Malformed numeric data: {exc}", encoding=encoding)

        if len(records) < 2:
            return self.failure_result("Insufficient data rows", encoding=encoding)
        if _numeric_share(records[0]) < 0.5:
            return self.failure_result("First row appears to contain headers", encoding=encoding)

        cells = [cell for record in records for cell in record]
        numeric_ratio = _numeric_share(cells)
        if numeric_ratio < MIN_NUMERIC_RATIO:
            return self.failure_result(
                f"Low numeric content ratio: {round(numeric_ratio * 100)}%", encoding=encoding
            )

        issues = self.ragged_issues(records, len(records[0]))
        if numeric_ratio < 0.9:
            issues.append(f"Mixed content: {round(numeric_ratio * 100)}% numeric cells")
        rows = self.records_to_rows(records, has_headers=False)
        return self.success_result(
            rows, delimiter=delimiter, has_headers=False, encoding=encoding, issues=issues
        )
