"""Parsing for semicolon, tab, pipe and colon separated files."""

from __future__ import annotations

import csv

from import_mapper.extraction.models import ParseResult
from import_mapper.extraction.strategies.base import (
    BaseStrategy,
    calculate_data_quality,
    looks_like_header,
)

ALTERNATIVE_DELIMITERS: tuple[str, ...] = (";", "\t", "|", ":")

# Share of records whose width is within tolerance of the mean width.
MIN_CONSISTENCY = 0.8


def delimiter_consistency(records: list[list[str]]) -> float:
    if len(records) < 2:
        return 1.0
    lengths = [len(record) for record in records]
    mean = sum(lengths) / len(lengths)
    tolerance = max(1, round(mean * 0.1))
    return sum(1 for length in lengths if abs(length - mean) <= tolerance) / len(lengths)


class AlternativeDelimitersStrategy(BaseStrategy):
    name = "alternative-delimiters"
    priority = 80

    def can_handle(self, data: bytes) -> bool:
        sample = data[:1024].decode("utf-8", errors="replace")
        return any(delimiter in sample for delimiter in ALTERNATIVE_DELIMITERS)

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        text, encoding = self.decode(data)
        candidates = []
        for delimiter in ALTERNATIVE_DELIMITERS:
            if delimiter not in text:
                continue
            try:
                records = self.read_records(text, delimiter, quotechar='"', skipinitialspace=True)
            except csv.Error:
                continue
            if not records or max(len(record) for record in records) < 2:
                continue
            consistency = delimiter_consistency(records)
            if consistency < MIN_CONSISTENCY:
                continue
            has_headers = looks_like_header(records)
            rows = self.records_to_rows(records, has_headers)
            if not rows:
                continue
            quality = calculate_data_quality(rows)
            candidates.append((quality, consistency, delimiter, records, rows, has_headers))

        if not candidates:
            return self.failure_result("No suitable alternative delimiter found", encoding=encoding)

        quality, _, delimiter, records, rows, has_headers = max(
            candidates, key=lambda item: (item[0], item[1])
        )
        issues = self.ragged_issues(records, len(records[0]))
        if delimiter == ";" and any("," in cell for record in records for cell in record):
            issues.append("Contains commas in data - verify semicolon is correct delimiter")
        if len({len(record) for record in records}) > 3:
            issues.append("Highly variable column count - delimiter may be incorrect")
        return self.success_result(
            rows,
            delimiter=delimiter,
            has_headers=has_headers,
            encoding=encoding,
            issues=issues,
            quality_score=quality,
        )
