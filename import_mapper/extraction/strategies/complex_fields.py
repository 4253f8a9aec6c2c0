"""Parsing for quoted cells with embedded delimiters, escapes and line breaks."""

from __future__ import annotations

import csv

from import_mapper.extraction.models import ParseResult
from import_mapper.extraction.strategies.base import (
    BaseStrategy,
    looks_like_header,
    most_frequent_delimiter,
)


def _outside_quotes(text: str) -> str:
    """Text with quoted sections removed, for delimiter counting."""
    parts = text.split('"')
    return "".join(parts[::2])


class ComplexFieldsStrategy(BaseStrategy):
    name = "complex-fields"
    priority = 70

    def can_handle(self, data: bytes) -> bool:
        sample = data[:2048]
        return b'"' in sample or b"\\" in sample

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        text, encoding = self.decode(data)
        delimiter = most_frequent_delimiter(_outside_quotes(text[:8192]))
        try:
            records = self.read_records(
                text,
                delimiter,
                quotechar='"',
                doublequote=True,
                escapechar="\\",
                skipinitialspace=True,
            )
        except csv.Error as exc:
            return self.failure_result(f"Unable to parse quoted fields: {exc}", encoding=encoding)

        if not records:
            return self.failure_result("No data rows found", encoding=encoding)

        has_headers = looks_like_header(records)
        issues = self.ragged_issues(records, len(records[0]))
        if any("\n" in cell or "\r" in cell for record in records for cell in record):
            issues.append("Contains multi-line fields")
        rows = self.records_to_rows(records, has_headers, keep_overflow=True)
        return self.success_result(
            rows, delimiter=delimiter, has_headers=has_headers, encoding=encoding, issues=issues
        )
