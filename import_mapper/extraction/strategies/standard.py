"""Standard comma-separated parsing with strict RFC 4180 quoting."""

from __future__ import annotations

import csv

from import_mapper.extraction.models import ParseResult
from import_mapper.extraction.pre_analyzer import detect_delimiters, split_lines
from import_mapper.extraction.strategies.base import BaseStrategy, looks_like_header


class StandardStrategy(BaseStrategy):
    name = "standard"
    priority = 100

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        text, encoding = self.decode(data)
        if not text.strip():
            return self.failure_result("Empty file", encoding=encoding)

        header_line = next((line for line in split_lines(text) if line.strip()), "")
        delimiters = detect_delimiters(header_line)
        if delimiters and "," not in delimiters:
            return self.failure_result(
                f"No comma delimiter found (detected {delimiters[0]!r})", encoding=encoding
            )

        try:
            records = self.read_records(text, ",", quotechar='"', doublequote=True, strict=True)
        except csv.Error as exc:
            return self.failure_result(f"Malformed CSV: {exc}", encoding=encoding)

        if not records:
            return self.failure_result("No data rows found", encoding=encoding)

        has_headers = looks_like_header(records)
        expected = len(records[0])
        issues = self.ragged_issues(records, expected)
        rows = self.records_to_rows(records, has_headers)
        return self.success_result(
            rows, delimiter=",", has_headers=has_headers, encoding=encoding, issues=issues
        )
