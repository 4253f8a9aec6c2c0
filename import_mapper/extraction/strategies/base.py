"""Parsing strategy interface and shared helpers.

A strategy turns a raw buffer into rows. It does not score itself: the
orchestrator measures parse time and attaches the confidence afterwards, so
every strategy returns an unscored ParseResult (confidence 0).
"""

from __future__ import annotations

import csv
import io
import math
import re
from collections import Counter
from typing import Any, Protocol, runtime_checkable

from import_mapper.extraction.encoding import decode_buffer
from import_mapper.extraction.models import ParseMetadata, ParseResult
from import_mapper.extraction.pre_analyzer import CANDIDATE_DELIMITERS

_INTEGER = re.compile(r"^[-+]?\d+$")
_DECIMAL = re.compile(r"^[-+]?(\d+\.\d*|\.\d+)([eE][-+]?\d+)?$|^[-+]?\d+[eE][-+]?\d+$")
_LEADING_ZERO = re.compile(r"^[-+]?0\d+$")
_SURROUNDING_QUOTES = re.compile(r"^[\"']|[\"']$")
_NON_FIELD_CHARS = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")

_TRUE_WORDS = frozenset({"true", "yes"})
_FALSE_WORDS = frozenset({"false", "no"})

Row = dict[str, Any]


@runtime_checkable
class ParsingStrategy(Protocol):
    name: str
    priority: int

    def can_handle(self, data: bytes) -> bool: ...

    def parse(self, data: bytes, file_name: str = "") -> ParseResult: ...


def is_numeric_text(value: str) -> bool:
    text = value.strip()
    return bool(_INTEGER.match(text) or _DECIMAL.match(text))


def clean_cell_value(value: Any) -> Any:
    """Coerce a raw cell to int, float or bool where it unambiguously is one.

    Codes with leading zeros (zip codes, barcodes) stay strings.
    """
    if not isinstance(value, str):
        return value
    cleaned = _SURROUNDING_QUOTES.sub("", value.strip())
    if not cleaned:
        return ""
    if _INTEGER.match(cleaned) and not _LEADING_ZERO.match(cleaned):
        return int(cleaned)
    if _DECIMAL.match(cleaned):
        number = float(cleaned)
        if math.isfinite(number):
            return number
    lower = cleaned.lower()
    if lower in _TRUE_WORDS:
        return True
    if lower in _FALSE_WORDS:
        return False
    return cleaned


def sanitize_field_name(name: str) -> str:
    cleaned = _NON_FIELD_CHARS.sub("", name.strip()).strip()
    return _WHITESPACE.sub("_", cleaned).lower()


def generate_column_names(count: int) -> list[str]:
    return [f"column_{index + 1}" for index in range(count)]


def build_headers(raw_headers: list[str]) -> list[str]:
    """Sanitize header cells, filling blanks positionally and de-duplicating."""
    headers: list[str] = []
    seen: Counter[str] = Counter()
    for index, raw in enumerate(raw_headers):
        header = sanitize_field_name(raw) or f"column_{index + 1}"
        seen[header] += 1
        if seen[header] > 1:
            header = f"{header}_{seen[header]}"
        headers.append(header)
    return headers


def looks_like_header(rows: list[list[str]]) -> bool:
    """Heuristic: the first row is all non-empty text and the data below differs.

    A header row is accepted when the second row contains a number, or when
    none of the first-row labels reappears in its column further down.
    """
    if len(rows) < 2:
        return False
    first = [cell.strip() for cell in rows[0]]
    if not first or any(not cell or is_numeric_text(cell) for cell in first):
        return False
    if len(set(first)) != len(first):
        return False
    if any(cell.strip() and is_numeric_text(cell) for cell in rows[1]):
        return True
    for column, label in enumerate(first):
        below = {row[column].strip() for row in rows[1:] if column < len(row)}
        if label in below:
            return False
    return True


def calculate_data_quality(rows: list[Row]) -> float:
    """50 base, plus up to 25 for structure and 25 for completeness."""
    if not rows or not rows[0]:
        return 0.0
    keys = list(rows[0])
    structure = sum(1 for row in rows if len(row) == len(keys)) / len(rows)
    filled = sum(
        1 for row in rows for key in keys if row.get(key) is not None and row.get(key) != ""
    )
    completeness = filled / (len(rows) * len(keys))
    return max(0.0, min(100.0, 50 + structure * 25 + completeness * 25))


def most_frequent_delimiter(text: str, candidates: tuple[str, ...] = CANDIDATE_DELIMITERS) -> str:
    counts = [(candidate, text.count(candidate)) for candidate in candidates]
    best, count = max(counts, key=lambda item: item[1])
    return best if count > 0 else ","


class BaseStrategy:
    """Shared plumbing for the built-in strategies."""

    name = "base"
    priority = 0

    def can_handle(self, data: bytes) -> bool:
        return bool(data.strip())

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        raise NotImplementedError

    @staticmethod
    def decode(data: bytes) -> tuple[str, str]:
        return decode_buffer(data)

    @staticmethod
    def read_records(text: str, delimiter: str, **reader_options: Any) -> list[list[str]]:
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, **reader_options)
        return [record for record in reader if any(cell.strip() for cell in record)]

    @staticmethod
    def records_to_rows(
        records: list[list[str]],
        has_headers: bool,
        keep_overflow: bool = False,
    ) -> list[Row]:
        """Turn raw records into dicts keyed by header (or positional) names.

        Short rows are padded with None. Cells beyond the header width are
        dropped unless ``keep_overflow`` is set, in which case they get
        positional names.
        """
        if not records:
            return []
        if has_headers:
            headers = build_headers(records[0])
            body = records[1:]
        else:
            headers = generate_column_names(max(len(record) for record in records))
            body = records

        rows: list[Row] = []
        for record in body:
            row: Row = {
                header: clean_cell_value(record[index]) if index < len(record) else None
                for index, header in enumerate(headers)
            }
            if keep_overflow:
                for index in range(len(headers), len(record)):
                    row[f"column_{index + 1}"] = clean_cell_value(record[index])
            rows.append(row)
        return rows

    @staticmethod
    def ragged_issues(records: list[list[str]], expected: int) -> list[str]:
        ragged = sum(1 for record in records if len(record) != expected)
        if not ragged:
            return []
        return [f"{ragged} rows have a column count different from {expected}"]

    def success_result(
        self,
        rows: list[Row],
        *,
        delimiter: str,
        has_headers: bool,
        encoding: str,
        issues: list[str] | None = None,
        quality_score: float | None = None,
    ) -> ParseResult:
        if not rows:
            return self.failure_result("No data rows found", encoding=encoding)
        return ParseResult(
            success=True,
            rows=rows,
            strategy_name=self.name,
            metadata=ParseMetadata(
                delimiter=delimiter,
                has_headers=has_headers,
                total_records=len(rows),
                encoding=encoding,
                quality_score=(
                    calculate_data_quality(rows) if quality_score is None else quality_score
                ),
                issues=issues or [],
            ),
        )

    def failure_result(self, reason: str, encoding: str = "utf8") -> ParseResult:
        return ParseResult(
            success=False,
            strategy_name=self.name,
            metadata=ParseMetadata(encoding=encoding, issues=[reason]),
            error=reason,
        )
