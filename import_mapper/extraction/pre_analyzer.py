"""Structure pre-analysis: cheap sniffing of delimiters, encoding and patterns.

Runs on a small sample from the head of the buffer before any strategy is
chosen. Pure and total: any byte string yields a PreAnalysis.
"""

from __future__ import annotations

import re
from collections import Counter

from import_mapper.extraction.encoding import decode_sample, sniff_encoding
from import_mapper.extraction.models import DataPatterns, PreAnalysis

CANDIDATE_DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|", ":")

_LEADING_NUMERIC_CELL = re.compile(r"^\d+[,;\t|]")
_LETTER = re.compile(r"[A-Za-z]")
_NUMERIC = re.compile(r"\d+\.?\d*")
_DATE = re.compile(r"\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4}")
_QUOTED = re.compile(r'"[^"]*"')
_EMPTY_FIELD = re.compile(r",,|;\s*;|\t\s*\t")


def detect_delimiters(text: str) -> list[str]:
    """Candidate delimiters present in text, most frequent first."""
    counts = [(delimiter, text.count(delimiter)) for delimiter in CANDIDATE_DELIMITERS]
    present = [item for item in counts if item[1] > 0]
    # sorted() is stable so equal counts keep candidate order
    return [delimiter for delimiter, _ in sorted(present, key=lambda item: item[1], reverse=True)]


def detect_line_endings(text: str) -> str:
    if "\r\n" in text:
        return "crlf"
    if "\n" in text:
        return "lf"
    if "\r" in text:
        return "cr"
    return "lf"


def split_lines(text: str) -> list[str]:
    return re.split(r"\r\n|\n|\r", text)


def estimate_column_count(lines: list[str]) -> int:
    """Mode of per-line column counts, each line split on its own top delimiter."""
    counts: Counter[int] = Counter()
    for line in lines:
        if not line.strip():
            continue
        delimiters = detect_delimiters(line)
        if delimiters:
            counts[line.count(delimiters[0]) + 1] += 1
        else:
            counts[1] += 1
    if not counts:
        return 0
    return counts.most_common(1)[0][0]


def detect_data_patterns(lines: list[str], sample: str) -> DataPatterns:
    first_line = next((line for line in lines if line.strip()), "")
    return DataPatterns(
        has_text_headers=bool(_LETTER.search(first_line))
        and not _LEADING_NUMERIC_CELL.match(first_line),
        has_numeric_data=any(_NUMERIC.search(line) for line in lines),
        has_date_data=any(_DATE.search(line) for line in lines),
        has_quoted_fields=bool(_QUOTED.search(sample)),
        has_empty_fields=bool(_EMPTY_FIELD.search(sample)),
    )


def analyze_structure(data: bytes, sample_size: int = 2048, line_count: int = 10) -> PreAnalysis:
    """Sniff structural hints from the first ``sample_size`` bytes."""
    sample = decode_sample(data, sample_size)
    lines = split_lines(sample)[:line_count]
    return PreAnalysis(
        sample_lines=lines,
        detected_delimiters=detect_delimiters(sample),
        encoding=sniff_encoding(data),
        line_endings=detect_line_endings(sample),
        estimated_column_count=estimate_column_count(lines),
        has_quotes='"' in sample,
        has_escapes="\\" in sample,
        data_patterns=detect_data_patterns(lines, sample),
    )
