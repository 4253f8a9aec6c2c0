"""Last-resort recovery for corrupted or badly malformed files.

The buffer is first inspected for damage (null bytes, control characters,
mixed line endings, missing delimiters). Recovery then escalates through four
increasingly lossy methods and keeps the first one that yields rows:

1. basic cleanup: strip nulls, unify line endings, trim trailing space
2. aggressive cleanup: drop non-printable characters and repeated delimiters
3. line-by-line: repair each line on its own
4. desperate: split everything on any delimiter and guess the row width
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from pydantic import BaseModel, Field

from import_mapper.extraction.models import ParseResult
from import_mapper.extraction.strategies.base import BaseStrategy, Row, generate_column_names

logger = logging.getLogger(__name__)

MESS_DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|", ":", " ")
DESPERATE_ROW_SIZES: tuple[int, ...] = (3, 4, 5, 6, 8, 10, 12)

METHOD_PENALTIES: dict[str, int] = {
    "basic-cleanup": 0,
    "aggressive-cleanup": -10,
    "line-by-line": -20,
    "desperate": -30,
}

_BINARY = re.compile(r"[\x00-\x08\x0e-\x1f\x7f]")
_NON_PRINTABLE = re.compile(r"[^\x20-\x7e\t\n\r]")
_NON_PRINTABLE_LINE = re.compile(r"[^\x20-\x7e\t]")
_WHITESPACE = re.compile(r"\s+")
_ANY_DELIMITER = re.compile(r"[,;\t|]")


class DamageReport(BaseModel):
    has_null_bytes: bool = False
    has_binary_data: bool = False
    has_inconsistent_line_endings: bool = False
    has_missing_delimiters: bool = False
    has_trailing_spaces: bool = False
    has_garbage_characters: bool = False
    estimated_delimiter: str = ","
    damage_score: int = 0
    issues: list[str] = Field(default_factory=list)


class Recovery(BaseModel):
    rows: list[dict[str, Any]]
    delimiter: str
    method: str
    score: float
    issues: list[str] = Field(default_factory=list)


def detect_delimiter_from_mess(text: str) -> str:
    """Delimiter with the highest mean-count-minus-variance over the first 20 lines."""
    lines = [line for line in text.split("\n")[:20] if line.strip()]
    best, best_score = ",", 0.0
    for delimiter in MESS_DELIMITERS:
        if delimiter == " ":
            counts = [len(_WHITESPACE.findall(line.strip())) for line in lines]
        else:
            counts = [line.count(delimiter) for line in lines]
        if not counts:
            continue
        mean = sum(counts) / len(counts)
        variance = sum((count - mean) ** 2 for count in counts) / len(counts)
        score = mean * 10 - variance
        if score > best_score:
            best, best_score = delimiter, score
    return best


def analyze_damage(text: str) -> DamageReport:
    report = DamageReport()
    if "\x00" in text:
        report.has_null_bytes = True
        report.damage_score += 3
        report.issues.append("Contains null bytes")
    if _BINARY.search(text):
        report.has_binary_data = True
        report.damage_score += 2
        report.issues.append("Contains binary data")

    has_crlf = "\r\n" in text
    has_lf = "\n" in text.replace("\r\n", "")
    has_cr = "\r" in text.replace("\r\n", "")
    if sum((has_crlf, has_lf, has_cr)) > 1:
        report.has_inconsistent_line_endings = True
        report.damage_score += 1
        report.issues.append("Inconsistent line endings")

    report.estimated_delimiter = detect_delimiter_from_mess(text)
    lines = re.split(r"\r?\n", text)[:10]
    missing = sum(
        1 for line in lines if line.strip() and report.estimated_delimiter not in line
    )
    if missing > len(lines) * 0.3:
        report.has_missing_delimiters = True
        report.damage_score += 2
        report.issues.append("Many lines missing delimiters")

    trailing = sum(1 for line in lines if line != line.rstrip())
    if trailing > len(lines) * 0.5:
        report.has_trailing_spaces = True
        report.damage_score += 1
        report.issues.append("Excessive trailing whitespace")

    if "\ufffd" in text or _NON_PRINTABLE.search(text):
        report.has_garbage_characters = True
        report.damage_score += 2
        report.issues.append("Contains garbage characters")
    return report


def split_line(line: str, delimiter: str) -> list[str]:
    """Quote-aware manual split that tolerates unbalanced quotes."""
    if delimiter == " ":
        return [cell for cell in _WHITESPACE.split(line.strip()) if cell]
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    tail = "".join(current).strip()
    if tail or cells:
        cells.append(tail)
    return cells


def _guess_field_type(value: str) -> str:
    value = value.strip()
    if not value:
        return "empty"
    if re.fullmatch(r"\d+", value):
        return "integer"
    if re.fullmatch(r"\d+\.\d+", value):
        return "decimal"
    if re.match(r"\d{4}-\d{2}-\d{2}", value):
        return "date"
    if len(value) < 3:
        return "short"
    return "text"


def estimate_fields_per_row(fields: list[str]) -> int:
    """Row width whose columns are most type-homogeneous."""
    best_size, best_score = 4, 0
    for size in DESPERATE_ROW_SIZES:
        if len(fields) < size * 2:
            continue
        score = 0
        for column in range(size):
            types = {_guess_field_type(value) for value in fields[column::size]}
            if len(types) == 1:
                score += 3
            elif len(types) <= 2:
                score += 1
        if score > best_score:
            best_size, best_score = size, score
    return best_size


def _clean_recovered_value(value: str) -> Any:
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > 1 and cleaned.startswith('"') and cleaned.endswith('"'):
        cleaned = cleaned[1:-1]
    try:
        number = float(cleaned)
    except ValueError:
        return cleaned
    if number != number or number in (float("inf"), float("-inf")):
        return cleaned
    return int(number) if number.is_integer() and "." not in cleaned else number


class DirtyRecoveryStrategy(BaseStrategy):
    name = "dirty-recovery"
    priority = 10

    def parse(self, data: bytes, file_name: str = "") -> ParseResult:
        text, encoding = self.decode(data)
        if not text.strip():
            return self.failure_result("Unable to recover any data from file", encoding=encoding)

        damage = analyze_damage(text)
        recovery = self.attempt_recovery(text, damage)
        if recovery is None:
            return self.failure_result("Unable to recover any data from file", encoding=encoding)

        logger.debug("Recovered %d rows via %s", len(recovery.rows), recovery.method)
        return self.success_result(
            recovery.rows,
            delimiter=recovery.delimiter,
            has_headers=False,
            encoding=encoding,
            issues=recovery.issues,
            quality_score=recovery.score,
        )

    def attempt_recovery(self, text: str, damage: DamageReport) -> Recovery | None:
        steps: list[Callable[[str, DamageReport], Recovery | None]] = [
            self._basic_cleanup,
            self._aggressive_cleanup,
            self._line_by_line,
            self._desperate,
        ]
        for step in steps:
            recovery = step(text, damage)
            if recovery is not None and recovery.rows:
                return recovery
        return None

    def _basic_cleanup(self, text: str, damage: DamageReport) -> Recovery | None:
        cleaned = text.replace("\x00", "")
        cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
        if damage.has_trailing_spaces:
            cleaned = "\n".join(line.rstrip() for line in cleaned.split("\n"))
        return self._parse_cleaned(cleaned, damage, "basic-cleanup")

    def _aggressive_cleanup(self, text: str, damage: DamageReport) -> Recovery | None:
        delimiter = damage.estimated_delimiter
        cleaned = _NON_PRINTABLE.sub("", text.replace("\r\n", "\n").replace("\r", "\n"))
        if delimiter != " ":
            cleaned = re.sub(f"{re.escape(delimiter)}{{2,}}", delimiter, cleaned)
        cleaned = "\n".join(line for line in cleaned.split("\n") if line.strip())
        return self._parse_cleaned(cleaned, damage, "aggressive-cleanup")

    def _line_by_line(self, text: str, damage: DamageReport) -> Recovery | None:
        delimiter = damage.estimated_delimiter
        repaired = []
        for line in re.split(r"\r?\n", text):
            if not line.strip():
                continue
            cleaned = _WHITESPACE.sub(" ", _NON_PRINTABLE_LINE.sub(" ", line)).strip()
            if delimiter not in cleaned and delimiter != " ":
                cleaned = _WHITESPACE.sub(delimiter, cleaned)
            if cleaned:
                repaired.append(cleaned)
        if not repaired:
            return None
        return self._parse_cleaned("\n".join(repaired), damage, "line-by-line")

    def _desperate(self, text: str, damage: DamageReport) -> Recovery | None:
        fields = [field.strip() for field in _ANY_DELIMITER.split(text) if field.strip()]
        if not fields:
            return None
        size = estimate_fields_per_row(fields)
        records = [fields[start : start + size] for start in range(0, len(fields), size)]
        return self._build_recovery(records, ",", "desperate", damage)

    def _parse_cleaned(self, text: str, damage: DamageReport, method: str) -> Recovery | None:
        lines = [line for line in text.split("\n") if line.strip()]
        records = [split_line(line, damage.estimated_delimiter) for line in lines]
        records = [record for record in records if record]
        if not records:
            return None
        return self._build_recovery(records, damage.estimated_delimiter, method, damage)

    def _build_recovery(
        self,
        records: list[list[str]],
        delimiter: str,
        method: str,
        damage: DamageReport,
    ) -> Recovery | None:
        if not records:
            return None
        headers = generate_column_names(max(len(record) for record in records))
        rows: list[Row] = [
            {
                header: _clean_recovered_value(record[index]) if index < len(record) else None
                for index, header in enumerate(headers)
            }
            for record in records
        ]
        return Recovery(
            rows=rows,
            delimiter=delimiter,
            method=method,
            score=self._recovery_score(rows, method, damage),
            issues=self._recovery_issues(rows, method, damage),
        )

    @staticmethod
    def _recovery_score(rows: list[Row], method: str, damage: DamageReport) -> float:
        score = 50.0 + METHOD_PENALTIES.get(method, 0)
        keys = list(rows[0])
        structure = sum(1 for row in rows if len(row) == len(keys)) / len(rows)
        filled = sum(1 for row in rows for key in keys if row.get(key) not in (None, ""))
        score += structure * 20 + filled / (len(rows) * len(keys)) * 15
        score -= damage.damage_score * 5
        return max(10.0, min(70.0, score))

    @staticmethod
    def _recovery_issues(rows: list[Row], method: str, damage: DamageReport) -> list[str]:
        issues = [f"Data recovered using {method} method"]
        issues.extend(f"Original issue: {issue}" for issue in damage.issues)
        if method == "aggressive-cleanup":
            issues.append("Aggressive data cleaning applied - some information may be lost")
        elif method == "line-by-line":
            issues.append("Line-by-line recovery used - data structure may be altered")
        elif method == "desperate":
            issues.append("Desperate recovery mode - data accuracy cannot be guaranteed")

        keys = list(rows[0])
        nulls = sum(1 for row in rows for key in keys if row.get(key) is None)
        null_percentage = nulls / (len(rows) * len(keys)) * 100
        if null_percentage > 50:
            issues.append(f"High percentage of missing data ({round(null_percentage)}%)")
        issues.append("Manual data verification strongly recommended")
        return issues
