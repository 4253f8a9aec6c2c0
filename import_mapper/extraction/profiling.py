"""Column profiling: turns parsed rows into the source-field view used for mapping."""

from __future__ import annotations

import re
from collections import Counter
from typing import Any, Literal

from pydantic import BaseModel, Field

from import_mapper.extraction.models import ParseResult

DataType = Literal["string", "number", "boolean", "date"]

SAMPLE_VALUE_COUNT = 5
# Share of non-empty values a type needs before it labels the column.
TYPE_MAJORITY = 0.8

_NUMERIC_TEXT = re.compile(r"^[-+]?[$€£]?\d[\d,]*(\.\d+)?%?$")
_BOOLEAN_WORDS = frozenset({"true", "false", "yes", "no", "y", "n"})
_DATE_TEXT = re.compile(r"^\d{4}-\d{2}-\d{2}|^\d{1,2}/\d{1,2}/\d{2,4}$")


class SourceField(BaseModel):
    """Profile of one column in the imported file."""

    name: str
    data_type: DataType = "string"
    sample_values: list[Any] = Field(default_factory=list)
    null_percentage: float = Field(ge=0, le=100, default=0)
    unique_percentage: float = Field(ge=0, le=100, default=0)
    is_required: bool = False


class ExtractedFields(BaseModel):
    """Everything the mapping engine needs to know about an imported file."""

    fields: list[SourceField]
    sample_data: list[dict[str, Any]] = Field(default_factory=list)
    file_type: str = "csv"
    file_name: str = ""
    total_rows: int = 0

    @property
    def field_names(self) -> list[str]:
        return [field.name for field in self.fields]


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _value_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    text = str(value).strip()
    if text.lower() in _BOOLEAN_WORDS:
        return "boolean"
    if _NUMERIC_TEXT.match(text):
        return "number"
    if _DATE_TEXT.match(text):
        return "date"
    return "string"


def infer_data_type(values: list[Any]) -> DataType:
    present = [value for value in values if not _is_empty(value)]
    if not present:
        return "string"
    counts = Counter(_value_kind(value) for value in present)
    kind, count = counts.most_common(1)[0]
    if kind != "string" and count / len(present) >= TYPE_MAJORITY:
        return kind
    return "string"


def profile_column(name: str, values: list[Any]) -> SourceField:
    total = len(values)
    present = [value for value in values if not _is_empty(value)]
    samples: list[Any] = []
    seen: set[str] = set()
    for value in present:
        key = repr(value)
        if key not in seen:
            seen.add(key)
            samples.append(value)
        if len(samples) >= SAMPLE_VALUE_COUNT:
            break

    null_percentage = (total - len(present)) / total * 100 if total else 100.0
    unique_percentage = len({repr(value) for value in present}) / total * 100 if total else 0.0
    return SourceField(
        name=name,
        data_type=infer_data_type(present),
        sample_values=samples,
        null_percentage=round(null_percentage, 2),
        unique_percentage=round(unique_percentage, 2),
        is_required=null_percentage < 10,
    )


def profile_fields(
    result: ParseResult,
    file_name: str = "",
    file_type: str = "csv",
    sample_rows: int = 100,
) -> ExtractedFields:
    """Profile every column of a parse result over its first ``sample_rows`` rows."""
    rows = result.rows[:sample_rows]
    fields = [
        profile_column(name, [row.get(name) for row in rows]) for name in result.column_names
    ]
    return ExtractedFields(
        fields=fields,
        sample_data=result.rows[:10],
        file_type=file_type,
        file_name=file_name,
        total_rows=len(result.rows),
    )
