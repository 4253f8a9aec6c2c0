"""Record readers for structured uploads: JSON documents and XLSX workbooks.

Both readers return an unscored ParseResult. The orchestrator scores it the
same way it scores the CSV strategies.
"""

from __future__ import annotations

import json
import logging
import zipfile
from datetime import date, datetime, time
from io import BytesIO
from pathlib import PurePath
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from import_mapper.extraction.encoding import decode_buffer, decode_sample
from import_mapper.extraction.models import FileType, ParseMetadata, ParseResult

logger = logging.getLogger(__name__)

JSON_STRATEGY = "json-records"
XLSX_STRATEGY = "xlsx-sheet"

_XLSX_SUFFIXES = frozenset({".xlsx", ".xlsm"})
_CSV_SUFFIXES = frozenset({".csv", ".tsv", ".txt"})
_ZIP_MAGIC = b"PK\x03\x04"


class StructuredInputError(Exception):
    """Raised when a JSON or XLSX upload holds no usable records."""


def detect_file_type(data: bytes, file_name: str = "") -> FileType:
    """File type from the name's suffix, then from the leading bytes."""
    suffix = PurePath(file_name).suffix.lower()
    if suffix == ".json":
        return "json"
    if suffix in _XLSX_SUFFIXES:
        return "xlsx"
    if suffix in _CSV_SUFFIXES:
        return "csv"
    if data.startswith(_ZIP_MAGIC):
        return "xlsx"
    head = decode_sample(data, 64).lstrip()
    tail = data[-64:].decode("utf-8", errors="replace").rstrip()
    if (head.startswith("[") and tail.endswith("]")) or (
        head.startswith("{") and tail.endswith("}")
    ):
        return "json"
    return "csv"


def parse_json_records(data: bytes) -> ParseResult:
    """Rows from a JSON array of objects, or from a single object."""
    text, encoding = decode_buffer(data)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuredInputError(f"Invalid JSON format: {exc}") from exc

    issues: list[str] = []
    if isinstance(parsed, dict):
        records = [parsed]
    elif isinstance(parsed, list):
        if not parsed:
            raise StructuredInputError("JSON array is empty")
        records = [item for item in parsed if isinstance(item, dict)]
        if not records:
            raise StructuredInputError("JSON array contains no valid objects")
        skipped = len(parsed) - len(records)
        if skipped:
            issues.append(f"Skipped {skipped} non-object entries")
    else:
        raise StructuredInputError("JSON must be an object or array of objects")

    return ParseResult(
        success=True,
        rows=records,
        strategy_name=JSON_STRATEGY,
        metadata=ParseMetadata(
            delimiter="",
            has_headers=True,
            total_records=len(records),
            encoding=encoding,
            issues=issues,
            file_type="json",
        ),
    )


def _cell_value(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def _trim_row(row: tuple[Any, ...]) -> list[Any]:
    cells = [_cell_value(value) for value in row]
    while cells and cells[-1] is None:
        cells.pop()
    return cells


def read_first_sheet(data: bytes) -> list[list[Any]]:
    """Cell values of the workbook's first sheet, blank rows dropped."""
    try:
        workbook = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
        raise StructuredInputError(f"Invalid XLSX file: {exc}") from exc
    try:
        if not workbook.sheetnames:
            raise StructuredInputError("No sheets found in Excel file")
        sheet = workbook[workbook.sheetnames[0]]
        rows = [_trim_row(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()
    return [row for row in rows if row]


def detect_sheet_headers(rows: list[list[Any]]) -> bool:
    """A header row is all text and sits above a row holding at least one non-text cell."""
    if len(rows) < 2:
        return False
    first, second = rows[0], rows[1]
    present = [cell for cell in first if cell is not None]
    return (
        bool(present)
        and all(isinstance(cell, str) for cell in present)
        and any(not isinstance(cell, str) for cell in second)
    )


def _header_names(header_row: list[Any], width: int) -> list[str]:
    names: list[str] = []
    for index in range(width):
        cell = header_row[index] if index < len(header_row) else None
        name = str(cell).strip() if cell is not None else ""
        if not name or name in names:
            name = f"{name}_{index + 1}" if name else f"column_{index + 1}"
        names.append(name)
    return names


def parse_xlsx(data: bytes) -> ParseResult:
    """Rows from the first sheet of an XLSX workbook."""
    sheet_rows = read_first_sheet(data)
    if not sheet_rows:
        raise StructuredInputError("Excel sheet is empty")

    has_headers = detect_sheet_headers(sheet_rows)
    width = max(len(row) for row in sheet_rows)
    if has_headers:
        names = _header_names(sheet_rows[0], width)
        body = sheet_rows[1:]
    else:
        names = [f"column_{index + 1}" for index in range(width)]
        body = sheet_rows
    rows = [
        {name: row[index] if index < len(row) else None for index, name in enumerate(names)}
        for row in body
    ]
    logger.debug("Read %d rows from workbook (headers: %s)", len(rows), has_headers)
    return ParseResult(
        success=True,
        rows=rows,
        strategy_name=XLSX_STRATEGY,
        metadata=ParseMetadata(
            delimiter="",
            has_headers=has_headers,
            total_records=len(rows),
            encoding="binary",
            file_type="xlsx",
        ),
    )
