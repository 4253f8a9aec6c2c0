"""Tests for JSON and XLSX uploads."""

from __future__ import annotations

import json
from datetime import date
from io import BytesIO

import pytest
from openpyxl import Workbook

from import_mapper.config.settings import ExtractionConfig
from import_mapper.extraction.extractor import AdaptiveExtractor
from import_mapper.extraction.structured import (
    StructuredInputError,
    detect_file_type,
    detect_sheet_headers,
    parse_json_records,
    parse_xlsx,
)

RECORDS = [
    {"product_name": "Widget Pro", "sku_code": "WID-001", "price_usd": 19.99},
    {"product_name": "Gadget Max", "sku_code": "GAD-002", "price_usd": 5.5},
    {"product_name": "Doohickey", "sku_code": "DOO-003", "price_usd": 7.25},
]


def _workbook(*rows) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(list(row))
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestDetectFileType:
    def test_by_suffix(self):
        assert detect_file_type(b"", "items.JSON") == "json"
        assert detect_file_type(b"", "items.xlsx") == "xlsx"
        assert detect_file_type(b"[1]", "items.csv") == "csv"

    def test_by_content(self):
        assert detect_file_type(json.dumps(RECORDS).encode()) == "json"
        assert detect_file_type(_workbook(["a"], [1])) == "xlsx"
        assert detect_file_type(b"name,price\nWidget,1\n") == "csv"


class TestJsonRecords:
    def test_array_of_objects(self):
        result = parse_json_records(json.dumps(RECORDS).encode())
        assert result.success
        assert result.rows == RECORDS
        assert result.metadata.has_headers
        assert result.metadata.file_type == "json"

    def test_single_object_is_wrapped(self):
        result = parse_json_records(b'{"sku": "WID-001"}')
        assert result.rows == [{"sku": "WID-001"}]

    def test_non_objects_are_skipped(self):
        result = parse_json_records(b'[{"sku": "A"}, 3, "x", {"sku": "B"}]')
        assert [row["sku"] for row in result.rows] == ["A", "B"]
        assert result.metadata.issues == ["Skipped 2 non-object entries"]

    @pytest.mark.parametrize(
        ("payload", "message"),
        [
            (b"[]", "JSON array is empty"),
            (b"[1, 2]", "JSON array contains no valid objects"),
            (b'"text"', "JSON must be an object or array of objects"),
            (b"[{", "Invalid JSON format"),
        ],
    )
    def test_unusable_documents(self, payload, message):
        with pytest.raises(StructuredInputError, match=message):
            parse_json_records(payload)


class TestXlsxSheets:
    def test_header_row_detected(self):
        data = _workbook(
            ["product_name", "price", "added"],
            ["Widget Pro", 19.99, date(2024, 2, 1)],
            ["Gadget Max", 5.5, None],
        )
        result = parse_xlsx(data)
        assert result.metadata.has_headers
        assert result.metadata.file_type == "xlsx"
        assert result.rows[0]["product_name"] == "Widget Pro"
        assert result.rows[0]["price"] == 19.99
        assert result.rows[0]["added"].startswith("2024-02-01")
        assert result.rows[1]["added"] is None

    def test_all_text_sheet_gets_generated_names(self):
        result = parse_xlsx(_workbook(["a", "b"], ["c", "d"]))
        assert not result.metadata.has_headers
        assert result.rows == [
            {"column_1": "a", "column_2": "b"},
            {"column_1": "c", "column_2": "d"},
        ]

    def test_blank_and_duplicate_headers_are_named(self):
        result = parse_xlsx(_workbook(["sku", None, "sku"], ["A", 1, 2]))
        assert list(result.rows[0]) == ["sku", "column_2", "sku_3"]

    def test_header_rule(self):
        assert not detect_sheet_headers([["only", "one"]])
        assert detect_sheet_headers([["name", None, "price"], ["Widget", None, 2]])
        assert not detect_sheet_headers([[1, 2], [3, 4]])

    def test_empty_sheet(self):
        with pytest.raises(StructuredInputError, match="Excel sheet is empty"):
            parse_xlsx(_workbook())

    def test_not_a_workbook(self):
        with pytest.raises(StructuredInputError, match="Invalid XLSX file"):
            parse_xlsx(b"PK\x03\x04 definitely not a zip archive")


class TestExtractFile:
    @pytest.mark.asyncio
    async def test_json_upload_is_scored(self):
        extractor = AdaptiveExtractor()
        result = await extractor.extract_file(json.dumps(RECORDS).encode(), "items.json")
        assert result.success
        assert result.strategy_name == "json-records"
        assert 0 < result.confidence <= 100
        assert result.report is not None
        assert extractor.get_extraction_stats().strategy_usage == {"json-records": 1}

    @pytest.mark.asyncio
    async def test_xlsx_upload(self):
        data = _workbook(["sku", "price"], ["WID-001", 19.99], ["GAD-002", 5.5])
        result = await AdaptiveExtractor().extract_file(data, "items.xlsx")
        assert result.success
        assert result.strategy_name == "xlsx-sheet"
        assert result.column_names == ["sku", "price"]

    @pytest.mark.asyncio
    async def test_csv_still_goes_through_strategies(self):
        extractor = AdaptiveExtractor(ExtractionConfig(enable_parallel_execution=False))
        result = await extractor.extract_file(b"name,price\nWidget,1\nGadget,2\n", "items.csv")
        assert result.success
        assert result.metadata.file_type == "csv"
        assert result.strategy_name == "standard"

    @pytest.mark.asyncio
    async def test_broken_json_is_a_failed_result(self, caplog):
        result = await AdaptiveExtractor().extract_file(b"[{", "items.json")
        assert not result.success
        assert result.confidence == 0
        assert "Invalid JSON format" in result.error
        events = [r for r in caplog.records if r.getMessage() == "import_mapper_error"]
        assert any(r.error_code == "EXTRACTION_FAILED" for r in events)
