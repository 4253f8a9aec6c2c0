"""Tests for the 8-factor confidence scorer."""

import pytest

from import_mapper.extraction.models import ParseMetadata
from import_mapper.extraction.scorer import ConfidenceScorer, infer_value_type

ROWS = [
    {"name": "Widget", "price": 9.99, "stock": 10},
    {"name": "Gadget", "price": 19.5, "stock": 3},
    {"name": "Doohickey", "price": 4.25, "stock": 0},
]


def _metadata(**overrides):
    values = {"delimiter": ",", "has_headers": True, "total_records": len(ROWS)}
    values.update(overrides)
    return ParseMetadata(**values)


class TestConfidenceScore:
    def test_well_formed_rows(self):
        report = ConfidenceScorer().calculate_confidence(ROWS, _metadata(), parse_time_ms=1.0)
        assert report.metrics.structural_consistency == 100
        assert report.metrics.header_quality >= 70
        assert 0 <= report.score <= 100
        assert report.score >= 70
        assert "Excellent structural consistency" in report.factors

    def test_no_rows_is_a_failure_report(self):
        report = ConfidenceScorer().calculate_confidence([], _metadata())
        assert report.score == 0
        assert report.issues == ["No data to analyze"]
        assert report.recommendations

    def test_single_row_keeps_full_structure_score(self):
        report = ConfidenceScorer().calculate_confidence(ROWS[:1], _metadata())
        assert report.metrics.structural_consistency == 100

    def test_ragged_rows_lower_structure(self):
        rows = [{"a": 1, "b": 2}, {"a": 1}, {"c": 3}]
        report = ConfidenceScorer().calculate_confidence(rows, _metadata())
        assert report.metrics.structural_consistency < 70
        assert "Inconsistent row structure" in report.issues

    def test_missing_values_lower_completeness(self):
        rows = [{"a": 1, "b": None}, {"a": "", "b": None}]
        report = ConfidenceScorer().calculate_confidence(rows, _metadata())
        assert report.metrics.data_completeness == 25


class TestIndividualMetrics:
    def test_header_quality_without_headers(self):
        scorer = ConfidenceScorer()
        assert scorer.header_quality(ROWS, _metadata(has_headers=False)) == 0

    def test_generic_headers_score_lower(self):
        scorer = ConfidenceScorer()
        rows = [{"column_1": "a", "column_2": "b"}]
        assert scorer.header_quality(rows, _metadata()) == 60

    def test_delimiter_reliability(self):
        scorer = ConfidenceScorer()
        assert scorer.delimiter_reliability(_metadata(delimiter=",")) == 90
        assert scorer.delimiter_reliability(_metadata(delimiter=":")) == 60
        assert scorer.delimiter_reliability(_metadata(delimiter="~")) == 50
        assert scorer.delimiter_reliability(_metadata(delimiter=",", quality_score=100)) == 95

    def test_parse_efficiency_bands(self):
        scorer = ConfidenceScorer()
        assert scorer.parse_efficiency(100, 10) == 95
        assert scorer.parse_efficiency(1, 3) == 85
        assert scorer.parse_efficiency(1, 100) == 30
        assert scorer.parse_efficiency(0, 1) == 0

    def test_type_consistency_uniform_columns(self):
        assert ConfidenceScorer().type_consistency(ROWS) == 100

    def test_type_consistency_mixed_column(self):
        rows = [
            {"code": 1, "qty": 1},
            {"code": 2, "qty": 2},
            {"code": "abc", "qty": 3},
            {"code": "def", "qty": 4},
        ]
        # code is half numbers and half text; qty is uniform
        assert ConfidenceScorer().type_consistency(rows) == 75

    def test_type_consistency_ignores_missing_values(self):
        rows = [{"a": 1}, {"a": None}, {"a": ""}, {"a": 2}]
        assert ConfidenceScorer().type_consistency(rows) == 100

    @pytest.mark.parametrize(
        ("values", "expected"),
        [
            (["same"] * 20, 25),
            (["a", "b"] * 10, 50),
            (["a", "b", "c", "d", "e"] * 2, 100),
            ([str(i) for i in range(10)], 0),
        ],
    )
    def test_data_variety_bands(self, values, expected):
        rows = [{"value": value} for value in values]
        assert ConfidenceScorer().data_variety(rows) == pytest.approx(expected, abs=1e-6)

    def test_data_variety_samples_first_rows_only(self):
        rows = [{"value": "same"} for _ in range(20)]
        rows += [{"value": f"unique-{i}"} for i in range(20)]
        assert ConfidenceScorer().data_variety(rows) == pytest.approx(25)

    def test_error_rate(self):
        scorer = ConfidenceScorer()
        assert scorer.error_rate([]) == 100
        assert scorer.error_rate(["one"]) == 90
        assert scorer.error_rate(["x"] * 20) == 50


class TestValueTypes:
    def test_bool_is_not_a_number(self):
        assert infer_value_type(True) == "boolean"

    def test_string_shapes(self):
        assert infer_value_type("42") == "integer_string"
        assert infer_value_type("4.2") == "decimal_string"
        assert infer_value_type("2024-02-01") == "date_string"
        assert infer_value_type("") == "empty"
        assert infer_value_type(None) == "null"
        assert infer_value_type(3) == "number"
