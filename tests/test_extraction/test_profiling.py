"""Tests for column profiling."""

from import_mapper.extraction.models import ParseResult
from import_mapper.extraction.profiling import infer_data_type, profile_column, profile_fields


class TestInferDataType:
    def test_numbers_including_currency_strings(self):
        assert infer_data_type([1, 2.5, "$1,200.00", "15%", 7]) == "number"

    def test_booleans(self):
        assert infer_data_type([True, "no", "Yes", False]) == "boolean"

    def test_dates(self):
        assert infer_data_type(["2024-01-01", "2024-02-01T10:00:00", "3/4/2024"]) == "date"

    def test_mixed_falls_back_to_string(self):
        assert infer_data_type(["abc", 1, "def", 2]) == "string"

    def test_empty_column(self):
        assert infer_data_type([None, "", "  "]) == "string"


class TestProfileColumn:
    def test_percentages_and_samples(self):
        field = profile_column("sku", ["A1", "A2", "A2", None, "A3", "A4", "A5", "A6", "A7", "A8"])
        assert field.null_percentage == 10
        assert field.unique_percentage == 80
        assert field.sample_values == ["A1", "A2", "A3", "A4", "A5"]
        assert not field.is_required

    def test_required_when_mostly_filled(self):
        field = profile_column("name", ["a", "b", "c"])
        assert field.is_required
        assert field.null_percentage == 0


class TestProfileFields:
    def test_profiles_every_column(self):
        result = ParseResult(
            success=True,
            strategy_name="standard",
            rows=[
                {"name": "Widget", "price": 9.99},
                {"name": "Gadget", "price": 19.5, "extra": "x"},
            ],
        )
        extracted = profile_fields(result, file_name="products.csv")
        assert extracted.field_names == ["name", "price", "extra"]
        assert extracted.total_rows == 2
        assert extracted.file_name == "products.csv"
        price = extracted.fields[1]
        assert price.data_type == "number"
        assert extracted.fields[2].null_percentage == 50

    def test_sample_rows_bound_profiling(self):
        rows = [{"qty": i} for i in range(20)] + [{"qty": "n/a"}] * 5
        result = ParseResult(success=True, strategy_name="standard", rows=rows)
        extracted = profile_fields(result, sample_rows=20)
        assert extracted.fields[0].data_type == "number"
        assert extracted.total_rows == 25
        assert len(extracted.sample_data) == 10
