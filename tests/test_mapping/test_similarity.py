"""Tests for name normalization, similarity measures and type compatibility."""

import pytest

from import_mapper.extraction.profiling import SourceField
from import_mapper.mapping.schema import SKU_SCHEMA, check_data_type_match, is_type_compatible
from import_mapper.mapping.similarity import (
    jaccard_similarity,
    levenshtein_similarity,
    normalize_field_name,
    round_half_up,
)


class TestNormalizeFieldName:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("SKU Code", "sku_code"),
            ("  Product--Name ", "product_name"),
            ("price (USD)", "price_usd"),
            ("__stock__qty__", "stock_qty"),
            ("", ""),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_field_name(raw) == expected

    @pytest.mark.parametrize("raw", ["SKU Code", "Prix €/kg", "a__b", "Ünïcode Name", "x"])
    def test_idempotent(self, raw):
        once = normalize_field_name(raw)
        assert normalize_field_name(once) == once


class TestSimilarity:
    def test_levenshtein(self):
        assert levenshtein_similarity("price", "price") == 1.0
        assert levenshtein_similarity("prise", "price") == pytest.approx(0.8)
        assert levenshtein_similarity("", "") == 1.0

    def test_jaccard(self):
        assert jaccard_similarity("abc", "cab") == 1.0
        assert jaccard_similarity("ab", "cd") == 0.0
        assert jaccard_similarity("", "") == 0.0

    def test_round_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestTypeCompatibility:
    def test_compatibility_table(self):
        assert is_type_compatible("number", "number")
        assert is_type_compatible("string", "string")
        assert not is_type_compatible("string", "number")

    def test_against_schema(self):
        field = SourceField(name="price_usd", data_type="number")
        assert check_data_type_match(field, "price", SKU_SCHEMA)
        assert not check_data_type_match(field, "name", SKU_SCHEMA)
        assert not check_data_type_match(field, "unknown", SKU_SCHEMA)
