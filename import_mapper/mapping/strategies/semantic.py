"""Rule-based semantic matching on field names and sample content.

Each rule pairs a name pattern with a content check for one target field.
The first rule whose name pattern matches decides the target; when no name
pattern matches, the first rule whose content check fires is used instead.
Confidence starts at 65 and earns bonuses for a name match, a content match
and a mostly populated column, clamped to the 60-79 band.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Callable

from import_mapper.extraction.profiling import SourceField
from import_mapper.mapping.models import FieldMapping, MappingMetadata, StrategyResult
from import_mapper.mapping.similarity import normalize_field_name
from import_mapper.mapping.strategies.base import MappingContext, build_result

BASE_CONFIDENCE = 65
NAME_BONUS = 10
CONTENT_BONUS = 5
COMPLETENESS_BONUS = 5
MIN_SEMANTIC_CONFIDENCE = 60
MAX_SEMANTIC_CONFIDENCE = 79

_CODE = re.compile(r"^[A-Z0-9\-_]+$", re.IGNORECASE)
_GTIN = re.compile(r"^\d{8,14}$")
_SLUG = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)+$")
_STATUS_WORDS = frozenset({"draft", "review", "live", "active", "inactive", "archived"})


def _is_float(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value).replace(",", "").lstrip("$€£"))
    except ValueError:
        return False
    return True


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    return bool(re.fullmatch(r"[-+]?\d+", str(value).strip()))


@dataclass(frozen=True)
class SemanticRule:
    pattern: re.Pattern[str]
    target_field: str
    reasoning: str
    content_check: Callable[[Any], bool]


DEFAULT_RULES: tuple[SemanticRule, ...] = (
    SemanticRule(
        re.compile(r"^(product_?name|title|product_title|item_name|item_title)$"),
        "name",
        "Product name pattern match",
        lambda value: isinstance(value, str) and len(value) > 3,
    ),
    SemanticRule(
        re.compile(
            r"^(sku|sku_?code|sku_?id|sku_?number|product_code|item_code|"
            r"part_number|part_no|model|model_number)$"
        ),
        "sku",
        "SKU/product code pattern match",
        lambda value: bool(_CODE.match(str(value))),
    ),
    SemanticRule(
        re.compile(r"^(compare_at_price|msrp|rrp|list_price|original_price|was_price)$"),
        "compare_at_price",
        "Reference price pattern match",
        _is_float,
    ),
    SemanticRule(
        re.compile(
            r"^(price|price_[a-z]{3}|cost|amount|selling_price|unit_price|"
            r"retail_price|sale_price)$"
        ),
        "price",
        "Price pattern match",
        _is_float,
    ),
    SemanticRule(
        re.compile(r"^(description|desc|product_description|details|summary)$"),
        "short_description",
        "Description pattern match",
        lambda value: isinstance(value, str) and len(value) > 10,
    ),
    SemanticRule(
        re.compile(r"^(long_description|long_desc|full_description|body|body_html)$"),
        "long_description",
        "Long description pattern match",
        lambda value: isinstance(value, str) and len(value) > 10,
    ),
    SemanticRule(
        re.compile(
            r"^(stock|stock_?qty|stock_quantity|stock_level|inventory|"
            r"inventory_quantity|quantity|qty|available|on_hand)$"
        ),
        "stock",
        "Stock/inventory pattern match",
        _is_integer,
    ),
    SemanticRule(
        re.compile(r"^(low_stock|reorder_point|reorder_level|min_stock)$"),
        "low_stock_threshold",
        "Reorder threshold pattern match",
        _is_integer,
    ),
    SemanticRule(
        re.compile(r"^(barcode|upc|ean|ean13|gtin|gtin13|isbn)$"),
        "gtin",
        "Barcode pattern match",
        lambda value: bool(_GTIN.match(str(value))),
    ),
    SemanticRule(
        re.compile(r"^(handle|url_key|permalink)$"),
        "slug",
        "Slug pattern match",
        lambda value: isinstance(value, str) and bool(_SLUG.match(value)),
    ),
    SemanticRule(
        re.compile(r"^(product_status|state|availability_status)$"),
        "status",
        "Status pattern match",
        lambda value: str(value).lower() in _STATUS_WORDS,
    ),
)


class SemanticMatchStrategy:
    name = "semantic"

    def __init__(self, rules: tuple[SemanticRule, ...] = DEFAULT_RULES) -> None:
        self._rules = rules

    async def propose(self, context: MappingContext) -> StrategyResult:
        start = time.perf_counter()
        rules = [rule for rule in self._rules if rule.target_field in context.schema]
        mappings = []
        for source in context.source_fields:
            mapping = self._match(source, rules, context)
            if mapping is not None:
                mappings.append(mapping)
        return build_result(self.name, mappings, (time.perf_counter() - start) * 1000)

    def _match(
        self, source: SourceField, rules: list[SemanticRule], context: MappingContext
    ) -> FieldMapping | None:
        names = {source.name.lower(), normalize_field_name(source.name)}
        rule = next((r for r in rules if any(r.pattern.match(name) for name in names)), None)
        name_match = rule is not None
        if rule is None:
            rule = next((r for r in rules if self._content_matches(r, source)), None)
        if rule is None:
            return None

        content_match = self._content_matches(rule, source)
        confidence = BASE_CONFIDENCE
        if name_match:
            confidence += NAME_BONUS
        if content_match:
            confidence += CONTENT_BONUS
        if source.null_percentage < 10:
            confidence += COMPLETENESS_BONUS
        confidence = max(MIN_SEMANTIC_CONFIDENCE, min(MAX_SEMANTIC_CONFIDENCE, confidence))
        if confidence < context.min_confidence:
            return None

        return FieldMapping(
            source_field=source.name,
            target_field=rule.target_field,
            confidence=confidence,
            strategy="semantic",
            reasoning=rule.reasoning,
            metadata=MappingMetadata(
                data_type_match=context.type_match(source, rule.target_field),
                pattern_match=name_match,
                score=confidence,
            ),
        )

    @staticmethod
    def _content_matches(rule: SemanticRule, source: SourceField) -> bool:
        return any(rule.content_check(value) for value in source.sample_values)
