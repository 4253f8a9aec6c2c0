"""Target schema definitions and type compatibility rules."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from import_mapper.extraction.profiling import SourceField

TargetType = Literal["string", "number", "boolean", "date"]


class TargetField(BaseModel):
    model_config = {"frozen": True}

    type: TargetType = "string"
    required: bool = False
    description: str = ""


TargetSchema = dict[str, TargetField]

SKU_SCHEMA: TargetSchema = {
    "id": TargetField(type="string", description="Unique identifier (auto-generated)"),
    "name": TargetField(type="string", required=True, description="Product name or title"),
    "slug": TargetField(type="string", description="URL-friendly product identifier"),
    "sku": TargetField(type="string", required=True, description="Stock keeping unit code"),
    "gtin": TargetField(type="string", description="Global trade item number (barcode)"),
    "short_description": TargetField(type="string", description="Brief product description"),
    "long_description": TargetField(type="string", description="Detailed product description"),
    "story": TargetField(type="string", description="Product story or background"),
    "price": TargetField(type="number", required=True, description="Selling price"),
    "compare_at_price": TargetField(type="number", description="Original or list price"),
    "stock": TargetField(type="number", description="Quantity in stock"),
    "low_stock_threshold": TargetField(type="number", description="Reorder alert level"),
    "brand_id": TargetField(type="string", description="Brand reference"),
    "parent_id": TargetField(type="string", description="Parent product for variants"),
    "status": TargetField(type="string", description="Product status (draft, live, archived)"),
    "is_variant": TargetField(type="boolean", description="Whether this is a product variant"),
    "created_at": TargetField(type="date", description="Creation timestamp"),
    "updated_at": TargetField(type="date", description="Last update timestamp"),
}

TYPE_COMPATIBILITY: dict[str, frozenset[str]] = {
    "string": frozenset({"string", "text"}),
    "number": frozenset({"number", "integer", "float", "decimal"}),
    "boolean": frozenset({"boolean", "bool"}),
    "date": frozenset({"date", "datetime", "timestamp"}),
}


def is_type_compatible(source_type: str, target_type: str) -> bool:
    return source_type in TYPE_COMPATIBILITY.get(target_type, frozenset({target_type}))


def check_data_type_match(field: SourceField, target: str, schema: TargetSchema) -> bool:
    target_field = schema.get(target)
    if target_field is None:
        return False
    return is_type_compatible(field.data_type, target_field.type)
