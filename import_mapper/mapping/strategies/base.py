"""Mapping strategy interface and per-session context."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from import_mapper.extraction.profiling import ExtractedFields, SourceField
from import_mapper.mapping.models import FieldMapping, StrategyResult, mean_confidence
from import_mapper.mapping.schema import TargetSchema, check_data_type_match


class CostBudget:
    """Per-session spend counter for paid strategies.

    ``lock`` must be held across read-check-call-record so two concurrent
    callers cannot both spend the same remaining budget.
    """

    def __init__(self, limit: float) -> None:
        self.limit = limit
        self.spent = 0.0
        self.lock = asyncio.Lock()

    @property
    def remaining(self) -> float:
        return max(0.0, self.limit - self.spent)

    def record(self, cost: float) -> None:
        self.spent += cost


@dataclass
class MappingContext:
    extracted: ExtractedFields
    schema: TargetSchema
    budget: CostBudget
    min_confidence: int = 60

    @property
    def source_fields(self) -> list[SourceField]:
        return self.extracted.fields

    def type_match(self, source: SourceField, target: str) -> bool:
        return check_data_type_match(source, target, self.schema)


@runtime_checkable
class MappingStrategy(Protocol):
    name: str

    async def propose(self, context: MappingContext) -> StrategyResult: ...


def build_result(
    strategy: str, mappings: list[FieldMapping], elapsed_ms: float, cost: float = 0.0
) -> StrategyResult:
    return StrategyResult(
        strategy=strategy,
        mappings=mappings,
        confidence=mean_confidence(mappings),
        processing_time_ms=elapsed_ms,
        cost=cost,
    )
