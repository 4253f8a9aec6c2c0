"""Ordered registry of the built-in parsing strategies."""

from __future__ import annotations

from import_mapper.extraction.strategies.alternative_delimiters import (
    AlternativeDelimitersStrategy,
)
from import_mapper.extraction.strategies.base import ParsingStrategy
from import_mapper.extraction.strategies.complex_fields import ComplexFieldsStrategy
from import_mapper.extraction.strategies.dirty_recovery import DirtyRecoveryStrategy
from import_mapper.extraction.strategies.numeric_headerless import NumericHeaderlessStrategy
from import_mapper.extraction.strategies.standard import StandardStrategy


def sort_by_priority(strategies: list[ParsingStrategy]) -> list[ParsingStrategy]:
    return sorted(strategies, key=lambda strategy: strategy.priority, reverse=True)


def default_strategies() -> list[ParsingStrategy]:
    """Fresh instances of every built-in strategy, highest priority first."""
    return sort_by_priority(
        [
            StandardStrategy(),
            AlternativeDelimitersStrategy(),
            NumericHeaderlessStrategy(),
            ComplexFieldsStrategy(),
            DirtyRecoveryStrategy(),
        ]
    )
