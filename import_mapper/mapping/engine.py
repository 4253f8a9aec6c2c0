"""Multi-strategy field mapper.

Runs every mapping strategy concurrently under one deadline, fuses their
candidates with the aggregator and feeds confident results back into the
learning cache in the background.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict

from import_mapper.config.settings import MappingConfig
from import_mapper.extraction.profiling import ExtractedFields
from import_mapper.learning.cache import LearningCache
from import_mapper.llm.gateway import CompletionGateway
from import_mapper.mapping.aggregator import MappingAggregator
from import_mapper.mapping.models import (
    FieldMapping,
    MappingResult,
    StrategyResult,
    StrategyStatistics,
)
from import_mapper.mapping.schema import SKU_SCHEMA, TargetSchema
from import_mapper.mapping.strategies.base import CostBudget, MappingContext, MappingStrategy
from import_mapper.mapping.strategies.historical import HistoricalMatchStrategy
from import_mapper.mapping.strategies.lexical import ExactMatchStrategy, FuzzyMatchStrategy
from import_mapper.mapping.strategies.llm import LLMMappingStrategy
from import_mapper.mapping.strategies.semantic import SemanticMatchStrategy
from import_mapper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


def default_mapping_strategies(
    config: MappingConfig,
    learning: LearningCache | None = None,
    gateway: CompletionGateway | None = None,
) -> list[MappingStrategy]:
    strategies: list[MappingStrategy] = [
        ExactMatchStrategy(),
        FuzzyMatchStrategy(threshold=config.fuzzy_threshold),
        SemanticMatchStrategy(),
    ]
    if learning is not None:
        strategies.append(
            HistoricalMatchStrategy(
                learning,
                threshold=config.historical_threshold,
                pool_size=config.historical_pool_size,
            )
        )
    if gateway is not None:
        strategies.append(LLMMappingStrategy(gateway, sample_rows=config.llm_sample_rows))
    return strategies


class MultiStrategyMapper:
    """Maps extracted source fields onto a target schema."""

    def __init__(
        self,
        config: MappingConfig | None = None,
        schema: TargetSchema | None = None,
        learning: LearningCache | None = None,
        gateway: CompletionGateway | None = None,
        strategies: list[MappingStrategy] | None = None,
    ) -> None:
        self._config = config or MappingConfig()
        self._schema = schema if schema is not None else SKU_SCHEMA
        self._learning = learning
        self._strategies = (
            list(strategies)
            if strategies is not None
            else default_mapping_strategies(self._config, learning, gateway)
        )
        self._aggregator = MappingAggregator(
            min_confidence=self._config.min_confidence,
            allow_duplicate_targets=self._config.allow_duplicate_targets,
        )
        self._learning_tasks: set[asyncio.Task[None]] = set()

    @property
    def schema(self) -> TargetSchema:
        return self._schema

    @property
    def strategies(self) -> list[MappingStrategy]:
        return list(self._strategies)

    async def generate_mappings(self, extracted: ExtractedFields) -> MappingResult:
        start = time.perf_counter()
        source_names = extracted.field_names
        try:
            context = MappingContext(
                extracted=extracted,
                schema=self._schema,
                budget=CostBudget(self._config.max_cost_per_session),
                min_confidence=self._config.min_confidence,
            )
            results = await self._run_strategies(context, extracted.file_name)
            aggregated = self._aggregator.aggregate(
                results, source_names, schema_keys=set(self._schema)
            )
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.MAPPING_FAILED,
                message=str(exc),
                suppressed=True,
                file_name=extracted.file_name,
            )
            return MappingResult(
                success=False,
                unmapped_fields=source_names,
                processing_time_ms=(time.perf_counter() - start) * 1000,
                error=f"Mapping failed: {exc}",
            )

        self._schedule_learning(aggregated.mappings)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Mapped %d/%d fields (confidence %d) in %.1f ms",
            len(aggregated.mappings),
            len(source_names),
            aggregated.confidence,
            elapsed_ms,
        )
        return MappingResult(
            success=True,
            mappings=aggregated.mappings,
            unmapped_fields=aggregated.unmapped_fields,
            confidence=aggregated.confidence,
            processing_time_ms=elapsed_ms,
            strategies_used=[result.strategy for result in results if result.mappings],
            cost=sum(result.cost for result in results),
        )

    async def drain_learning(self) -> None:
        """Wait for outstanding learning feedback."""
        while self._learning_tasks:
            await asyncio.gather(*list(self._learning_tasks), return_exceptions=True)

    async def get_strategy_statistics(self) -> dict[str, StrategyStatistics]:
        if self._learning is None:
            return {}
        try:
            patterns = await self._learning.recent_patterns(100)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.CACHE_READ_FAILED,
                message=str(exc),
                suppressed=True,
            )
            return {}

        grouped = defaultdict(list)
        for pattern in patterns:
            grouped[pattern.strategy].append(pattern)
        return {
            strategy: StrategyStatistics(
                count=len(items),
                avg_confidence=sum(item.confidence for item in items) / len(items),
                total_usage=sum(item.usage_count for item in items),
            )
            for strategy, items in grouped.items()
        }

    # --- Internals ---

    async def _run_strategies(
        self, context: MappingContext, file_name: str
    ) -> list[StrategyResult]:
        tasks = {
            asyncio.create_task(self._run_strategy(strategy, context, file_name)): strategy.name
            for strategy in self._strategies
        }
        if not tasks:
            return []
        done, pending = await asyncio.wait(tasks, timeout=self._config.timeout_s)
        if pending:
            names = sorted(tasks[task] for task in pending)
            emit_structured_error(
                logger,
                code=ErrorCode.MAPPING_TIMEOUT,
                message=f"Mapping strategies timed out after {self._config.timeout_s}s",
                suppressed=True,
                file_name=file_name,
                details={"cancelled": names},
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        order = {strategy.name: index for index, strategy in enumerate(self._strategies)}
        results = [task.result() for task in done if task.result() is not None]
        return sorted(results, key=lambda result: order.get(result.strategy, len(order)))

    async def _run_strategy(
        self, strategy: MappingStrategy, context: MappingContext, file_name: str
    ) -> StrategyResult | None:
        try:
            return await strategy.propose(context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.MAPPING_STRATEGY_FAILED,
                message=str(exc),
                suppressed=True,
                file_name=file_name,
                strategy=strategy.name,
            )
            return None

    def _schedule_learning(self, mappings: list[FieldMapping]) -> None:
        if self._learning is None:
            return
        for mapping in mappings:
            if mapping.confidence < self._config.learn_threshold:
                continue
            task = asyncio.create_task(self._learn(mapping))
            self._learning_tasks.add(task)
            task.add_done_callback(self._learning_tasks.discard)

    async def _learn(self, mapping: FieldMapping) -> None:
        try:
            await self._learning.learn_from_mapping(
                mapping.source_field,
                mapping.target_field,
                mapping.confidence,
                mapping.strategy,
                metadata=mapping.metadata.model_dump(exclude_none=True),
            )
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.CACHE_WRITE_FAILED,
                message=str(exc),
                suppressed=True,
                strategy=mapping.strategy,
            )
