"""Adaptive extraction orchestrator.

Chooses candidate parsing strategies from a cheap pre-analysis, runs them
(raced in worker threads, or one after another), scores every result with
the ConfidenceScorer and returns the best one. When nothing reaches the
acceptance threshold an emergency line-splitter produces a low-confidence
result instead, so callers always get rows for any decodable input.

Contract: extract_csv never raises. Timeouts, undecodable input and
unexpected errors all come back as a ParseResult with success=False.
extract_file routes JSON documents and XLSX workbooks to dedicated readers
under the same contract.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import Counter
from typing import Awaitable

from import_mapper.config.settings import ExtractionConfig
from import_mapper.extraction.encoding import UndecodableInputError, decode_buffer
from import_mapper.extraction.models import (
    ExtractionStats,
    FileType,
    ParseMetadata,
    ParseResult,
    PreAnalysis,
)
from import_mapper.extraction.pre_analyzer import analyze_structure, detect_delimiters
from import_mapper.extraction.scorer import ConfidenceScorer
from import_mapper.extraction.strategies.base import ParsingStrategy
from import_mapper.extraction.strategies.registry import default_strategies, sort_by_priority
from import_mapper.extraction.structured import (
    StructuredInputError,
    detect_file_type,
    parse_json_records,
    parse_xlsx,
)
from import_mapper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

EMERGENCY_STRATEGY = "emergency-fallback"
EMERGENCY_CONFIDENCE = 30
EMERGENCY_ISSUE = "Emergency fallback parsing - data quality may be compromised"


class AdaptiveExtractor:
    """Runs competing parsing strategies and keeps the most confident result."""

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        scorer: ConfidenceScorer | None = None,
        strategies: list[ParsingStrategy] | None = None,
    ) -> None:
        self._config = config or ExtractionConfig()
        self._scorer = scorer or ConfidenceScorer()
        self._strategies = sort_by_priority(
            list(strategies) if strategies is not None else default_strategies()
        )

        self._total_extractions = 0
        self._successful_extractions = 0
        self._confidence_total = 0
        self._processing_time_total_ms = 0.0
        self._strategy_usage: Counter[str] = Counter()

    @property
    def config(self) -> ExtractionConfig:
        return self._config

    @property
    def strategies(self) -> list[ParsingStrategy]:
        return list(self._strategies)

    def register_strategy(self, strategy: ParsingStrategy) -> None:
        """Add a custom strategy; the registry stays ordered by priority."""
        self._strategies = sort_by_priority(
            [existing for existing in self._strategies if existing.name != strategy.name]
            + [strategy]
        )
        logger.info(
            "Registered parsing strategy %s (priority %d)", strategy.name, strategy.priority
        )

    async def extract_csv(self, data: bytes, file_name: str = "") -> ParseResult:
        return await self._run_extraction(self._extract(data, file_name), file_name)

    async def extract_file(
        self,
        data: bytes,
        file_name: str = "",
        file_type: FileType | None = None,
    ) -> ParseResult:
        """Extract rows from CSV-like text, a JSON document or an XLSX workbook.

        The type is taken from the file name, then from the content, unless
        given. Like extract_csv this never raises.
        """
        file_type = file_type or detect_file_type(data, file_name)
        if file_type == "csv":
            return await self.extract_csv(data, file_name)
        return await self._run_extraction(self._extract_structured(data, file_type), file_name)

    async def _run_extraction(self, work: Awaitable[ParseResult], file_name: str) -> ParseResult:
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(work, timeout=self._config.timeout_ms / 1000)
        except asyncio.TimeoutError:
            message = f"Extraction timed out after {self._config.timeout_ms} ms"
            emit_structured_error(
                logger,
                code=ErrorCode.EXTRACTION_TIMEOUT,
                message=message,
                suppressed=True,
                file_name=file_name,
            )
            result = self._failure(message, "timeout", start)
        except UndecodableInputError as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.INPUT_UNDECODABLE,
                message=str(exc),
                suppressed=True,
                file_name=file_name,
            )
            result = self._failure(str(exc), "none", start)
        except StructuredInputError as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.EXTRACTION_FAILED,
                message=str(exc),
                suppressed=True,
                file_name=file_name,
            )
            result = self._failure(str(exc), "error", start)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.EXTRACTION_FAILED,
                message=str(exc),
                suppressed=True,
                file_name=file_name,
            )
            result = self._failure(f"Extraction failed: {exc}", "error", start)

        self._record(result, (time.perf_counter() - start) * 1000)
        logger.info(
            "Extracted %s with %s (confidence %d, %d rows)",
            file_name or "<buffer>",
            result.strategy_name,
            result.confidence,
            len(result.rows),
        )
        return result

    def select_strategies(self, analysis: PreAnalysis) -> list[ParsingStrategy]:
        """Candidate strategies for a pre-analysis, in execution order."""
        wanted = ["standard"]
        delimiters = analysis.detected_delimiters
        if len(delimiters) > 1 or (delimiters and delimiters[0] != ","):
            wanted.append("alternative-delimiters")
        patterns = analysis.data_patterns
        if patterns.has_numeric_data and not patterns.has_text_headers:
            wanted.append("numeric-headerless")
        if analysis.has_quotes or analysis.has_escapes:
            wanted.append("complex-fields")

        by_name = {strategy.name: strategy for strategy in self._strategies}
        selected = [by_name[name] for name in wanted if name in by_name]
        # Custom strategies run after the built-in candidates.
        builtin = {"standard", "alternative-delimiters", "numeric-headerless", "complex-fields"}
        selected.extend(
            strategy
            for strategy in self._strategies
            if strategy.name not in builtin and strategy.name != "dirty-recovery"
        )
        selected = selected[: max(self._config.max_strategies - 1, 1)]
        if "dirty-recovery" in by_name and len(selected) < self._config.max_strategies:
            selected.append(by_name["dirty-recovery"])
        return selected

    def get_extraction_stats(self) -> ExtractionStats:
        total = self._total_extractions
        return ExtractionStats(
            total_extractions=total,
            successful_extractions=self._successful_extractions,
            success_rate=self._successful_extractions / total * 100 if total else 0,
            average_confidence=self._confidence_total / total if total else 0,
            average_processing_time_ms=self._processing_time_total_ms / total if total else 0,
            strategy_usage=dict(self._strategy_usage),
        )

    # --- Internals ---

    async def _extract(self, data: bytes, file_name: str) -> ParseResult:
        text, _ = decode_buffer(data)
        analysis = analyze_structure(
            data,
            sample_size=self._config.sample_size_bytes,
            line_count=self._config.sample_line_count,
        )
        candidates = self.select_strategies(analysis)
        logger.debug(
            "Selected strategies for %s: %s",
            file_name or "<buffer>",
            [strategy.name for strategy in candidates],
        )

        if self._config.enable_parallel_execution:
            best = await self._execute_parallel(candidates, data, file_name)
        else:
            best = await self._execute_sequential(candidates, data, file_name)

        if best is None or best.confidence < self._config.min_confidence_threshold:
            logger.info(
                "No strategy reached confidence %d for %s, using emergency fallback",
                self._config.min_confidence_threshold,
                file_name or "<buffer>",
            )
            return self.emergency_fallback(text, analysis)
        return best

    async def _extract_structured(self, data: bytes, file_type: FileType) -> ParseResult:
        reader = parse_json_records if file_type == "json" else parse_xlsx
        start = time.perf_counter()
        raw = await asyncio.to_thread(reader, data)
        return self._score(raw, (time.perf_counter() - start) * 1000)

    async def _execute_parallel(
        self,
        strategies: list[ParsingStrategy],
        data: bytes,
        file_name: str,
    ) -> ParseResult | None:
        pending = {
            asyncio.create_task(self._run_strategy(strategy, data, file_name))
            for strategy in strategies
        }
        results: list[ParseResult] = []
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                confident = False
                for task in done:
                    result = task.result()
                    if result is None:
                        continue
                    results.append(result)
                    threshold = self._config.min_confidence_threshold
                    if result.success and result.confidence >= threshold:
                        confident = True
                if confident and self._config.enable_early_termination:
                    break
        finally:
            for task in pending:
                task.cancel()
        return self._select_best(results)

    async def _execute_sequential(
        self,
        strategies: list[ParsingStrategy],
        data: bytes,
        file_name: str,
    ) -> ParseResult | None:
        results: list[ParseResult] = []
        for strategy in strategies:
            result = await self._run_strategy(strategy, data, file_name)
            if result is None:
                continue
            if result.success and result.confidence >= self._config.min_confidence_threshold:
                return result
            results.append(result)
        return self._select_best(results)

    async def _run_strategy(
        self,
        strategy: ParsingStrategy,
        data: bytes,
        file_name: str,
    ) -> ParseResult | None:
        """Run one strategy in a worker thread and score its output.

        Failures are isolated to the strategy: they are logged and reported
        as no result.
        """
        start = time.perf_counter()
        try:
            raw = await asyncio.to_thread(strategy.parse, data, file_name)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.PARSE_STRATEGY_FAILED,
                message=str(exc),
                suppressed=True,
                file_name=file_name,
                strategy=strategy.name,
            )
            return None
        return self._score(raw, (time.perf_counter() - start) * 1000)

    def _score(self, result: ParseResult, parse_time_ms: float) -> ParseResult:
        metadata = result.metadata.model_copy(update={"parse_time_ms": parse_time_ms})
        if not result.success or not result.rows:
            report = self._scorer.create_failure_result(result.error or "No rows produced")
            return result.model_copy(
                update={"success": False, "confidence": 0, "metadata": metadata, "report": report}
            )
        report = self._scorer.calculate_confidence(result.rows, metadata, parse_time_ms)
        return result.model_copy(
            update={"confidence": report.score, "metadata": metadata, "report": report}
        )

    def _select_best(self, results: list[ParseResult]) -> ParseResult | None:
        """Highest confidence wins; equal confidence goes to the higher priority strategy."""
        priorities = {strategy.name: strategy.priority for strategy in self._strategies}
        successful = [result for result in results if result.success]
        if not successful:
            return None
        return max(
            successful,
            key=lambda result: (result.confidence, priorities.get(result.strategy_name, 0)),
        )

    def emergency_fallback(self, text: str, analysis: PreAnalysis | None = None) -> ParseResult:
        """Split every non-blank line on the most frequent delimiter.

        Always tagged with confidence 30; an empty buffer yields a failed
        result with confidence 0 instead.
        """
        start = time.perf_counter()
        delimiters = detect_delimiters(text) or (analysis.detected_delimiters if analysis else [])
        delimiter = delimiters[0] if delimiters else ","
        lines = [line for line in re.split(r"\r?\n", text) if line.strip()]
        rows = [
            {
                f"column_{index + 1}": cell.strip()
                for index, cell in enumerate(line.split(delimiter))
            }
            for line in lines
        ]
        metadata = ParseMetadata(
            delimiter=delimiter,
            has_headers=False,
            total_records=len(rows),
            encoding=analysis.encoding if analysis else "utf8",
            parse_time_ms=(time.perf_counter() - start) * 1000,
            quality_score=30 if rows else 0,
            issues=[EMERGENCY_ISSUE] if rows else ["No data rows found"],
        )
        if not rows:
            return ParseResult(
                success=False,
                confidence=0,
                strategy_name=EMERGENCY_STRATEGY,
                metadata=metadata,
                error="No data rows found",
                report=self._scorer.create_failure_result("No data rows found"),
            )
        return ParseResult(
            success=True,
            rows=rows,
            confidence=EMERGENCY_CONFIDENCE,
            strategy_name=EMERGENCY_STRATEGY,
            metadata=metadata,
        )

    def _failure(self, message: str, strategy_name: str, start: float) -> ParseResult:
        return ParseResult(
            success=False,
            confidence=0,
            strategy_name=strategy_name,
            metadata=ParseMetadata(
                parse_time_ms=(time.perf_counter() - start) * 1000,
                issues=[message],
            ),
            error=message,
            report=self._scorer.create_failure_result(message),
        )

    def _record(self, result: ParseResult, elapsed_ms: float) -> None:
        self._total_extractions += 1
        self._processing_time_total_ms += elapsed_ms
        self._confidence_total += result.confidence
        self._strategy_usage[result.strategy_name] += 1
        if result.success:
            self._successful_extractions += 1
