"""REST API routes for the import mapper.

Provides endpoints for:
- Extracting rows from an uploaded file
- Full import analysis (extract, profile, map)
- Mapping already profiled fields
- Learning suggestions, statistics and cleanup
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from import_mapper.extraction.models import ExtractionStats, ParseResult
from import_mapper.extraction.profiling import ExtractedFields
from import_mapper.learning.models import LearningStatistics, LearningSuggestion
from import_mapper.mapping.models import MappingResult, StrategyStatistics
from import_mapper.service import ImportAnalysis, ImportMappingService

router = APIRouter()


# --- Request/Response Models ---


class SuggestionRequest(BaseModel):
    source_fields: list[str] = Field(default_factory=list)


class CleanResponse(BaseModel):
    removed: int


class StatisticsResponse(BaseModel):
    learning: LearningStatistics
    strategies: dict[str, StrategyStatistics]
    extraction: ExtractionStats


def _service(request: Request) -> ImportMappingService:
    return request.app.state.service


async def _read_upload(request: Request) -> bytes:
    limit = request.app.state.config.api.max_upload_bytes
    data = await request.body()
    if len(data) > limit:
        raise HTTPException(status_code=413, detail=f"Upload exceeds {limit} bytes")
    if not data:
        raise HTTPException(status_code=400, detail="Request body is empty")
    return data


# --- Endpoints ---


@router.post("/extract", response_model=ParseResult)
async def extract_file(request: Request, file_name: str = Query(default="")) -> ParseResult:
    """Parse the raw request body as CSV, JSON or XLSX."""
    data = await _read_upload(request)
    return await _service(request).extract_file(data, file_name)


@router.post("/imports", response_model=ImportAnalysis)
async def analyze_import(request: Request, file_name: str = Query(default="")) -> ImportAnalysis:
    """Extract, profile and map the raw request body in one pass."""
    data = await _read_upload(request)
    return await _service(request).process_file(data, file_name)


@router.post("/mappings", response_model=MappingResult)
async def create_mappings(fields: ExtractedFields, request: Request) -> MappingResult:
    if not fields.fields:
        raise HTTPException(status_code=400, detail="No source fields supplied")
    return await _service(request).generate_mappings(fields)


@router.post("/suggestions", response_model=list[LearningSuggestion])
async def get_suggestions(
    payload: SuggestionRequest, request: Request
) -> list[LearningSuggestion]:
    return await _service(request).get_suggestions(payload.source_fields)


@router.get("/learning/statistics", response_model=StatisticsResponse)
async def learning_statistics(request: Request) -> StatisticsResponse:
    service = _service(request)
    return StatisticsResponse(
        learning=await service.get_learning_statistics(),
        strategies=await service.get_strategy_statistics(),
        extraction=service.get_extraction_stats(),
    )


@router.post("/learning/clean", response_model=CleanResponse)
async def clean_patterns(
    request: Request, days_old: int | None = Query(default=None, ge=1)
) -> CleanResponse:
    """Drop stale, rarely used learned patterns."""
    removed = await _service(request).clean_old_patterns(days_old)
    return CleanResponse(removed=removed)
