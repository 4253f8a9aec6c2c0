"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    PARSE_STRATEGY_FAILED = "PARSE_STRATEGY_FAILED"
    EXTRACTION_TIMEOUT = "EXTRACTION_TIMEOUT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    INPUT_UNDECODABLE = "INPUT_UNDECODABLE"
    MAPPING_STRATEGY_FAILED = "MAPPING_STRATEGY_FAILED"
    MAPPING_TIMEOUT = "MAPPING_TIMEOUT"
    MAPPING_FAILED = "MAPPING_FAILED"
    LLM_REQUEST_FAILED = "LLM_REQUEST_FAILED"
    LLM_RESPONSE_MALFORMED = "LLM_RESPONSE_MALFORMED"
    CACHE_READ_FAILED = "CACHE_READ_FAILED"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    file_name: str | None = None,
    strategy: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging."""
    logger.error(
        "import_mapper_error",
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "file_name": file_name,
            "strategy": strategy,
            "details": details or {},
        },
    )
