"""Defensive parsing of model replies that should contain mapping JSON."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from import_mapper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class MappingProposal(BaseModel):
    """One mapping suggested by the model, as it appears in the reply."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    source_field: str = Field(alias="sourceField", min_length=1)
    target_field: str = Field(alias="targetField", min_length=1)
    confidence: float = Field(ge=0, le=100)
    reasoning: str = ""
    data_type_match: bool | None = Field(default=None, alias="dataTypeMatch")
    transformation_required: str | None = Field(default=None, alias="transformationRequired")


class MappingReply(BaseModel):
    status: Literal["ok", "malformed"]
    proposals: list[MappingProposal] = Field(default_factory=list)
    error: str | None = None
    rejected_entries: int = 0


def _malformed(reason: str) -> MappingReply:
    emit_structured_error(
        logger,
        code=ErrorCode.LLM_RESPONSE_MALFORMED,
        message=reason,
        suppressed=True,
        strategy="llm",
    )
    return MappingReply(status="malformed", error=reason)


def parse_mapping_reply(content: str | None) -> MappingReply:
    """Extract ``{"mappings": [...]}`` from free text. Never raises.

    Entries that fail validation are dropped individually; the reply is
    only malformed when no JSON object or no ``mappings`` list is found.
    """
    if not content:
        return _malformed("Empty reply")
    match = _JSON_OBJECT.search(content)
    if match is None:
        return _malformed("No JSON object in reply")
    try:
        payload: Any = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return _malformed(f"Invalid JSON in reply: {exc}")
    if not isinstance(payload, dict) or not isinstance(payload.get("mappings"), list):
        return _malformed("Reply has no mappings list")

    proposals: list[MappingProposal] = []
    rejected = 0
    for entry in payload["mappings"]:
        try:
            proposals.append(MappingProposal.model_validate(entry))
        except ValidationError:
            rejected += 1
    if rejected:
        logger.warning("Dropped %d invalid mapping entries from model reply", rejected)
    return MappingReply(status="ok", proposals=proposals, rejected_entries=rejected)
